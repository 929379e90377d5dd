"""
Sharespace URL Configuration
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse


def api_root(request):
    """Root endpoint with API information."""
    return JsonResponse({
        'message': 'Sharespace API Server',
        'version': '1.0',
        'endpoints': {
            'models': '/api/models/',
            'model': '/api/models/<id>/',
            'like': '/api/models/<id>/like/',
            'comments': '/api/models/<id>/comments/',
            'download': '/api/models/<id>/download/',
            'purchase': '/api/models/<id>/purchase/',
            'users': '/api/users/<username>/',
            'dashboard': '/api/dashboard/overview/',
            'stats': '/api/stats/platform/',
            'auth': '/api/auth/',
        },
        'admin': '/admin/',
    })


urlpatterns = [
    path('', api_root, name='api-root'),
    path('admin/', admin.site.urls),
    path('api/', include('catalog.urls')),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
