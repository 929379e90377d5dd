"""
Catalog App URL Configuration
"""
from django.urls import path
from .views import (
    RegisterView,
    LoginView,
    LogoutView,
    WhoAmIView,
    ProfileView,
    UserProfileView,
    UserModelsView,
    FollowView,
    FollowersView,
    FollowingView,
    ModelListCreateView,
    FeaturedModelsView,
    TrendingModelsView,
    ModelDetailView,
    LikeModelView,
    LikeToggleView,
    ModelCommentsView,
    CommentDeleteView,
    DownloadModelView,
    DownloadStatsView,
    DownloadHistoryView,
    PurchaseView,
    OrderListView,
    RefundView,
    DashboardOverviewView,
    DashboardAnalyticsView,
    DashboardEarningsView,
    DashboardUploadsView,
    UploadStatusView,
    PlatformStatsView,
    ModelStatsView,
    ReconcileModelView,
)

urlpatterns = [
    # Auth
    path('auth/register/', RegisterView.as_view(), name='register'),
    path('auth/login/', LoginView.as_view(), name='login'),
    path('auth/logout/', LogoutView.as_view(), name='logout'),
    path('auth/whoami/', WhoAmIView.as_view(), name='whoami'),

    # Profiles & follows
    path('profile/', ProfileView.as_view(), name='profile'),
    path('users/<str:username>/', UserProfileView.as_view(), name='user-profile'),
    path('users/<str:username>/models/', UserModelsView.as_view(), name='user-models'),
    path('users/<str:username>/follow/', FollowView.as_view(), name='user-follow'),
    path('users/<str:username>/followers/', FollowersView.as_view(), name='user-followers'),
    path('users/<str:username>/following/', FollowingView.as_view(), name='user-following'),

    # Models
    path('models/', ModelListCreateView.as_view(), name='model-list'),
    path('models/featured/', FeaturedModelsView.as_view(), name='model-featured'),
    path('models/trending/', TrendingModelsView.as_view(), name='model-trending'),
    path('models/<int:model_id>/', ModelDetailView.as_view(), name='model-detail'),
    path('models/<int:model_id>/like/', LikeModelView.as_view(), name='model-like'),
    path('models/<int:model_id>/like/toggle/', LikeToggleView.as_view(), name='model-like-toggle'),
    path('models/<int:model_id>/comments/', ModelCommentsView.as_view(), name='model-comments'),
    path('models/<int:model_id>/download/', DownloadModelView.as_view(), name='model-download'),
    path('models/<int:model_id>/downloads/stats/', DownloadStatsView.as_view(), name='model-download-stats'),
    path('models/<int:model_id>/purchase/', PurchaseView.as_view(), name='model-purchase'),
    path('models/<int:model_id>/stats/', ModelStatsView.as_view(), name='model-stats'),
    path('models/<int:model_id>/reconcile/', ReconcileModelView.as_view(), name='model-reconcile'),

    # Comments
    path('comments/<int:comment_id>/', CommentDeleteView.as_view(), name='comment-delete'),

    # Downloads & orders
    path('downloads/history/', DownloadHistoryView.as_view(), name='download-history'),
    path('orders/', OrderListView.as_view(), name='order-list'),
    path('orders/<int:order_id>/refund/', RefundView.as_view(), name='order-refund'),

    # Creator dashboard
    path('dashboard/overview/', DashboardOverviewView.as_view(), name='dashboard-overview'),
    path('dashboard/analytics/', DashboardAnalyticsView.as_view(), name='dashboard-analytics'),
    path('dashboard/earnings/', DashboardEarningsView.as_view(), name='dashboard-earnings'),
    path('dashboard/uploads/', DashboardUploadsView.as_view(), name='dashboard-uploads'),
    path('dashboard/uploads/<int:model_id>/status/', UploadStatusView.as_view(), name='dashboard-upload-status'),

    # Statistics
    path('stats/platform/', PlatformStatsView.as_view(), name='platform-stats'),
]
