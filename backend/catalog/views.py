"""
DRF Views
=========

API endpoints for the 3D model catalog.

AUTHENTICATION NOTE:
--------------------
Session authentication (plus HTTP basic for scripts and tests).
Views tighten the global AllowAny default per endpoint.

Every action that creates or removes a fact row (like, comment, view,
download) goes through catalog.services so the cached counters move in the
same transaction. Views never write counters.
"""

import logging

from django.contrib.auth import authenticate, login, logout
from django.contrib.auth.models import User
from django.shortcuts import get_object_or_404
from rest_framework import generics, permissions, status
from rest_framework.exceptions import NotFound
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView

from . import analytics, counters, services
from .exceptions import PaymentDeclined
from .models import Download, Model3D, Order
from .permissions import IsCreator, IsOwnerOrReadOnly, IsOwnerOrStaff
from .queries import (
    build_comment_tree,
    get_all_comments_for_model,
    get_featured_models,
    get_liked_model_ids,
    get_model_with_comment_tree,
    get_model_with_owner,
    get_trending_models,
    get_user_by_username,
    public_models,
    search_models,
)
from .serializers import (
    ActivitySerializer,
    CommentCreateSerializer,
    CommentSerializer,
    CommentTreeSerializer,
    DownloadSerializer,
    LoginSerializer,
    Model3DDetailSerializer,
    Model3DListSerializer,
    Model3DUpdateSerializer,
    Model3DUploadSerializer,
    ModelStatusSerializer,
    OrderSerializer,
    ProfileSerializer,
    PublicProfileSerializer,
    PurchaseSerializer,
    RefundSerializer,
    RegisterSerializer,
    TopModelSerializer,
    UserSerializer,
)

logger = logging.getLogger(__name__)


def client_ip(request):
    """First address in X-Forwarded-For, else the socket peer."""
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip() or None
    return request.META.get('REMOTE_ADDR') or None


def user_agent(request):
    return request.META.get('HTTP_USER_AGENT', '')


def _parse_bool(value):
    if value is None:
        return None
    value = value.strip().lower()
    if value in ('1', 'true', 'yes'):
        return True
    if value in ('0', 'false', 'no'):
        return False
    return None


def _get_user_or_404(username):
    user = get_user_by_username(username)
    if user is None:
        raise NotFound('User not found')
    return user


def _list_with_likes(request, models):
    """Serialize a list of models with is_liked resolved in one query."""
    models = list(models)
    liked_ids = get_liked_model_ids(request.user, [m.id for m in models])
    return Model3DListSerializer(
        models,
        many=True,
        context={'request': request, 'liked_ids': liked_ids}
    ).data


class ModelListMixin:
    """Paginated Model3D listing with is_liked precomputed per page."""

    def list(self, request, *args, **kwargs):
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        items = page if page is not None else list(queryset)
        data = _list_with_likes(request, items)
        if page is not None:
            return self.get_paginated_response(data)
        return Response(data)


# ============================================================================
# AUTH & PROFILES
# ============================================================================

class RegisterView(APIView):
    """
    POST /api/auth/register/

    Body: {"username", "email", "password", "role": "USER" | "CREATOR"}
    Creates the user (profile via signal) and starts a session.
    """
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        login(request, user)
        logger.info("Registered user %s (%s)", user.username, user.profile.role)
        return Response(
            ProfileSerializer(user.profile).data,
            status=status.HTTP_201_CREATED
        )


class LoginView(APIView):
    """POST /api/auth/login/"""
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = authenticate(
            request,
            username=serializer.validated_data['username'],
            password=serializer.validated_data['password']
        )
        if user is None:
            return Response(
                {'error': 'Invalid username or password.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        login(request, user)
        return Response(ProfileSerializer(user.profile).data)


class LogoutView(APIView):
    """POST /api/auth/logout/"""
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        logout(request)
        return Response({'success': True})


class WhoAmIView(APIView):
    """
    GET /api/auth/whoami/

    Returns current authenticated user info.
    """
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        if request.user.is_authenticated:
            return Response({
                'authenticated': True,
                'user_id': request.user.id,
                'username': request.user.username,
                'role': request.user.profile.role,
            })
        return Response({
            'authenticated': False,
            'user_id': None,
            'username': None,
            'role': None,
        })


class ProfileView(generics.RetrieveUpdateAPIView):
    """
    GET/PATCH /api/profile/

    The current user's own profile. Role and verification are read-only.
    """
    serializer_class = ProfileSerializer
    permission_classes = [permissions.IsAuthenticated]
    http_method_names = ['get', 'patch', 'head', 'options']

    def get_object(self):
        return self.request.user.profile


class UserProfileView(APIView):
    """GET /api/users/<username>/"""
    permission_classes = [permissions.AllowAny]

    def get(self, request, username):
        user = _get_user_or_404(username)
        return Response(PublicProfileSerializer(user, context={'request': request}).data)


class UserModelsView(ModelListMixin, generics.ListAPIView):
    """GET /api/users/<username>/models/ - public models, newest first."""
    serializer_class = Model3DListSerializer
    permission_classes = [permissions.AllowAny]

    def get_queryset(self):
        user = _get_user_or_404(self.kwargs['username'])
        return public_models().filter(owner=user).order_by('-created_at')


# ============================================================================
# FOLLOWS
# ============================================================================

class FollowView(APIView):
    """
    POST   /api/users/<username>/follow/  -> 201, 409 if already following
    DELETE /api/users/<username>/follow/  -> 200, 404 if not following
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, username):
        target = _get_user_or_404(username)
        services.follow_user(request.user, target)
        return Response(
            {'success': True, 'following': target.username},
            status=status.HTTP_201_CREATED
        )

    def delete(self, request, username):
        target = _get_user_or_404(username)
        if not services.unfollow_user(request.user, target):
            raise NotFound('You are not following this user.')
        return Response({'success': True, 'unfollowed': target.username})


class FollowersView(generics.ListAPIView):
    """GET /api/users/<username>/followers/"""
    serializer_class = UserSerializer
    permission_classes = [permissions.AllowAny]

    def get_queryset(self):
        user = _get_user_or_404(self.kwargs['username'])
        return (
            User.objects
            .filter(following_set__following=user)
            .select_related('profile')
            .order_by('-following_set__created_at')
        )


class FollowingView(generics.ListAPIView):
    """GET /api/users/<username>/following/"""
    serializer_class = UserSerializer
    permission_classes = [permissions.AllowAny]

    def get_queryset(self):
        user = _get_user_or_404(self.kwargs['username'])
        return (
            User.objects
            .filter(follower_set__follower=user)
            .select_related('profile')
            .order_by('-follower_set__created_at')
        )


# ============================================================================
# MODELS
# ============================================================================

class ModelListCreateView(ModelListMixin, generics.ListCreateAPIView):
    """
    GET  /api/models/   browse/search public models
    POST /api/models/   multipart upload (CREATOR or ADMIN)

    Query params (GET):
    - search, category, creator
    - tags: comma-separated, any match
    - free: true | false
    - sort: newest | oldest | popular | downloads | likes
    - page, limit (max 100)

    QUERIES: count + page (with owner JOIN) + 1 for is_liked
    """
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    def get_permissions(self):
        if self.request.method == 'POST':
            return [IsCreator()]
        return [permissions.AllowAny()]

    def get_serializer_class(self):
        if self.request.method == 'POST':
            return Model3DUploadSerializer
        return Model3DListSerializer

    def get_queryset(self):
        params = self.request.query_params
        tags = [t for t in params.get('tags', '').split(',') if t.strip()]
        return search_models(
            search=params.get('search', '').strip(),
            category=params.get('category', '').strip(),
            tags=tags,
            creator=params.get('creator', '').strip(),
            free=_parse_bool(params.get('free')),
            sort=params.get('sort', 'newest')
        )

    def perform_create(self, serializer):
        # Owner comes from the session, never from the request body
        model = serializer.save(owner=self.request.user)
        logger.info("Model %s uploaded by %s (%s, %s bytes)",
                    model.id, self.request.user.username, model.file_type, model.file_size)


class FeaturedModelsView(APIView):
    """GET /api/models/featured/"""
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        return Response(_list_with_likes(request, get_featured_models()))


class TrendingModelsView(APIView):
    """GET /api/models/trending/ - last TRENDING_WINDOW_DAYS, hottest first."""
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        return Response(_list_with_likes(request, get_trending_models()))


class ModelDetailView(APIView):
    """
    GET    /api/models/<id>/   detail + comment tree; records a view
    PATCH  /api/models/<id>/   owner edits metadata
    DELETE /api/models/<id>/   owner deletes the model (facts cascade)

    QUERY COUNT (GET): model+owner, all comments, view insert + counter UPDATE,
    counter refresh, is_liked, purchase lookup.
    """
    permission_classes = [permissions.IsAuthenticatedOrReadOnly, IsOwnerOrReadOnly]
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    def get_model(self, model_id):
        model = get_model_with_owner(model_id)
        if model is None:
            raise NotFound('Model not found')
        return model

    def get(self, request, model_id):
        detail = get_model_with_comment_tree(model_id)
        if detail is None or not detail['model'].is_visible_to(request.user):
            raise NotFound('Model not found')
        model = detail['model']

        services.record_view(
            model,
            user=request.user,
            ip_address=client_ip(request),
            user_agent=user_agent(request)
        )
        model.refresh_from_db(fields=['like_count', 'comment_count', 'download_count', 'view_count'])

        serializer = Model3DDetailSerializer(
            model,
            context={
                'request': request,
                'comment_tree': detail['comments'],
                'liked_ids': get_liked_model_ids(request.user, [model.id]),
                'has_purchased': services.has_purchased(request.user, model) is not None,
            }
        )
        return Response(serializer.data)

    def patch(self, request, model_id):
        model = self.get_model(model_id)
        self.check_object_permissions(request, model)
        serializer = Model3DUpdateSerializer(model, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)

    def delete(self, request, model_id):
        model = self.get_model(model_id)
        self.check_object_permissions(request, model)
        model.delete()
        logger.info("Model %s deleted by %s", model_id, request.user.username)
        return Response(status=status.HTTP_204_NO_CONTENT)


# ============================================================================
# LIKES & COMMENTS
# ============================================================================

class LikeModelView(APIView):
    """
    POST   /api/models/<id>/like/  -> created | already_exists
    DELETE /api/models/<id>/like/  -> removed | already_removed

    CONCURRENCY:
    - Unique constraint prevents duplicate likes
    - like_count moves by relative UPDATE in the same transaction
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, model_id):
        result = services.like_model(request.user, model_id)
        return Response(result.as_dict())

    def delete(self, request, model_id):
        result = services.unlike_model(request.user, model_id)
        return Response(result.as_dict())


class LikeToggleView(APIView):
    """POST /api/models/<id>/like/toggle/"""
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, model_id):
        result = services.toggle_like(request.user, model_id)
        return Response(result.as_dict())


class ModelCommentsView(APIView):
    """
    GET  /api/models/<id>/comments/   threaded tree (1 query for all comments)
    POST /api/models/<id>/comments/   {"content": "...", "parent": 123?}
    """
    permission_classes = [permissions.IsAuthenticatedOrReadOnly]

    def get(self, request, model_id):
        services.get_visible_model(request.user, model_id)
        tree = build_comment_tree(get_all_comments_for_model(model_id))
        return Response(CommentTreeSerializer(tree, many=True).data)

    def post(self, request, model_id):
        serializer = CommentCreateSerializer(data=request.data, context={'model_id': model_id})
        serializer.is_valid(raise_exception=True)
        comment = services.add_comment(
            request.user,
            model_id,
            serializer.validated_data['content'],
            parent=serializer.validated_data.get('parent')
        )
        return Response(CommentSerializer(comment).data, status=status.HTTP_201_CREATED)


class CommentDeleteView(APIView):
    """DELETE /api/comments/<id>/ - author, model owner or staff."""
    permission_classes = [permissions.IsAuthenticated]

    def delete(self, request, comment_id):
        removed = services.delete_comment(request.user, comment_id)
        return Response({'success': True, 'deleted': removed})


# ============================================================================
# DOWNLOADS
# ============================================================================

class DownloadModelView(APIView):
    """
    POST /api/models/<id>/download/

    Free public models: anyone. Paid models: owner or buyer (403 otherwise).
    """
    permission_classes = [permissions.AllowAny]

    def post(self, request, model_id):
        download = services.record_download(
            request.user,
            model_id,
            ip_address=client_ip(request),
            user_agent=user_agent(request)
        )
        model = download.model
        return Response({
            'download_id': download.id,
            'download_url': request.build_absolute_uri(model.file.url),
            'file_name': model.download_name,
            'file_type': model.file_type,
            'file_size': model.file_size,
        })


class DownloadStatsView(APIView):
    """GET /api/models/<id>/downloads/stats/"""
    permission_classes = [permissions.AllowAny]

    def get(self, request, model_id):
        model = services.get_visible_model(request.user, model_id)
        return Response(analytics.get_download_stats(model.id))


class DownloadHistoryView(generics.ListAPIView):
    """GET /api/downloads/history/ - the current user's downloads, newest first."""
    serializer_class = DownloadSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return (
            Download.objects
            .filter(user=self.request.user)
            .select_related('model')
            .order_by('-created_at')
        )


# ============================================================================
# ORDERS
# ============================================================================

class PurchaseView(APIView):
    """
    POST /api/models/<id>/purchase/

    Body: {"payment_method": "card", "payment_token": "...", "billing_address": {...}}

    201 new completed order, 200 existing completed order,
    402 declined (the failed order is returned too).
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, model_id):
        serializer = PurchaseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order, created = services.purchase_model(request.user, model_id, **serializer.validated_data)
        except PaymentDeclined as exc:
            return Response(
                {'error': str(exc), 'order': OrderSerializer(exc.order).data},
                status=status.HTTP_402_PAYMENT_REQUIRED
            )
        return Response(
            OrderSerializer(order).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )


class OrderListView(generics.ListAPIView):
    """GET /api/orders/"""
    serializer_class = OrderSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return Order.objects.filter(user=self.request.user).select_related('model', 'user')


class RefundView(APIView):
    """POST /api/orders/<id>/refund/ {"reason": "..."}"""
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, order_id):
        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.refund_order(request.user, order_id, serializer.validated_data['reason'])
        return Response(OrderSerializer(order).data)


# ============================================================================
# CREATOR DASHBOARD
# ============================================================================

class DashboardOverviewView(APIView):
    """GET /api/dashboard/overview/"""
    permission_classes = [IsCreator]

    def get(self, request):
        overview = analytics.get_creator_overview(request.user)
        overview['recent_models'] = Model3DListSerializer(
            overview['recent_models'], many=True, context={'request': request}
        ).data
        return Response(overview)


class DashboardAnalyticsView(APIView):
    """GET /api/dashboard/analytics/?period=7d|30d|90d"""
    permission_classes = [IsCreator]

    def get(self, request):
        period = request.query_params.get('period', analytics.DEFAULT_PERIOD)
        data = analytics.get_creator_analytics(request.user, period)
        data['top_models'] = TopModelSerializer(data['top_models'], many=True).data
        return Response(data)


class DashboardEarningsView(generics.ListAPIView):
    """
    GET /api/dashboard/earnings/

    Paginated sales of the creator's models plus a summary block.
    """
    serializer_class = OrderSerializer
    permission_classes = [IsCreator]

    def get_queryset(self):
        return analytics.get_sales(self.request.user)

    def list(self, request, *args, **kwargs):
        response = super().list(request, *args, **kwargs)
        response.data['summary'] = analytics.get_earnings_summary(request.user)
        return response


class DashboardUploadsView(ModelListMixin, generics.ListAPIView):
    """GET /api/dashboard/uploads/?status=all|public|private"""
    serializer_class = Model3DListSerializer
    permission_classes = [IsCreator]

    def get_queryset(self):
        queryset = (
            Model3D.objects
            .filter(owner=self.request.user)
            .select_related('owner', 'owner__profile')
            .order_by('-created_at')
        )
        upload_status = self.request.query_params.get('status', 'all')
        if upload_status == 'public':
            queryset = queryset.filter(is_public=True)
        elif upload_status == 'private':
            queryset = queryset.filter(is_public=False)
        return queryset


class UploadStatusView(APIView):
    """PATCH /api/dashboard/uploads/<id>/status/ {"is_public": bool}"""
    permission_classes = [IsCreator]

    def patch(self, request, model_id):
        model = get_object_or_404(Model3D, id=model_id, owner=request.user)
        serializer = ModelStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        model.is_public = serializer.validated_data['is_public']
        model.save(update_fields=['is_public', 'updated_at'])
        return Response({'id': model.id, 'is_public': model.is_public})


# ============================================================================
# STATISTICS
# ============================================================================

class PlatformStatsView(APIView):
    """GET /api/stats/platform/"""
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        stats = analytics.get_platform_stats()
        context = {'request': request}
        stats['recent_models'] = Model3DListSerializer(stats['recent_models'], many=True, context=context).data
        stats['trending_models'] = Model3DListSerializer(stats['trending_models'], many=True, context=context).data
        return Response(stats)


class ModelStatsView(APIView):
    """GET /api/models/<id>/stats/ - owner or staff."""
    permission_classes = [permissions.IsAuthenticated, IsOwnerOrStaff]

    def get(self, request, model_id):
        model = get_object_or_404(Model3D, id=model_id)
        self.check_object_permissions(request, model)
        stats = analytics.get_model_stats(model)
        stats['recent_views'] = ActivitySerializer(stats['recent_views'], many=True).data
        stats['recent_downloads'] = ActivitySerializer(stats['recent_downloads'], many=True).data
        stats['model'] = {'id': model.id, 'title': model.title}
        return Response(stats)


class ReconcileModelView(APIView):
    """
    POST /api/models/<id>/reconcile/

    Staff only. Recounts the fact tables and overwrites the cached counters.
    """
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, model_id):
        result = counters.reconcile(model_id)
        return Response(result.as_dict())
