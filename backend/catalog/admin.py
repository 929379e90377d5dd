"""
Django Admin Configuration for Catalog Models

Fact rows (likes, comments, downloads, views) are never added or re-pointed
here. Like and comment deletes go through catalog.services so the cached
counters follow; downloads and views are append-only.
"""
from django.contrib import admin, messages
from django.contrib.auth.admin import UserAdmin
from django.contrib.auth.models import User

from . import counters, services
from .models import Comment, Download, Follow, Like, Model3D, ModelView, Order, Profile

CACHED_COUNTERS = ['like_count', 'comment_count', 'download_count', 'view_count']

# verbose names of fact models with no delete permission of their own
APPEND_ONLY_FACTS = {Download._meta.verbose_name, ModelView._meta.verbose_name}


class FactCascadeMixin:
    """Let downloads and views cascade with a deleted model or user."""

    def get_deleted_objects(self, objs, request):
        deleted, model_count, perms_needed, protected = super().get_deleted_objects(objs, request)
        return deleted, model_count, perms_needed - APPEND_ONLY_FACTS, protected


admin.site.unregister(User)


@admin.register(User)
class CatalogUserAdmin(FactCascadeMixin, UserAdmin):
    pass


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ['user', 'display_name', 'role', 'is_verified', 'created_at']
    list_filter = ['role', 'is_verified']
    search_fields = ['user__username', 'display_name']


@admin.register(Model3D)
class Model3DAdmin(FactCascadeMixin, admin.ModelAdmin):
    list_display = ['title', 'owner', 'category', 'is_public', 'is_free', *CACHED_COUNTERS,
                    'counters_stale', 'created_at']
    list_filter = ['category', 'is_public', 'is_free', 'is_featured', 'counters_stale', 'created_at']
    search_fields = ['title', 'description', 'tags', 'owner__username']
    # Counters only move through catalog.counters
    readonly_fields = [*CACHED_COUNTERS, 'counters_stale', 'file_size', 'file_type',
                       'created_at', 'updated_at']
    actions = ['reconcile_counters']

    @admin.action(description='Reconcile cached counters')
    def reconcile_counters(self, request, queryset):
        results = counters.reconcile_many(queryset)
        corrected = sum(1 for result in results if result.corrected)
        self.message_user(
            request,
            f'Reconciled {len(results)} model(s); {corrected} had drifted counters.',
            messages.WARNING if corrected else messages.SUCCESS
        )


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ['id', 'model', 'author', 'parent', 'depth', 'created_at']
    list_filter = ['created_at', 'depth']
    search_fields = ['content', 'author__username']
    readonly_fields = ['model', 'author', 'parent', 'depth', 'created_at', 'updated_at']

    def has_add_permission(self, request):
        # Admin-created comments would skip comment_count
        return False

    def delete_model(self, request, obj):
        services.delete_comment(request.user, obj.id)

    def delete_queryset(self, request, queryset):
        # Parents first; a reply may already be gone with its parent
        for comment_id in list(queryset.order_by('depth').values_list('id', flat=True)):
            if Comment.objects.filter(id=comment_id).exists():
                services.delete_comment(request.user, comment_id)


@admin.register(Like)
class LikeAdmin(admin.ModelAdmin):
    list_display = ['user', 'model', 'created_at']
    list_filter = ['created_at']
    search_fields = ['user__username', 'model__title']
    readonly_fields = ['user', 'model', 'created_at']

    def has_add_permission(self, request):
        return False

    def delete_model(self, request, obj):
        services.unlike_model(obj.user, obj.model_id)

    def delete_queryset(self, request, queryset):
        for like in queryset.select_related('user'):
            services.unlike_model(like.user, like.model_id)


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'model', 'amount', 'currency', 'status', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['user__username', 'model__title', 'payment_reference']
    readonly_fields = ['payment_reference', 'refunded_at', 'created_at', 'updated_at']


@admin.register(Download)
class DownloadAdmin(admin.ModelAdmin):
    list_display = ['model', 'user', 'order', 'ip_address', 'created_at']
    list_filter = ['created_at']
    search_fields = ['model__title', 'user__username']
    readonly_fields = ['model', 'user', 'order', 'ip_address', 'user_agent', 'created_at']

    def has_add_permission(self, request):
        # Downloads are recorded by the download endpoint only
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ModelView)
class ModelViewAdmin(admin.ModelAdmin):
    list_display = ['model', 'user', 'ip_address', 'created_at']
    list_filter = ['created_at']
    readonly_fields = ['model', 'user', 'ip_address', 'user_agent', 'created_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


admin.site.register(Follow)
