"""
Dashboard & Statistics Queries
==============================

Aggregate queries behind the creator dashboard, per-model stats and the
public platform stats.

Two kinds of numbers show up here:
- Totals ("how many downloads did I get") are counted from the fact tables.
  They are exact even if a cached counter has drifted.
- Rankings ("top models") order by the cached counters on Model3D so they
  can use the counter indexes.

Time series group fact rows per calendar day (UTC) with TruncDate:

    SELECT DATE(created_at) AS day, COUNT(id)
    FROM catalog_modelview
    WHERE model_id IN (...) AND created_at >= %s
    GROUP BY day ORDER BY day
"""

from datetime import timedelta
from decimal import Decimal
from typing import List, TypedDict

from django.contrib.auth.models import User
from django.db.models import Count, QuerySet, Sum
from django.db.models.functions import Coalesce, TruncDate
from django.utils import timezone

from .models import Comment, Download, Like, Model3D, ModelView, Order
from .queries import get_trending_models, public_models

ANALYTICS_PERIODS = {
    '7d': 7,
    '30d': 30,
    '90d': 90,
}
DEFAULT_PERIOD = '30d'


class DailyPoint(TypedDict):
    date: str
    count: int


def _day_series(queryset: QuerySet) -> List[DailyPoint]:
    rows = (
        queryset
        .annotate(day=TruncDate('created_at'))
        .values('day')
        .annotate(count=Count('id'))
        .order_by('day')
    )
    return [{'date': row['day'].isoformat(), 'count': row['count']} for row in rows]


def _sum(queryset: QuerySet, field: str = 'amount') -> Decimal:
    return queryset.aggregate(total=Coalesce(Sum(field), Decimal('0')))['total']


def period_start(period: str):
    days = ANALYTICS_PERIODS.get(period, ANALYTICS_PERIODS[DEFAULT_PERIOD])
    return timezone.now() - timedelta(days=days)


# ============================================================================
# CREATOR DASHBOARD
# ============================================================================

def get_creator_overview(user: User) -> dict:
    """Totals over all of a creator's models, plus the 5 newest uploads."""
    sales = Order.objects.filter(model__owner=user, status=Order.Status.COMPLETED)
    return {
        'stats': {
            'total_models': Model3D.objects.filter(owner=user).count(),
            'total_views': ModelView.objects.filter(model__owner=user).count(),
            'total_downloads': Download.objects.filter(model__owner=user).count(),
            'total_likes': Like.objects.filter(model__owner=user).count(),
            'total_comments': Comment.objects.filter(model__owner=user).count(),
        },
        'recent_models': list(
            Model3D.objects
            .filter(owner=user)
            .select_related('owner', 'owner__profile')
            .order_by('-created_at')[:5]
        ),
        'earnings': {
            'total': _sum(sales),
            'count': sales.count(),
        },
    }


def get_creator_analytics(user: User, period: str = DEFAULT_PERIOD) -> dict:
    """Views/downloads per day over the period and the creator's top 10 models."""
    if period not in ANALYTICS_PERIODS:
        period = DEFAULT_PERIOD
    start = period_start(period)

    top_models = (
        Model3D.objects
        .filter(owner=user)
        .order_by('-view_count', '-download_count', '-created_at')
        .values('id', 'title', 'view_count', 'download_count', 'like_count')[:10]
    )

    return {
        'period': period,
        'views_data': _day_series(
            ModelView.objects.filter(model__owner=user, created_at__gte=start)
        ),
        'downloads_data': _day_series(
            Download.objects.filter(model__owner=user, created_at__gte=start)
        ),
        'top_models': list(top_models),
    }


def get_earnings_summary(user: User) -> dict:
    """
    Revenue from orders on the creator's models.

    total    = completed orders
    pending  = orders still pending
    refunded = refunded orders
    """
    sales = Order.objects.filter(model__owner=user)
    return {
        'total': _sum(sales.filter(status=Order.Status.COMPLETED)),
        'pending': _sum(sales.filter(status=Order.Status.PENDING)),
        'refunded': _sum(sales.filter(status=Order.Status.REFUNDED)),
        'count': sales.count(),
    }


def get_sales(user: User) -> QuerySet:
    return (
        Order.objects
        .filter(model__owner=user)
        .select_related('model', 'user')
        .order_by('-created_at')
    )


# ============================================================================
# PER-MODEL STATS
# ============================================================================

def get_download_stats(model_id: int) -> dict:
    """Download totals for one model, counted from fact rows."""
    now = timezone.now()
    start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    downloads = Download.objects.filter(model_id=model_id)
    return {
        'total_downloads': downloads.count(),
        'downloads_today': downloads.filter(created_at__gte=start_of_today).count(),
        'downloads_this_week': downloads.filter(created_at__gte=now - timedelta(days=7)).count(),
        'downloads_this_month': downloads.filter(created_at__gte=now - timedelta(days=30)).count(),
    }


def get_model_stats(model: Model3D, days: int = 30) -> dict:
    """Owner-facing stats for one model: totals, daily series, recent activity."""
    start = timezone.now() - timedelta(days=days)
    views = ModelView.objects.filter(model=model)
    downloads = Download.objects.filter(model=model)

    return {
        'overview': {
            'total_views': views.count(),
            'total_downloads': downloads.count(),
            'total_likes': Like.objects.filter(model=model).count(),
            'total_comments': Comment.objects.filter(model=model).count(),
        },
        'views_by_day': _day_series(views.filter(created_at__gte=start)),
        'downloads_by_day': _day_series(downloads.filter(created_at__gte=start)),
        'recent_views': list(views.select_related('user').order_by('-created_at')[:10]),
        'recent_downloads': list(downloads.select_related('user').order_by('-created_at')[:10]),
    }


# ============================================================================
# PLATFORM STATS
# ============================================================================

def get_platform_stats() -> dict:
    top_categories = (
        Model3D.objects
        .filter(is_public=True)
        .values('category')
        .annotate(count=Count('id'))
        .order_by('-count', 'category')[:5]
    )

    return {
        'overview': {
            'total_models': Model3D.objects.filter(is_public=True).count(),
            'total_users': User.objects.count(),
            'total_downloads': Download.objects.count(),
            'total_views': ModelView.objects.count(),
            'total_likes': Like.objects.count(),
            'total_comments': Comment.objects.count(),
        },
        'top_categories': list(top_categories),
        'recent_models': list(public_models().order_by('-created_at')[:5]),
        'trending_models': list(get_trending_models(limit=5)),
    }
