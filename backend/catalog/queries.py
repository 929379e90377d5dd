"""
Read-Path Query Helpers
=======================

Listing and detail pages read the cached counters on Model3D instead of
running COUNT(*) joins over the fact tables per row.

COMMENT TREES:
--------------
1. Fetch ALL comments for a model in ONE query (select_related author)
2. Build the tree in Python with an O(n) single pass

This gives 1 query for the model + 1 query for all comments, regardless of
nesting depth.
"""

from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.contrib.auth.models import User
from django.db.models import Q, QuerySet
from django.utils import timezone

from .models import Comment, Like, Model3D

SORT_ORDERINGS = {
    'newest': ['-created_at'],
    'oldest': ['created_at'],
    'popular': ['-view_count', '-created_at'],
    'downloads': ['-download_count', '-created_at'],
    'likes': ['-like_count', '-created_at'],
}


def public_models() -> QuerySet:
    return Model3D.objects.filter(is_public=True).select_related('owner', 'owner__profile')


def get_model_with_owner(model_id: int) -> Optional[Model3D]:
    """Fetch a single model with its owner and owner profile (1 query)."""
    return (
        Model3D.objects
        .select_related('owner', 'owner__profile')
        .filter(id=model_id)
        .first()
    )


def search_models(
    search: str = '',
    category: str = '',
    tags: Optional[list[str]] = None,
    creator: str = '',
    free: Optional[bool] = None,
    sort: str = 'newest'
) -> QuerySet:
    """
    Browse/search over public models.

    - search: case-insensitive match on title, description, tags
    - tags: any-of match against the comma-separated tag column
    - sort: newest | oldest | popular | downloads | likes (unknown -> newest)
    """
    queryset = public_models()

    if search:
        queryset = queryset.filter(
            Q(title__icontains=search) |
            Q(description__icontains=search) |
            Q(tags__icontains=search)
        )

    if category:
        queryset = queryset.filter(category=category)

    if tags:
        tag_filter = Q()
        for tag in tags:
            tag_filter |= _tag_q(tag)
        queryset = queryset.filter(tag_filter)

    if creator:
        queryset = queryset.filter(owner__username=creator)

    if free is not None:
        queryset = queryset.filter(is_free=free)

    return queryset.order_by(*SORT_ORDERINGS.get(sort, SORT_ORDERINGS['newest']))


def _tag_q(tag: str) -> Q:
    """Exact tag match inside a comma-separated column."""
    tag = tag.strip().lower()
    return (
        Q(tags=tag) |
        Q(tags__startswith=f'{tag},') |
        Q(tags__endswith=f',{tag}') |
        Q(tags__contains=f',{tag},')
    )


def get_featured_models(limit: int = 12) -> QuerySet:
    return public_models().filter(is_featured=True).order_by('-created_at')[:limit]


def get_trending_models(limit: int = 12, days: Optional[int] = None) -> QuerySet:
    """
    Public models uploaded in the trending window, hottest first.

    Ordered by the cached counters: views, then likes, then downloads.
    """
    days = days if days is not None else settings.TRENDING_WINDOW_DAYS
    cutoff = timezone.now() - timedelta(days=days)
    return (
        public_models()
        .filter(created_at__gte=cutoff)
        .order_by('-view_count', '-like_count', '-download_count', '-created_at')[:limit]
    )


def get_all_comments_for_model(model_id: int) -> list[Comment]:
    """
    Fetch ALL comments for a model in a SINGLE query.

    Ordered by created_at so parents precede their replies.
    """
    return list(
        Comment.objects
        .filter(model_id=model_id)
        .select_related('author')
        .order_by('created_at', 'id')
    )


def build_comment_tree(flat_comments: list[Comment]) -> list[dict]:
    """
    Build nested tree structure from flat list.

    Algorithm: O(n) with a lookup dict {id -> node}.

    Example Output:
        [
            {
                'comment': Comment(id=1),
                'replies': [
                    {'comment': Comment(id=2), 'replies': []},
                ]
            }
        ]
    """
    nodes = {
        comment.id: {'comment': comment, 'replies': []}
        for comment in flat_comments
    }

    root_nodes = []
    for comment in flat_comments:
        node = nodes[comment.id]
        parent_node = nodes.get(comment.parent_id) if comment.parent_id else None
        if parent_node is not None:
            parent_node['replies'].append(node)
        else:
            # Top-level comment, or orphan whose parent is missing
            root_nodes.append(node)

    return root_nodes


def get_model_with_comment_tree(model_id: int) -> Optional[dict]:
    """
    Model plus its fully nested comment tree.

    TOTAL QUERIES: 2
    - 1 for model + owner
    - 1 for all comments + authors
    """
    model = get_model_with_owner(model_id)
    if not model:
        return None

    flat_comments = get_all_comments_for_model(model_id)
    return {
        'model': model,
        'comments': build_comment_tree(flat_comments),
        'comment_count': len(flat_comments)
    }


def get_liked_model_ids(user: User, model_ids: list[int]) -> set[int]:
    """Which of these models has the user liked? One query."""
    if not user or not user.is_authenticated or not model_ids:
        return set()
    return set(
        Like.objects
        .filter(user=user, model_id__in=model_ids)
        .values_list('model_id', flat=True)
    )


def get_user_by_username(username: str) -> Optional[User]:
    return User.objects.select_related('profile').filter(username=username).first()
