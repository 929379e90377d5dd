"""
Fact Recording Services
=======================

Every user action that changes a cached counter goes through this module:
like, unlike, comment, delete comment, view, download. Orders and follows
live here too because they share the same transaction/IntegrityError idiom.

TRANSACTION STRATEGY:
---------------------
    with transaction.atomic():           # fact write: critical path
        Like.objects.create(...)
        with transaction.atomic():       # savepoint: counter, best effort
            counters.record_fact_created(...)

The fact row and its counter update commit together. If the counter UPDATE
fails with a transient database error, only the savepoint rolls back: the
fact row still commits, the user's action still succeeds, and the model is
flagged `counters_stale` for reconcile. The fact tables are the system of
record; the counters are a cache.

CONCURRENCY STRATEGY:
---------------------
Duplicate likes and follows: unique constraint + IntegrityError.
    - Try to insert
    - DB rejects the duplicate
    - Catch IntegrityError, report 'already_exists'
Counter updates: relative F() updates only (see counters.py).
"""

import logging
import uuid
from typing import Literal, Optional

from django.conf import settings
from django.contrib.auth.models import User
from django.core.exceptions import PermissionDenied
from django.db import IntegrityError, OperationalError, transaction
from django.db.models import Count
from django.http import Http404
from django.utils import timezone

from . import counters
from .exceptions import (
    AlreadyFollowing,
    ModelNotFound,
    PaymentDeclined,
    PurchaseError,
)
from .models import Comment, Download, FactKind, Follow, Like, Model3D, ModelView, Order

logger = logging.getLogger(__name__)

# Payment token that makes the simulated gateway decline the charge
DECLINED_PAYMENT_TOKEN = 'tok_declined'


class LikeResult:
    """Result of a like operation."""
    def __init__(
        self,
        success: bool,
        action: Literal['created', 'removed', 'already_exists', 'already_removed']
    ):
        self.success = success
        self.action = action

    def as_dict(self) -> dict:
        return {'success': self.success, 'action': self.action}


# ============================================================================
# COUNTER SYNC
# ============================================================================

def _sync_counter(model_id: int, kind: FactKind, created: bool = True, count: int = 1) -> bool:
    """
    Apply the counter change for a fact write in the current transaction.

    Runs in a savepoint and retries transient OperationalErrors up to
    COUNTER_UPDATE_RETRIES times. Returns False if it gave up, in which case
    the model has been flagged for reconcile. ModelNotFound propagates so
    the caller's fact write rolls back with it.
    """
    attempts = max(1, settings.COUNTER_UPDATE_RETRIES)
    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                if created:
                    counters.record_fact_created(model_id, kind)
                else:
                    counters.record_fact_deleted(model_id, kind, count=count)
            return True
        except OperationalError as exc:
            logger.warning(
                "Counter update (%s, model %s) failed, attempt %s/%s: %s",
                kind, model_id, attempt, attempts, exc
            )

    logger.warning(
        "Counter update (%s, model %s) gave up after %s attempts; flagged for reconcile",
        kind, model_id, attempts
    )
    counters.mark_stale(model_id)
    return False


# ============================================================================
# LOOKUPS
# ============================================================================

def get_visible_model(user, model_id: int) -> Model3D:
    """Fetch a model the user may see (public, or their own)."""
    model = Model3D.objects.select_related('owner').filter(id=model_id).first()
    if model is None or not model.is_visible_to(user):
        raise ModelNotFound(model_id)
    return model


def has_purchased(user, model: Model3D) -> Optional[Order]:
    """Return the user's completed order for the model, if any."""
    if not user or not user.is_authenticated:
        return None
    return (
        Order.objects
        .filter(user=user, model=model, status=Order.Status.COMPLETED)
        .order_by('-created_at')
        .first()
    )


# ============================================================================
# LIKES
# ============================================================================

def like_model(user: User, model_id: int) -> LikeResult:
    """
    Like a model atomically.

    OPERATION:
    1. Get model (verify exists and visible)
    2. Try to create Like (unique constraint prevents duplicates)
    3. If success: increment like_count in the same transaction
    4. If IntegrityError: like already exists, counter untouched
    """
    model = get_visible_model(user, model_id)

    try:
        with transaction.atomic():
            Like.objects.create(user=user, model=model)
            _sync_counter(model.id, FactKind.LIKE)
    except IntegrityError:
        return LikeResult(success=False, action='already_exists')

    return LikeResult(success=True, action='created')


def unlike_model(user: User, model_id: int) -> LikeResult:
    """Remove a like. Decrements only if a like row was actually deleted."""
    with transaction.atomic():
        deleted_count, _ = Like.objects.filter(user=user, model_id=model_id).delete()
        if not deleted_count:
            return LikeResult(success=False, action='already_removed')
        _sync_counter(model_id, FactKind.LIKE, created=False, count=deleted_count)

    return LikeResult(success=True, action='removed')


def toggle_like(user: User, model_id: int) -> LikeResult:
    """
    Like if not liked yet, otherwise unlike.

    The existence check is not atomic with the toggle. A race degrades to
    'already_exists' / 'already_removed'; counters stay correct either way.
    """
    if Like.objects.filter(user=user, model_id=model_id).exists():
        return unlike_model(user, model_id)
    return like_model(user, model_id)


# ============================================================================
# COMMENTS
# ============================================================================

def add_comment(user: User, model_id: int, content: str, parent: Optional[Comment] = None) -> Comment:
    """
    Create a comment (or reply) and bump comment_count.

    Depth = parent.depth + 1, capped at MAX_COMMENT_DEPTH.
    """
    model = get_visible_model(user, model_id)

    depth = 0
    if parent is not None:
        if parent.model_id != model.id:
            raise ValueError('Parent comment must belong to the same model.')
        if parent.depth >= settings.MAX_COMMENT_DEPTH:
            raise ValueError(
                f'Maximum reply depth ({settings.MAX_COMMENT_DEPTH}) reached. Cannot nest deeper.'
            )
        depth = parent.depth + 1

    with transaction.atomic():
        comment = Comment.objects.create(
            model=model,
            author=user,
            parent=parent,
            content=content,
            depth=depth
        )
        _sync_counter(model.id, FactKind.COMMENT)

    return comment


def delete_comment(user: User, comment_id: int) -> int:
    """
    Delete a comment and its replies.

    Allowed for the comment author, the model owner, and staff.
    Returns the number of comment rows removed; comment_count drops by that.
    """
    comment = Comment.objects.select_related('model').filter(id=comment_id).first()
    if comment is None:
        raise Http404('Comment not found')
    if user.id not in (comment.author_id, comment.model.owner_id) and not user.is_staff:
        raise PermissionDenied('You cannot delete this comment.')

    with transaction.atomic():
        _, per_model = Comment.objects.filter(id=comment.id).delete()
        removed = per_model.get(Comment._meta.label, 0)
        _sync_counter(comment.model_id, FactKind.COMMENT, created=False, count=removed)

    return removed


# ============================================================================
# VIEWS & DOWNLOADS
# ============================================================================

def record_view(model: Model3D, user=None, ip_address: str = None, user_agent: str = '') -> ModelView:
    """Append a view fact for a detail page render."""
    with transaction.atomic():
        view = ModelView.objects.create(
            model=model,
            user=user if user and user.is_authenticated else None,
            ip_address=ip_address,
            user_agent=user_agent or ''
        )
        _sync_counter(model.id, FactKind.VIEW)
    return view


def record_download(user, model_id: int, ip_address: str = None, user_agent: str = '') -> Download:
    """
    Authorize and record a download.

    ACCESS RULES:
    - Model must be visible to the user (public, or own)
    - Free model: anyone, including anonymous visitors
    - Paid model: the owner, or a user with a completed order
    """
    model = get_visible_model(user, model_id)
    is_owner = bool(user and user.is_authenticated and user.id == model.owner_id)

    order = None
    if not model.is_free and not is_owner:
        order = has_purchased(user, model)
        if order is None:
            raise PermissionDenied('This model requires payment.')

    with transaction.atomic():
        download = Download.objects.create(
            model=model,
            user=user if user and user.is_authenticated else None,
            order=order,
            ip_address=ip_address,
            user_agent=user_agent or ''
        )
        _sync_counter(model.id, FactKind.DOWNLOAD)

    return download


# ============================================================================
# ORDERS (simulated payment)
# ============================================================================

def purchase_model(
    user: User,
    model_id: int,
    payment_method: str = 'card',
    payment_token: str = '',
    billing_address: Optional[dict] = None
) -> tuple[Order, bool]:
    """
    Buy a paid model through the simulated gateway.

    Returns (order, created). An existing completed order is returned as-is.
    A declined token leaves a failed order on record and raises PaymentDeclined.
    """
    model = get_visible_model(user, model_id)
    if model.is_free:
        raise PurchaseError('This model is free to download.')
    if model.owner_id == user.id:
        raise PurchaseError('You cannot purchase your own model.')

    existing = has_purchased(user, model)
    if existing is not None:
        return existing, False

    with transaction.atomic():
        order = Order.objects.create(
            user=user,
            model=model,
            amount=model.price,
            payment_method=payment_method,
            billing_address=billing_address
        )
        if payment_token == DECLINED_PAYMENT_TOKEN:
            order.status = Order.Status.FAILED
        else:
            order.status = Order.Status.COMPLETED
            order.payment_reference = f'sim_{uuid.uuid4().hex}'
        order.save(update_fields=['status', 'payment_reference', 'updated_at'])

    if order.status == Order.Status.FAILED:
        logger.info("Order %s declined (user %s, model %s)", order.id, user.id, model.id)
        raise PaymentDeclined(order)

    logger.info("Order %s completed (user %s, model %s, %s %s)",
                order.id, user.id, model.id, order.amount, order.currency)
    return order, True


def refund_order(user: User, order_id: int, reason: str = '') -> Order:
    """Refund a completed order owned by the user. Revokes download access."""
    with transaction.atomic():
        order = (
            Order.objects
            .select_for_update()
            .filter(id=order_id, user=user)
            .first()
        )
        if order is None:
            raise Http404('Order not found')
        if order.status != Order.Status.COMPLETED:
            raise PurchaseError(f'Only completed orders can be refunded (status: {order.status}).')

        order.status = Order.Status.REFUNDED
        order.refund_reason = reason
        order.refunded_at = timezone.now()
        order.save(update_fields=['status', 'refund_reason', 'refunded_at', 'updated_at'])

    logger.info("Order %s refunded", order.id)
    return order


# ============================================================================
# FOLLOWS
# ============================================================================

def follow_user(follower: User, target: User) -> Follow:
    if follower.id == target.id:
        raise ValueError('Cannot follow yourself.')
    try:
        with transaction.atomic():
            return Follow.objects.create(follower=follower, following=target)
    except IntegrityError:
        raise AlreadyFollowing('You are already following this user.')


def unfollow_user(follower: User, target: User) -> bool:
    deleted_count, _ = Follow.objects.filter(follower=follower, following=target).delete()
    return deleted_count > 0


# ============================================================================
# ACCOUNT DELETION
# ============================================================================

def _comment_subtree_ids(root_ids: set[int]) -> set[int]:
    """Root comments plus every reply below them, one query per depth level."""
    ids = set(root_ids)
    frontier = set(root_ids)
    while frontier:
        children = set(
            Comment.objects
            .filter(parent_id__in=frontier)
            .values_list('id', flat=True)
        ) - ids
        ids |= children
        frontier = children
    return ids


def release_user_facts(user: User) -> dict:
    """
    Decrement counters for the likes and comments a user's deletion removes.

    Must run before the user row is deleted, in the same transaction. Likes
    and comments cascade with the user, and so do replies from other users
    under their comments. Facts on the user's own models are skipped: those
    models are deleted too. Views and downloads survive with user=NULL.

    Returns {model_id: {'like': n, 'comment': n}} for the models touched.
    """
    released = {}

    likes = (
        Like.objects
        .filter(user=user)
        .exclude(model__owner=user)
        .values('model_id')
        .annotate(n=Count('id'))
    )
    for row in likes:
        released.setdefault(row['model_id'], {})['like'] = row['n']

    own_comment_ids = set(
        Comment.objects
        .filter(author=user)
        .exclude(model__owner=user)
        .values_list('id', flat=True)
    )
    comments = (
        Comment.objects
        .filter(id__in=_comment_subtree_ids(own_comment_ids))
        .values('model_id')
        .annotate(n=Count('id'))
    )
    for row in comments:
        released.setdefault(row['model_id'], {})['comment'] = row['n']

    for model_id, removed in released.items():
        if removed.get('like'):
            _sync_counter(model_id, FactKind.LIKE, created=False, count=removed['like'])
        if removed.get('comment'):
            _sync_counter(model_id, FactKind.COMMENT, created=False, count=removed['comment'])

    if released:
        logger.info("Released facts of user %s on %s model(s)", user.username, len(released))
    return released
