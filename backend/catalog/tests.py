"""
Tests for the Sharespace catalog

Focus areas:
1. Cached counters (relative updates, floor at zero, reconcile, retries)
2. Like/follow uniqueness under IntegrityError
3. Comment tree building (no N+1)
4. API surface: uploads, browse, downloads, orders, dashboard, stats
"""

import os
import shutil
import tempfile
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest import skipUnless
from unittest.mock import patch

import pytest
from django.contrib.auth.models import User
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import CommandError, call_command
from django.db import OperationalError, connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.test.utils import CaptureQueriesContext
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from . import analytics, counters, services
from .exceptions import AlreadyFollowing, ModelNotFound, PaymentDeclined, PurchaseError
from .models import Comment, Download, Follow, Like, Model3D, ModelView, Order, Profile
from .queries import build_comment_tree, get_all_comments_for_model, get_model_with_comment_tree, search_models
from .serializers import Model3DUpdateSerializer


def make_user(username, role=Profile.Role.USER, **extra):
    user = User.objects.create_user(username, f'{username}@test.com', 'pass', **extra)
    if role != Profile.Role.USER:
        Profile.objects.filter(user=user).update(role=role)
        user.profile.refresh_from_db()
    return user


def make_model(owner, title='Fox', **fields):
    fields.setdefault('file', f"models/{title.lower().replace(' ', '-')}.glb")
    fields.setdefault('file_type', 'glb')
    fields.setdefault('file_size', 1024)
    return Model3D.objects.create(owner=owner, title=title, **fields)


def counts(model):
    model.refresh_from_db()
    return {
        'like_count': model.like_count,
        'comment_count': model.comment_count,
        'download_count': model.download_count,
        'view_count': model.view_count,
    }


# ============================================================================
# COUNTERS
# ============================================================================

class CounterMaintenanceTestCase(TestCase):
    """
    Test the counter primitives in catalog.counters.

    These tests verify that:
    1. Increments are relative (never overwrite a concurrent change)
    2. Decrements are floored at zero
    3. reconcile() restores ground truth and is idempotent
    """

    def setUp(self):
        self.owner = make_user('owner', Profile.Role.CREATOR)
        self.model = make_model(self.owner)

    def test_increment_is_relative(self):
        """An out-of-band change made after the instance was loaded is kept."""
        stale = Model3D.objects.get(pk=self.model.pk)
        Model3D.objects.filter(pk=self.model.pk).update(like_count=5)

        counters.record_fact_created(stale.id, 'like')

        self.assertEqual(counts(self.model)['like_count'], 6)

    def test_increment_touches_only_one_counter(self):
        counters.record_fact_created(self.model.id, 'download')
        self.assertEqual(counts(self.model), {
            'like_count': 0,
            'comment_count': 0,
            'download_count': 1,
            'view_count': 0,
        })

    def test_unknown_model_raises(self):
        with self.assertRaises(ModelNotFound):
            counters.record_fact_created(999999, 'like')
        with self.assertRaises(ModelNotFound):
            counters.record_fact_deleted(999999, 'like')

    def test_unknown_kind_raises(self):
        with self.assertRaises(ValueError):
            counters.record_fact_created(self.model.id, 'share')

    def test_decrement_floors_at_zero(self):
        """More deletes than creates never drives a counter negative."""
        counters.record_fact_created(self.model.id, 'comment')

        with self.assertLogs('catalog.counters', level='WARNING') as logs:
            counters.record_fact_deleted(self.model.id, 'comment')
            counters.record_fact_deleted(self.model.id, 'comment')
            counters.record_fact_deleted(self.model.id, 'comment', count=3)

        self.assertEqual(counts(self.model)['comment_count'], 0)
        self.assertEqual(len(logs.records), 2)
        self.assertIn('clamped at zero', logs.output[0])

    def test_decrement_by_zero_is_noop(self):
        Model3D.objects.filter(pk=self.model.pk).update(view_count=2)
        counters.record_fact_deleted(self.model.id, 'view', count=0)
        self.assertEqual(counts(self.model)['view_count'], 2)

    def test_reconcile_matches_fact_tables(self):
        """After any sequence of fact writes, reconcile equals live row counts."""
        fans = [make_user(f'fan{i}') for i in range(3)]
        for fan in fans:
            services.like_model(fan, self.model.id)
        services.unlike_model(fans[0], self.model.id)
        services.add_comment(fans[1], self.model.id, 'Nice')
        services.record_view(self.model, user=fans[2])
        services.record_download(fans[2], self.model.id)

        # Corrupt every counter behind the application's back
        Model3D.objects.filter(pk=self.model.pk).update(
            like_count=40, comment_count=0, download_count=7, view_count=3
        )

        result = counters.reconcile(self.model.id)

        expected = {'like_count': 2, 'comment_count': 1, 'download_count': 1, 'view_count': 1}
        self.assertEqual(result.counts, expected)
        self.assertEqual(counts(self.model), expected)
        self.assertEqual(result.drift['like_count'], (40, 2))
        self.assertTrue(result.corrected)

    def test_reconcile_is_idempotent(self):
        services.like_model(make_user('fan'), self.model.id)
        Model3D.objects.filter(pk=self.model.pk).update(like_count=9)

        first = counters.reconcile(self.model.id)
        second = counters.reconcile(self.model.id)

        self.assertTrue(first.corrected)
        self.assertFalse(second.corrected)
        self.assertEqual(first.counts, second.counts)
        self.assertEqual(counts(self.model)['like_count'], 1)

    def test_reconcile_simulated_drift(self):
        """3 cached likes, 2 like rows -> reconcile sets 2."""
        Like.objects.create(model=self.model, user=make_user('a'))
        Like.objects.create(model=self.model, user=make_user('b'))
        Model3D.objects.filter(pk=self.model.pk).update(like_count=3)

        counters.reconcile(self.model.id)

        self.assertEqual(counts(self.model)['like_count'], 2)

    def test_reconcile_clears_stale_flag(self):
        counters.mark_stale(self.model.id)
        self.model.refresh_from_db()
        self.assertTrue(self.model.counters_stale)

        counters.reconcile(self.model.id)

        self.model.refresh_from_db()
        self.assertFalse(self.model.counters_stale)

    def test_reconcile_missing_model(self):
        with self.assertRaises(ModelNotFound):
            counters.reconcile(999999)

    def test_reconcile_many_stale_only(self):
        other = make_model(self.owner, title='Crate')
        Model3D.objects.filter(pk__in=[self.model.pk, other.pk]).update(view_count=5)
        counters.mark_stale(other.id)

        results = counters.reconcile_many(stale_only=True)

        self.assertEqual([r.model_id for r in results], [other.id])
        self.assertEqual(counts(other)['view_count'], 0)
        self.assertEqual(counts(self.model)['view_count'], 5)


class CounterRetryTestCase(TestCase):
    """
    Counter updates are best effort: the fact row always commits.

    A failing counter UPDATE is retried COUNTER_UPDATE_RETRIES times, then the
    model is flagged stale for reconcile.
    """

    def setUp(self):
        self.owner = make_user('owner', Profile.Role.CREATOR)
        self.fan = make_user('fan')
        self.model = make_model(self.owner)

    @override_settings(COUNTER_UPDATE_RETRIES=3)
    def test_exhausted_retries_keep_fact_and_flag_model(self):
        with patch('catalog.counters.record_fact_created',
                   side_effect=OperationalError('database is locked')) as update:
            with self.assertLogs('catalog.services', level='WARNING'):
                result = services.like_model(self.fan, self.model.id)

        self.assertEqual(update.call_count, 3)
        self.assertEqual(result.action, 'created')
        self.assertTrue(Like.objects.filter(model=self.model, user=self.fan).exists())

        self.model.refresh_from_db()
        self.assertEqual(self.model.like_count, 0)
        self.assertTrue(self.model.counters_stale)

        call_command('reconcile_counters', '--stale-only', stdout=StringIO())
        self.model.refresh_from_db()
        self.assertEqual(self.model.like_count, 1)
        self.assertFalse(self.model.counters_stale)

    def test_transient_failure_then_success(self):
        real_update = counters.record_fact_created
        calls = []

        def flaky(model_id, kind):
            calls.append(kind)
            if len(calls) == 1:
                raise OperationalError('could not serialize access')
            return real_update(model_id, kind)

        with patch('catalog.counters.record_fact_created', side_effect=flaky):
            with self.assertLogs('catalog.services', level='WARNING'):
                services.add_comment(self.fan, self.model.id, 'First!')

        self.model.refresh_from_db()
        self.assertEqual(len(calls), 2)
        self.assertEqual(self.model.comment_count, 1)
        self.assertFalse(self.model.counters_stale)

    def test_failed_decrement_flags_model(self):
        services.like_model(self.fan, self.model.id)
        with patch('catalog.counters.record_fact_deleted',
                   side_effect=OperationalError('lock timeout')):
            with self.assertLogs('catalog.services', level='WARNING'):
                result = services.unlike_model(self.fan, self.model.id)

        self.assertEqual(result.action, 'removed')
        self.assertFalse(Like.objects.filter(model=self.model).exists())
        self.model.refresh_from_db()
        self.assertTrue(self.model.counters_stale)


@pytest.mark.postgres
class ConcurrentCounterTestCase(TransactionTestCase):
    """
    Real concurrent writers against one model row.

    Needs a database with row-level locking, so only runs on PostgreSQL.
    CI runs them with:

        DATABASE_URL=postgres://... REQUIRE_POSTGRES=1 pytest -m postgres

    With REQUIRE_POSTGRES=1 a non-PostgreSQL database fails instead of
    skipping silently.
    """

    def test_database_supports_concurrent_writers(self):
        if os.environ.get('REQUIRE_POSTGRES') != '1':
            self.skipTest('REQUIRE_POSTGRES not set')
        self.assertEqual(connection.vendor, 'postgresql')

    def setUp(self):
        self.owner = make_user('owner', Profile.Role.CREATOR)
        self.model = make_model(self.owner)

    def _run_concurrently(self, func, args_list):
        def run(args):
            try:
                return func(*args)
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=len(args_list)) as pool:
            return list(pool.map(run, args_list))

    @skipUnless(connection.vendor == 'postgresql', 'needs concurrent writers')
    def test_concurrent_likes_no_lost_updates(self):
        users = [make_user(f'fan{i}') for i in range(10)]

        results = self._run_concurrently(
            services.like_model, [(user, self.model.id) for user in users]
        )

        self.assertTrue(all(r.action == 'created' for r in results))
        self.assertEqual(counts(self.model)['like_count'], 10)
        self.assertEqual(Like.objects.filter(model=self.model).count(), 10)

    @skipUnless(connection.vendor == 'postgresql', 'needs concurrent writers')
    def test_concurrent_double_like_counts_once(self):
        fan = make_user('fan')

        results = self._run_concurrently(
            services.like_model, [(fan, self.model.id)] * 5
        )

        self.assertEqual(sum(1 for r in results if r.action == 'created'), 1)
        self.assertEqual(counts(self.model)['like_count'], 1)

    @skipUnless(connection.vendor == 'postgresql', 'needs concurrent writers')
    def test_two_concurrent_downloads(self):
        users = [make_user('a'), make_user('b')]

        self._run_concurrently(
            services.record_download, [(user, self.model.id) for user in users]
        )

        self.assertEqual(counts(self.model)['download_count'], 2)
        self.assertEqual(Download.objects.filter(model=self.model).count(), 2)


# ============================================================================
# SERVICES
# ============================================================================

class LikeServiceTestCase(TestCase):
    """
    Test like uniqueness and its counter.

    These tests verify that:
    1. Duplicate likes are prevented
    2. IntegrityError is handled gracefully
    """

    def setUp(self):
        self.user = make_user('user')
        self.owner = make_user('owner', Profile.Role.CREATOR)
        self.model = make_model(self.owner)

    def test_like_then_unlike(self):
        """Counters start at 0, like -> 1, unlike -> 0."""
        self.assertEqual(counts(self.model)['like_count'], 0)

        self.assertEqual(services.like_model(self.user, self.model.id).action, 'created')
        self.assertEqual(counts(self.model)['like_count'], 1)

        self.assertEqual(services.unlike_model(self.user, self.model.id).action, 'removed')
        self.assertEqual(counts(self.model)['like_count'], 0)

    def test_cannot_like_twice(self):
        """Second like on same model should fail gracefully."""
        first = services.like_model(self.user, self.model.id)
        second = services.like_model(self.user, self.model.id)

        self.assertEqual(first.action, 'created')
        self.assertEqual(second.action, 'already_exists')
        self.assertFalse(second.success)
        self.assertEqual(Like.objects.filter(user=self.user, model=self.model).count(), 1)
        self.assertEqual(counts(self.model)['like_count'], 1)

    def test_unlike_without_like(self):
        result = services.unlike_model(self.user, self.model.id)
        self.assertEqual(result.action, 'already_removed')
        self.assertEqual(counts(self.model)['like_count'], 0)

    def test_toggle(self):
        self.assertEqual(services.toggle_like(self.user, self.model.id).action, 'created')
        self.assertEqual(services.toggle_like(self.user, self.model.id).action, 'removed')
        self.assertEqual(counts(self.model)['like_count'], 0)

    def test_cannot_like_private_model(self):
        private = make_model(self.owner, title='Secret', is_public=False)
        with self.assertRaises(ModelNotFound):
            services.like_model(self.user, private.id)
        self.assertEqual(services.like_model(self.owner, private.id).action, 'created')

    def test_metadata_edit_does_not_overwrite_counters(self):
        """A stale instance saved through the edit serializer keeps fresh counters."""
        stale = Model3D.objects.get(pk=self.model.pk)
        services.like_model(self.user, self.model.id)

        serializer = Model3DUpdateSerializer(stale, data={'title': 'Renamed fox'}, partial=True)
        self.assertTrue(serializer.is_valid(), serializer.errors)
        serializer.save()

        self.model.refresh_from_db()
        self.assertEqual(self.model.title, 'Renamed fox')
        self.assertEqual(self.model.like_count, 1)


class CommentServiceTestCase(TestCase):

    def setUp(self):
        self.user = make_user('user')
        self.owner = make_user('owner', Profile.Role.CREATOR)
        self.model = make_model(self.owner)

    def test_reply_depth(self):
        root = services.add_comment(self.user, self.model.id, 'Root')
        reply = services.add_comment(self.owner, self.model.id, 'Reply', parent=root)
        self.assertEqual(root.depth, 0)
        self.assertEqual(reply.depth, 1)
        self.assertEqual(counts(self.model)['comment_count'], 2)

    @override_settings(MAX_COMMENT_DEPTH=1)
    def test_max_depth(self):
        root = services.add_comment(self.user, self.model.id, 'Root')
        reply = services.add_comment(self.user, self.model.id, 'Reply', parent=root)
        with self.assertRaises(ValueError):
            services.add_comment(self.user, self.model.id, 'Too deep', parent=reply)
        self.assertEqual(counts(self.model)['comment_count'], 2)

    def test_parent_from_other_model_rejected(self):
        other = make_model(self.owner, title='Crate')
        foreign = services.add_comment(self.user, other.id, 'Elsewhere')
        with self.assertRaises(ValueError):
            services.add_comment(self.user, self.model.id, 'Reply', parent=foreign)

    def test_delete_cascades_and_decrements_by_rows_removed(self):
        root = services.add_comment(self.user, self.model.id, 'Root')
        reply = services.add_comment(self.owner, self.model.id, 'Reply', parent=root)
        services.add_comment(self.user, self.model.id, 'Nested', parent=reply)
        services.add_comment(self.user, self.model.id, 'Unrelated')
        self.assertEqual(counts(self.model)['comment_count'], 4)

        removed = services.delete_comment(self.user, root.id)

        self.assertEqual(removed, 3)
        self.assertEqual(Comment.objects.filter(model=self.model).count(), 1)
        self.assertEqual(counts(self.model)['comment_count'], 1)

    def test_model_owner_can_delete(self):
        comment = services.add_comment(self.user, self.model.id, 'Spam')
        self.assertEqual(services.delete_comment(self.owner, comment.id), 1)

    def test_stranger_cannot_delete(self):
        from django.core.exceptions import PermissionDenied

        comment = services.add_comment(self.user, self.model.id, 'Mine')
        with self.assertRaises(PermissionDenied):
            services.delete_comment(make_user('stranger'), comment.id)
        self.assertEqual(counts(self.model)['comment_count'], 1)


class OrderServiceTestCase(TestCase):

    def setUp(self):
        self.buyer = make_user('buyer')
        self.owner = make_user('owner', Profile.Role.CREATOR)
        self.model = make_model(self.owner, is_free=False, price=Decimal('9.99'))

    def test_purchase_completes(self):
        order, created = services.purchase_model(self.buyer, self.model.id, payment_token='tok_visa')

        self.assertTrue(created)
        self.assertEqual(order.status, Order.Status.COMPLETED)
        self.assertEqual(order.amount, Decimal('9.99'))
        self.assertTrue(order.payment_reference.startswith('sim_'))

    def test_purchase_is_idempotent(self):
        first, _ = services.purchase_model(self.buyer, self.model.id)
        second, created = services.purchase_model(self.buyer, self.model.id)
        self.assertFalse(created)
        self.assertEqual(first.id, second.id)

    def test_declined_payment(self):
        with self.assertRaises(PaymentDeclined) as ctx:
            services.purchase_model(self.buyer, self.model.id, payment_token='tok_declined')
        self.assertEqual(ctx.exception.order.status, Order.Status.FAILED)
        self.assertIsNone(services.has_purchased(self.buyer, self.model))

    def test_cannot_buy_free_or_own_model(self):
        free = make_model(self.owner, title='Free')
        with self.assertRaises(PurchaseError):
            services.purchase_model(self.buyer, free.id)
        with self.assertRaises(PurchaseError):
            services.purchase_model(self.owner, self.model.id)

    def test_download_requires_purchase(self):
        from django.core.exceptions import PermissionDenied

        with self.assertRaises(PermissionDenied):
            services.record_download(self.buyer, self.model.id)

        order, _ = services.purchase_model(self.buyer, self.model.id)
        download = services.record_download(self.buyer, self.model.id)

        self.assertEqual(download.order, order)
        self.assertEqual(counts(self.model)['download_count'], 1)

    def test_refund_revokes_access(self):
        from django.core.exceptions import PermissionDenied

        order, _ = services.purchase_model(self.buyer, self.model.id)
        refunded = services.refund_order(self.buyer, order.id, reason='Wrong format')

        self.assertEqual(refunded.status, Order.Status.REFUNDED)
        self.assertEqual(refunded.refund_reason, 'Wrong format')
        self.assertIsNotNone(refunded.refunded_at)
        with self.assertRaises(PermissionDenied):
            services.record_download(self.buyer, self.model.id)
        with self.assertRaises(PurchaseError):
            services.refund_order(self.buyer, order.id)


class FollowServiceTestCase(TestCase):

    def setUp(self):
        self.alice = make_user('alice')
        self.bob = make_user('bob')

    def test_follow_once(self):
        services.follow_user(self.alice, self.bob)
        with self.assertRaises(AlreadyFollowing):
            services.follow_user(self.alice, self.bob)
        self.assertEqual(Follow.objects.count(), 1)

    def test_cannot_follow_self(self):
        with self.assertRaises(ValueError):
            services.follow_user(self.alice, self.alice)

    def test_unfollow(self):
        services.follow_user(self.alice, self.bob)
        self.assertTrue(services.unfollow_user(self.alice, self.bob))
        self.assertFalse(services.unfollow_user(self.alice, self.bob))


class UserDeletionTestCase(TestCase):
    """
    Deleting a user cascades their likes and comments.

    These tests verify that:
    1. Counters drop by exactly the cascaded rows, replies included
    2. Views and downloads survive with the user cleared
    3. Facts on the user's own (also deleted) models are left alone
    """

    def setUp(self):
        self.owner = make_user('owner', Profile.Role.CREATOR)
        self.model = make_model(self.owner)
        self.fan = make_user('fan')
        self.other = make_user('other')

    def test_likes_and_comments_released(self):
        services.like_model(self.fan, self.model.id)
        services.like_model(self.other, self.model.id)
        root = services.add_comment(self.fan, self.model.id, 'Nice')
        services.add_comment(self.other, self.model.id, 'Agreed', parent=root)
        services.add_comment(self.other, self.model.id, 'Separate thread')

        self.fan.delete()

        self.assertEqual(counts(self.model), counters.live_counts(self.model.id))
        self.assertEqual(counts(self.model)['like_count'], 1)
        self.assertEqual(counts(self.model)['comment_count'], 1)
        self.assertFalse(self.model.counters_stale)

    def test_queryset_delete_releases_facts(self):
        services.like_model(self.fan, self.model.id)
        services.add_comment(self.fan, self.model.id, 'Nice')

        User.objects.filter(username='fan').delete()

        self.assertEqual(counts(self.model)['like_count'], 0)
        self.assertEqual(counts(self.model)['comment_count'], 0)

    def test_views_and_downloads_survive(self):
        services.record_view(self.model, user=self.fan)
        services.record_download(self.fan, self.model.id)

        self.fan.delete()

        self.assertEqual(counts(self.model)['view_count'], 1)
        self.assertEqual(counts(self.model)['download_count'], 1)
        self.assertIsNone(ModelView.objects.get(model=self.model).user)

    def test_own_models_skipped(self):
        van = make_model(self.fan, title='Van')
        services.like_model(self.fan, van.id)
        services.add_comment(self.fan, van.id, 'My own van')
        services.like_model(self.fan, self.model.id)

        with self.assertNoLogs('catalog.counters', level='WARNING'):
            released = services.release_user_facts(self.fan)

        self.assertEqual(released, {self.model.id: {'like': 1}})
        self.assertEqual(counts(self.model)['like_count'], 0)


# ============================================================================
# QUERIES
# ============================================================================

class CommentTreeTestCase(TestCase):
    """
    Test comment tree building.

    CRITICAL: Verify N+1 prevention.
    """

    def setUp(self):
        self.user = make_user('user')
        self.model = make_model(self.user)

    def test_tree_building_single_level(self):
        """Flat comments should be returned as separate trees."""
        c1 = Comment.objects.create(model=self.model, author=self.user, content='Comment 1')
        c2 = Comment.objects.create(model=self.model, author=self.user, content='Comment 2')

        tree = build_comment_tree(get_all_comments_for_model(self.model.id))

        self.assertEqual(len(tree), 2)
        self.assertEqual(tree[0]['comment'].id, c1.id)
        self.assertEqual(tree[1]['comment'].id, c2.id)

    def test_tree_building_nested(self):
        """Nested comments should be in replies array."""
        c1 = Comment.objects.create(model=self.model, author=self.user, content='Comment 1', depth=0)
        c2 = Comment.objects.create(model=self.model, author=self.user, content='Reply', parent=c1, depth=1)
        c3 = Comment.objects.create(model=self.model, author=self.user, content='Reply 2', parent=c2, depth=2)

        tree = build_comment_tree(get_all_comments_for_model(self.model.id))

        self.assertEqual(len(tree), 1)
        self.assertEqual(tree[0]['replies'][0]['comment'].id, c2.id)
        self.assertEqual(tree[0]['replies'][0]['replies'][0]['comment'].id, c3.id)

    def test_no_n_plus_one_queries(self):
        """Loading 50 comments must NOT cause 50 queries."""
        parent = None
        for i in range(50):
            if i % 5 == 0:
                parent = Comment.objects.create(model=self.model, author=self.user, content=f'Comment {i}')
            else:
                Comment.objects.create(
                    model=self.model, author=self.user, content=f'Reply {i}', parent=parent, depth=1
                )

        with CaptureQueriesContext(connection) as context:
            result = get_model_with_comment_tree(self.model.id)

        self.assertLessEqual(len(context), 2)
        self.assertEqual(result['comment_count'], 50)
        self.assertEqual(len(result['comments']), 10)


class SearchTestCase(TestCase):

    def setUp(self):
        self.owner = make_user('owner', Profile.Role.CREATOR)
        self.fox = make_model(self.owner, title='Fox', category='characters', tags='lowpoly,animal')
        self.van = make_model(self.owner, title='Van', category='vehicles', tags='pbr',
                              is_free=False, price=5)
        self.hidden = make_model(self.owner, title='Fox draft', is_public=False)
        Model3D.objects.filter(pk=self.van.pk).update(like_count=7)

    def test_private_models_excluded(self):
        self.assertNotIn(self.hidden, search_models(search='fox'))

    def test_filters(self):
        self.assertEqual(list(search_models(category='vehicles')), [self.van])
        self.assertEqual(list(search_models(tags=['animal'])), [self.fox])
        self.assertEqual(list(search_models(tags=['low'])), [])
        self.assertEqual(list(search_models(free=False)), [self.van])
        self.assertEqual(list(search_models(creator='nobody')), [])

    def test_sort_by_likes(self):
        self.assertEqual(list(search_models(sort='likes'))[0], self.van)


# ============================================================================
# MANAGEMENT & ADMIN
# ============================================================================

class ReconcileCommandTestCase(TestCase):

    def setUp(self):
        self.owner = make_user('owner', Profile.Role.CREATOR)
        self.model = make_model(self.owner)

    def test_reconcile_all(self):
        services.like_model(make_user('fan'), self.model.id)
        Model3D.objects.filter(pk=self.model.pk).update(like_count=4, view_count=2)

        out = StringIO()
        call_command('reconcile_counters', stdout=out)

        self.assertEqual(counts(self.model)['like_count'], 1)
        self.assertEqual(counts(self.model)['view_count'], 0)
        self.assertIn('corrected 1', out.getvalue())
        self.assertIn('like_count 4 -> 1', out.getvalue())

    def test_single_model(self):
        out = StringIO()
        call_command('reconcile_counters', '--model-id', str(self.model.id), stdout=out)
        self.assertIn('Reconciled 1 model(s), corrected 0.', out.getvalue())

    def test_missing_model(self):
        with self.assertRaises(CommandError):
            call_command('reconcile_counters', '--model-id', '999999', stdout=StringIO())

    def test_admin_action(self):
        admin_user = User.objects.create_superuser('admin', 'admin@test.com', 'pass')
        Model3D.objects.filter(pk=self.model.pk).update(download_count=12)
        self.client.force_login(admin_user)

        response = self.client.post(
            reverse('admin:catalog_model3d_changelist'),
            {'action': 'reconcile_counters', '_selected_action': [self.model.pk]}
        )

        self.assertEqual(response.status_code, 302)
        self.assertEqual(counts(self.model)['download_count'], 0)


class CounterAdminTestCase(TestCase):
    """
    Admin deletes keep counters in step.

    These tests verify that:
    1. Like and comment deletes decrement through the services
    2. Fact rows cannot be moved to another model
    3. Downloads and views cannot be deleted on their own
    """

    def setUp(self):
        self.owner = make_user('owner', Profile.Role.CREATOR)
        self.model = make_model(self.owner)
        self.fan = make_user('fan')
        self.client.force_login(User.objects.create_superuser('admin', 'admin@test.com', 'pass'))

    def delete_selected(self, changelist, pks):
        return self.client.post(
            reverse(changelist),
            {'action': 'delete_selected', '_selected_action': pks, 'post': 'yes'}
        )

    def test_delete_selected_likes(self):
        services.like_model(self.fan, self.model.id)
        services.like_model(self.owner, self.model.id)

        response = self.delete_selected(
            'admin:catalog_like_changelist', list(Like.objects.values_list('pk', flat=True))
        )

        self.assertEqual(response.status_code, 302)
        self.assertFalse(Like.objects.exists())
        self.assertEqual(counts(self.model)['like_count'], 0)

    def test_delete_selected_comments_with_replies(self):
        root = services.add_comment(self.fan, self.model.id, 'Nice')
        reply = services.add_comment(self.owner, self.model.id, 'Thanks', parent=root)
        services.add_comment(self.owner, self.model.id, 'Update coming')

        response = self.delete_selected('admin:catalog_comment_changelist', [reply.pk, root.pk])

        self.assertEqual(response.status_code, 302)
        self.assertEqual(counts(self.model)['comment_count'], 1)
        self.assertEqual(counts(self.model), counters.live_counts(self.model.id))

    def test_delete_single_comment(self):
        comment = services.add_comment(self.fan, self.model.id, 'Nice')

        response = self.client.post(
            reverse('admin:catalog_comment_delete', args=[comment.pk]), {'post': 'yes'}
        )

        self.assertEqual(response.status_code, 302)
        self.assertEqual(counts(self.model)['comment_count'], 0)

    def test_like_cannot_move_to_another_model(self):
        van = make_model(self.owner, title='Van')
        services.like_model(self.fan, self.model.id)
        like = Like.objects.get()

        self.client.post(
            reverse('admin:catalog_like_change', args=[like.pk]),
            {'model': van.pk, 'user': self.owner.pk}
        )

        like.refresh_from_db()
        self.assertEqual((like.model_id, like.user_id), (self.model.id, self.fan.id))
        self.assertEqual(counts(van)['like_count'], 0)

    def test_downloads_and_views_not_deletable(self):
        download = services.record_download(self.fan, self.model.id)
        view = services.record_view(self.model, user=self.fan)

        for url in (reverse('admin:catalog_download_delete', args=[download.pk]),
                    reverse('admin:catalog_modelview_delete', args=[view.pk])):
            response = self.client.post(url, {'post': 'yes'})
            self.assertEqual(response.status_code, 403)

        self.assertEqual(counts(self.model)['download_count'], 1)
        self.assertEqual(counts(self.model)['view_count'], 1)

    def test_model_with_downloads_still_deletable(self):
        services.record_download(self.fan, self.model.id)
        services.record_view(self.model, user=self.fan)

        response = self.client.post(
            reverse('admin:catalog_model3d_delete', args=[self.model.pk]), {'post': 'yes'}
        )

        self.assertEqual(response.status_code, 302)
        self.assertFalse(Model3D.objects.filter(pk=self.model.pk).exists())
        self.assertFalse(Download.objects.exists())

    def test_deleting_user_in_admin_releases_likes(self):
        services.like_model(self.fan, self.model.id)

        response = self.client.post(
            reverse('admin:auth_user_delete', args=[self.fan.pk]), {'post': 'yes'}
        )

        self.assertEqual(response.status_code, 302)
        self.assertEqual(counts(self.model)['like_count'], 0)


class SeedDataCommandTestCase(TestCase):

    def setUp(self):
        self.media_root = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.media_root, ignore_errors=True)

    def test_seeded_counters_match_facts(self):
        with override_settings(MEDIA_ROOT=self.media_root):
            call_command('seed_data', '--users', '4', '--models', '3', '--comments', '6', stdout=StringIO())

        self.assertEqual(Model3D.objects.count(), 3)
        for model in Model3D.objects.all():
            result = counters.reconcile(model.id)
            self.assertFalse(result.corrected, result.as_dict())


# ============================================================================
# API
# ============================================================================

class AuthAPITestCase(APITestCase):

    def test_register_login_whoami(self):
        response = self.client.post('/api/auth/register/', {
            'username': 'newbie',
            'email': 'newbie@test.com',
            'password': 'Zx9-quiet-harbor',
            'role': 'CREATOR',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data['role'], 'CREATOR')

        response = self.client.get('/api/auth/whoami/')
        self.assertTrue(response.data['authenticated'])
        self.assertEqual(response.data['username'], 'newbie')

        self.client.post('/api/auth/logout/')
        self.assertFalse(self.client.get('/api/auth/whoami/').data['authenticated'])

        response = self.client.post('/api/auth/login/', {
            'username': 'newbie', 'password': 'Zx9-quiet-harbor'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_register_rejects_weak_password(self):
        response = self.client.post('/api/auth/register/', {
            'username': 'weak', 'email': 'weak@test.com', 'password': '123'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('details', response.data)

    def test_login_bad_credentials(self):
        make_user('user')
        response = self.client.post('/api/auth/login/', {
            'username': 'user', 'password': 'wrong'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_profile_edit(self):
        user = make_user('user')
        self.client.force_authenticate(user)

        response = self.client.patch('/api/profile/', {'bio': 'I make trees', 'role': 'ADMIN'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['bio'], 'I make trees')
        self.assertEqual(response.data['role'], 'USER')


class FollowAPITestCase(APITestCase):

    def setUp(self):
        self.alice = make_user('alice')
        self.bob = make_user('bob')
        self.client.force_authenticate(self.alice)

    def test_follow_flow(self):
        url = '/api/users/bob/follow/'
        self.assertEqual(self.client.post(url).status_code, status.HTTP_201_CREATED)
        self.assertEqual(self.client.post(url).status_code, status.HTTP_409_CONFLICT)

        profile = self.client.get('/api/users/bob/').data
        self.assertEqual(profile['follower_count'], 1)
        self.assertTrue(profile['is_following'])

        followers = self.client.get('/api/users/bob/followers/').data
        self.assertEqual([u['username'] for u in followers['results']], ['alice'])
        following = self.client.get('/api/users/alice/following/').data
        self.assertEqual([u['username'] for u in following['results']], ['bob'])

        self.assertEqual(self.client.delete(url).status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_404_NOT_FOUND)

    def test_follow_self(self):
        response = self.client.post('/api/users/alice/follow/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_user(self):
        response = self.client.get('/api/users/nobody/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'User not found')


class ModelUploadAPITestCase(APITestCase):

    def setUp(self):
        self.media_root = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.media_root, ignore_errors=True)
        self.creator = make_user('creator', Profile.Role.CREATOR)

    def upload(self, name='fox.glb', **data):
        payload = {'title': 'Fox', 'category': 'characters', 'file': SimpleUploadedFile(name, b'glTF' + b'\0' * 60)}
        payload.update(data)
        with override_settings(MEDIA_ROOT=self.media_root):
            return self.client.post('/api/models/', payload, format='multipart')

    def test_upload(self):
        self.client.force_authenticate(self.creator)

        response = self.upload(tags='LowPoly, Animal,lowpoly')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data['file_type'], 'glb')
        self.assertEqual(response.data['file_size'], 64)
        self.assertEqual(response.data['tags'], ['lowpoly', 'animal'])
        self.assertEqual(response.data['like_count'], 0)

        model = Model3D.objects.get(pk=response.data['id'])
        self.assertEqual(model.owner, self.creator)
        self.assertTrue(model.is_public)
        self.assertTrue(model.is_free)

    def test_upload_requires_creator(self):
        self.client.force_authenticate(make_user('viewer'))
        self.assertEqual(self.upload().status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(None)
        self.assertEqual(self.upload().status_code, status.HTTP_403_FORBIDDEN)

    def test_upload_rejects_extension(self):
        self.client.force_authenticate(self.creator)
        response = self.upload(name='fox.exe')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('file', response.data['details'])

    @override_settings(MAX_UPLOAD_SIZE=10)
    def test_upload_rejects_large_file(self):
        self.client.force_authenticate(self.creator)
        self.assertEqual(self.upload().status_code, status.HTTP_400_BAD_REQUEST)

    def test_paid_upload_needs_price(self):
        self.client.force_authenticate(self.creator)
        response = self.upload(is_free='false')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('price', response.data['details'])

        response = self.upload(is_free='false', price='4.50')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['price'], '4.50')

    def test_too_many_tags(self):
        self.client.force_authenticate(self.creator)
        response = self.upload(tags=','.join(f'tag{i}' for i in range(11)))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ModelBrowseAPITestCase(APITestCase):

    def setUp(self):
        self.owner = make_user('owner', Profile.Role.CREATOR)
        self.viewer = make_user('viewer')
        self.fox = make_model(self.owner, title='Fox', tags='animal')
        self.van = make_model(self.owner, title='Van', category='vehicles', is_featured=True)
        self.draft = make_model(self.owner, title='Draft', is_public=False)

    def test_list_paginated(self):
        response = self.client.get('/api/models/', {'limit': 1})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        self.assertEqual(response.data['pages'], 2)
        self.assertEqual(len(response.data['results']), 1)

    def test_list_marks_liked(self):
        services.like_model(self.viewer, self.fox.id)
        self.client.force_authenticate(self.viewer)

        response = self.client.get('/api/models/', {'sort': 'likes'})

        first = response.data['results'][0]
        self.assertEqual(first['id'], self.fox.id)
        self.assertTrue(first['is_liked'])
        self.assertEqual(first['like_count'], 1)
        self.assertFalse(response.data['results'][1]['is_liked'])

    def test_filters(self):
        response = self.client.get('/api/models/', {'tags': 'animal'})
        self.assertEqual([m['id'] for m in response.data['results']], [self.fox.id])

        response = self.client.get('/api/models/featured/')
        self.assertEqual([m['id'] for m in response.data], [self.van.id])

    def test_trending_window(self):
        Model3D.objects.filter(pk=self.fox.pk).update(
            view_count=50, created_at=timezone.now() - timedelta(days=30)
        )
        Model3D.objects.filter(pk=self.van.pk).update(view_count=3)

        response = self.client.get('/api/models/trending/')

        self.assertEqual([m['id'] for m in response.data], [self.van.id])

    def test_detail_records_view(self):
        response = self.client.get(
            f'/api/models/{self.fox.id}/',
            HTTP_USER_AGENT='test-agent',
            HTTP_X_FORWARDED_FOR='203.0.113.5, 10.0.0.1'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['view_count'], 1)
        self.assertEqual(response.data['creator']['username'], 'owner')
        view = ModelView.objects.get(model=self.fox)
        self.assertIsNone(view.user)
        self.assertEqual(view.ip_address, '203.0.113.5')
        self.assertEqual(view.user_agent, 'test-agent')

    def test_detail_includes_comment_tree(self):
        root = services.add_comment(self.viewer, self.fox.id, 'Nice topology')
        services.add_comment(self.owner, self.fox.id, 'Thanks!', parent=root)

        response = self.client.get(f'/api/models/{self.fox.id}/')

        self.assertEqual(len(response.data['comments']), 1)
        self.assertEqual(response.data['comments'][0]['comment']['id'], root.id)
        self.assertEqual(len(response.data['comments'][0]['replies']), 1)

    def test_private_detail_only_for_owner(self):
        url = f'/api/models/{self.draft.id}/'
        self.assertEqual(self.client.get(url).status_code, status.HTTP_404_NOT_FOUND)

        self.client.force_authenticate(self.owner)
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['is_owner'])

    def test_owner_edit_and_delete(self):
        url = f'/api/models/{self.fox.id}/'
        services.like_model(self.viewer, self.fox.id)

        self.client.force_authenticate(self.viewer)
        self.assertEqual(self.client.patch(url, {'title': 'Mine now'}, format='json').status_code,
                         status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.owner)
        response = self.client.patch(url, {'title': 'Arctic fox', 'like_count': 99}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(counts(self.fox)['like_count'], 1)

        self.assertEqual(self.client.delete(url).status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Like.objects.filter(model_id=self.fox.id).exists())

    def test_not_found_error_format(self):
        response = self.client.get('/api/models/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'Model not found')

        self.client.force_authenticate(self.viewer)
        response = self.client.post('/api/models/999999/like/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'Model 999999 does not exist')


class LikeCommentAPITestCase(APITestCase):

    def setUp(self):
        self.owner = make_user('owner', Profile.Role.CREATOR)
        self.user = make_user('user')
        self.model = make_model(self.owner)
        self.client.force_authenticate(self.user)

    def test_like_endpoints(self):
        url = f'/api/models/{self.model.id}/like/'
        self.assertEqual(self.client.post(url).data['action'], 'created')

        response = self.client.post(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['action'], 'already_exists')

        self.assertEqual(self.client.delete(url).data['action'], 'removed')
        self.assertEqual(self.client.post(f'{url}toggle/').data['action'], 'created')
        self.assertEqual(counts(self.model)['like_count'], 1)

    def test_like_requires_auth(self):
        self.client.force_authenticate(None)
        response = self.client.post(f'/api/models/{self.model.id}/like/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_comment_thread(self):
        url = f'/api/models/{self.model.id}/comments/'
        root = self.client.post(url, {'content': '  Love it  '}, format='json')
        self.assertEqual(root.status_code, status.HTTP_201_CREATED)
        self.assertEqual(root.data['content'], 'Love it')

        reply = self.client.post(url, {'content': 'Thanks', 'parent': root.data['id']}, format='json')
        self.assertEqual(reply.data['depth'], 1)

        tree = self.client.get(url).data
        self.assertEqual(len(tree), 1)
        self.assertEqual(tree[0]['replies'][0]['comment']['id'], reply.data['id'])
        self.assertEqual(counts(self.model)['comment_count'], 2)

        response = self.client.delete(f"/api/comments/{root.data['id']}/")
        self.assertEqual(response.data['deleted'], 2)
        self.assertEqual(counts(self.model)['comment_count'], 0)

    def test_comment_validation(self):
        url = f'/api/models/{self.model.id}/comments/'
        self.assertEqual(self.client.post(url, {'content': '   '}, format='json').status_code,
                         status.HTTP_400_BAD_REQUEST)

        other = make_model(self.owner, title='Crate')
        foreign = services.add_comment(self.user, other.id, 'Elsewhere')
        response = self.client.post(url, {'content': 'Hi', 'parent': foreign.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @override_settings(MAX_COMMENT_DEPTH=0)
    def test_comment_depth_limit(self):
        root = services.add_comment(self.user, self.model.id, 'Root')
        response = self.client.post(
            f'/api/models/{self.model.id}/comments/', {'content': 'Reply', 'parent': root.id}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Maximum reply depth', response.data['error'])

    def test_stranger_cannot_delete_comment(self):
        comment = services.add_comment(self.owner, self.model.id, 'Mine')
        response = self.client.delete(f'/api/comments/{comment.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class DownloadOrderAPITestCase(APITestCase):

    def setUp(self):
        self.owner = make_user('owner', Profile.Role.CREATOR)
        self.buyer = make_user('buyer')
        self.free = make_model(self.owner, title='Free fox')
        self.paid = make_model(self.owner, title='Paid van', is_free=False, price=Decimal('12.00'))

    def test_anonymous_free_download(self):
        response = self.client.post(f'/api/models/{self.free.id}/download/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['file_name'], 'Free fox.glb')
        self.assertTrue(response.data['download_url'].endswith('/media/models/free-fox.glb'))
        download = Download.objects.get(model=self.free)
        self.assertIsNone(download.user)
        self.assertEqual(download.ip_address, '127.0.0.1')
        self.assertEqual(counts(self.free)['download_count'], 1)

    def test_paid_download_flow(self):
        download_url = f'/api/models/{self.paid.id}/download/'
        self.client.force_authenticate(self.buyer)
        self.assertEqual(self.client.post(download_url).status_code, status.HTTP_403_FORBIDDEN)

        response = self.client.post(f'/api/models/{self.paid.id}/purchase/',
                                    {'payment_token': 'tok_declined'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_402_PAYMENT_REQUIRED)
        self.assertEqual(response.data['order']['status'], 'failed')

        response = self.client.post(f'/api/models/{self.paid.id}/purchase/',
                                    {'payment_token': 'tok_visa'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        order_id = response.data['id']

        again = self.client.post(f'/api/models/{self.paid.id}/purchase/', {}, format='json')
        self.assertEqual(again.status_code, status.HTTP_200_OK)
        self.assertEqual(again.data['id'], order_id)

        self.assertEqual(self.client.post(download_url).status_code, status.HTTP_200_OK)
        history = self.client.get('/api/downloads/history/').data
        self.assertEqual(history['results'][0]['model']['id'], self.paid.id)

        orders = self.client.get('/api/orders/').data
        self.assertEqual(orders['count'], 2)

        refund = self.client.post(f'/api/orders/{order_id}/refund/', {'reason': 'Oops'}, format='json')
        self.assertEqual(refund.data['status'], 'refunded')
        self.assertEqual(self.client.post(download_url).status_code, status.HTTP_403_FORBIDDEN)

        # Refunded orders cannot be refunded again
        refund = self.client.post(f'/api/orders/{order_id}/refund/', {}, format='json')
        self.assertEqual(refund.status_code, status.HTTP_400_BAD_REQUEST)

    def test_owner_downloads_paid_model(self):
        self.client.force_authenticate(self.owner)
        response = self.client.post(f'/api/models/{self.paid.id}/download/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_cannot_purchase_free_model(self):
        self.client.force_authenticate(self.buyer)
        response = self.client.post(f'/api/models/{self.free.id}/purchase/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_download_stats(self):
        services.record_download(self.buyer, self.free.id)
        Download.objects.create(model=self.free, created_at=timezone.now() - timedelta(days=10))

        response = self.client.get(f'/api/models/{self.free.id}/downloads/stats/')

        self.assertEqual(response.data, {
            'total_downloads': 2,
            'downloads_today': 1,
            'downloads_this_week': 1,
            'downloads_this_month': 2,
        })


class DashboardAPITestCase(APITestCase):

    def setUp(self):
        self.creator = make_user('creator', Profile.Role.CREATOR)
        self.fan = make_user('fan')
        self.model = make_model(self.creator, is_free=False, price=Decimal('10.00'))
        self.draft = make_model(self.creator, title='Draft', is_public=False)
        services.like_model(self.fan, self.model.id)
        services.record_view(self.model, user=self.fan)
        services.purchase_model(self.fan, self.model.id)
        services.record_download(self.fan, self.model.id)
        self.client.force_authenticate(self.creator)

    def test_requires_creator(self):
        self.client.force_authenticate(self.fan)
        response = self.client.get('/api/dashboard/overview/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_overview(self):
        data = self.client.get('/api/dashboard/overview/').data

        self.assertEqual(data['stats'], {
            'total_models': 2,
            'total_views': 1,
            'total_downloads': 1,
            'total_likes': 1,
            'total_comments': 0,
        })
        self.assertEqual(len(data['recent_models']), 2)
        self.assertEqual(data['earnings']['count'], 1)
        self.assertEqual(Decimal(str(data['earnings']['total'])), Decimal('10.00'))

    def test_overview_recent_models_load_creator_with_model(self):
        make_model(self.creator, title='Van')
        overview = analytics.get_creator_overview(self.creator)

        with self.assertNumQueries(0):
            avatars = [m.owner.profile.avatar_url for m in overview['recent_models']]

        self.assertEqual(len(avatars), 3)

    def test_analytics(self):
        data = self.client.get('/api/dashboard/analytics/', {'period': '7d'}).data

        self.assertEqual(data['period'], '7d')
        self.assertEqual(sum(point['count'] for point in data['views_data']), 1)
        self.assertEqual(sum(point['count'] for point in data['downloads_data']), 1)
        self.assertEqual(data['top_models'][0]['id'], self.model.id)

    def test_earnings(self):
        data = self.client.get('/api/dashboard/earnings/').data

        self.assertEqual(data['count'], 1)
        self.assertEqual(data['results'][0]['buyer'], 'fan')
        self.assertEqual(Decimal(str(data['summary']['total'])), Decimal('10.00'))

    def test_uploads_and_status(self):
        data = self.client.get('/api/dashboard/uploads/', {'status': 'private'}).data
        self.assertEqual([m['id'] for m in data['results']], [self.draft.id])

        response = self.client.patch(
            f'/api/dashboard/uploads/{self.draft.id}/status/', {'is_public': True}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.draft.refresh_from_db()
        self.assertTrue(self.draft.is_public)


class StatsAPITestCase(APITestCase):

    def setUp(self):
        self.owner = make_user('owner', Profile.Role.CREATOR)
        self.fan = make_user('fan')
        self.model = make_model(self.owner, category='props')
        services.record_view(self.model, user=self.fan)
        services.record_download(self.fan, self.model.id)

    def test_platform_stats(self):
        data = self.client.get('/api/stats/platform/').data

        self.assertEqual(data['overview']['total_models'], 1)
        self.assertEqual(data['overview']['total_views'], 1)
        self.assertEqual(data['top_categories'], [{'category': 'props', 'count': 1}])
        self.assertEqual(data['trending_models'][0]['id'], self.model.id)

    def test_model_stats_owner_only(self):
        url = f'/api/models/{self.model.id}/stats/'

        self.client.force_authenticate(self.fan)
        self.assertEqual(self.client.get(url).status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.owner)
        data = self.client.get(url).data
        self.assertEqual(data['overview']['total_views'], 1)
        self.assertEqual(data['recent_downloads'][0]['user']['username'], 'fan')

    def test_reconcile_endpoint_staff_only(self):
        url = f'/api/models/{self.model.id}/reconcile/'
        Model3D.objects.filter(pk=self.model.pk).update(view_count=30)

        self.client.force_authenticate(self.owner)
        self.assertEqual(self.client.post(url).status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(make_user('staff', is_staff=True))
        response = self.client.post(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['drift']['view_count'], {'cached': 30, 'live': 1})
        self.assertEqual(counts(self.model)['view_count'], 1)
