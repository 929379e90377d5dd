"""
Cached Counter Maintenance
==========================

Keeps Model3D.like_count / comment_count / download_count / view_count
consistent with the fact tables (Like, Comment, Download, ModelView).

MECHANISM:
----------
Counters are maintained by the application only. There are no database
triggers. services.py calls into this module inside the same transaction as
the fact-row write. The one signal involved is pre_delete on User, which
hands the cascaded likes and comments to services.release_user_facts().

RELATIVE UPDATES ONLY:
----------------------
Every write is a single UPDATE evaluated by the database:

    UPDATE catalog_model3d SET like_count = like_count + 1 WHERE id = %s

Never `model.like_count += 1; model.save()`. Two concurrent requests would
both read N and both write N+1, losing an increment. Relative updates commute,
so the final value does not depend on request interleaving.

FLOOR AT ZERO:
--------------
A decrement never drives a counter below zero. If the cached value is already
smaller than the decrement, it is clamped to 0 and a warning is logged; that
means an earlier increment was missed, and reconcile() is the repair.

RECONCILE:
----------
reconcile() recounts the fact tables under a row lock on the model and
overwrites all four counters. Fact inserts that have not committed yet are not
counted; their own relative increment waits on the row lock and lands on top
of the reconciled value.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from django.db import DatabaseError, transaction
from django.db.models import F, PositiveIntegerField, QuerySet
from django.db.models.functions import Greatest

from .exceptions import ModelNotFound
from .models import COUNTER_FIELDS, FACT_MODELS, FactKind, Model3D

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    model_id: int
    counts: dict = field(default_factory=dict)
    # field name -> (cached value before, live count)
    drift: dict = field(default_factory=dict)

    @property
    def corrected(self) -> bool:
        return bool(self.drift)

    def as_dict(self) -> dict:
        return {
            'model_id': self.model_id,
            'counts': self.counts,
            'drift': {
                name: {'cached': cached, 'live': live}
                for name, (cached, live) in self.drift.items()
            },
            'corrected': self.corrected,
        }


def counter_field(kind) -> str:
    """Map a fact kind ('like', FactKind.VIEW, ...) to its Model3D field."""
    return COUNTER_FIELDS[FactKind(kind)]


def record_fact_created(model_id: int, kind) -> None:
    """
    Increment the counter for `kind` by exactly 1.

    The fact row must already be written in the current transaction (or
    committed). Raises ModelNotFound if no model row matched.
    """
    name = counter_field(kind)
    updated = Model3D.objects.filter(pk=model_id).update(**{name: F(name) + 1})
    if not updated:
        raise ModelNotFound(model_id)


def record_fact_deleted(model_id: int, kind, count: int = 1) -> None:
    """
    Decrement the counter for `kind` by `count`, never below zero.

    `count` > 1 is for one delete that removed several fact rows at once
    (a comment together with its replies).
    """
    if count < 1:
        return
    name = counter_field(kind)

    # Common path: enough headroom, plain relative decrement
    updated = (
        Model3D.objects
        .filter(pk=model_id, **{f'{name}__gte': count})
        .update(**{name: F(name) - count})
    )
    if updated:
        return

    # Either the model is gone or the counter would go negative
    clamped = (
        Model3D.objects
        .filter(pk=model_id)
        .update(**{name: Greatest(F(name) - count, 0, output_field=PositiveIntegerField())})
    )
    if not clamped:
        raise ModelNotFound(model_id)
    logger.warning(
        "Counter %s on model %s clamped at zero (decrement by %s); "
        "an earlier increment was missed, reconcile recommended",
        name, model_id, count
    )


def live_counts(model_id: int) -> dict:
    """Count fact rows per kind. This is the ground truth for the cache."""
    return {
        COUNTER_FIELDS[kind]: fact_model.objects.filter(model_id=model_id).count()
        for kind, fact_model in FACT_MODELS.items()
    }


def reconcile(model_id: int) -> ReconcileResult:
    """
    Recompute all four counters from the fact tables and overwrite the cache.

    Idempotent: a second call with no fact changes in between writes the same
    values and reports no drift.
    """
    with transaction.atomic():
        cached = (
            Model3D.objects
            .select_for_update()
            .filter(pk=model_id)
            .values(*COUNTER_FIELDS.values())
            .first()
        )
        if cached is None:
            raise ModelNotFound(model_id)

        counts = live_counts(model_id)
        drift = {
            name: (cached[name], live)
            for name, live in counts.items()
            if cached[name] != live
        }

        Model3D.objects.filter(pk=model_id).update(counters_stale=False, **counts)

    if drift:
        logger.warning("Reconciled model %s, drift corrected: %s", model_id, drift)
    else:
        logger.debug("Reconciled model %s, no drift", model_id)

    return ReconcileResult(model_id=model_id, counts=counts, drift=drift)


def reconcile_many(
    queryset: Optional[QuerySet] = None,
    stale_only: bool = False
) -> list[ReconcileResult]:
    """
    Reconcile a batch of models. Each model gets its own transaction so one
    failure does not undo the others.
    """
    if queryset is None:
        queryset = Model3D.objects.all()
    if stale_only:
        queryset = queryset.filter(counters_stale=True)

    results = []
    for model_id in _ids(queryset):
        try:
            results.append(reconcile(model_id))
        except ModelNotFound:
            # Deleted between listing and reconciling
            logger.info("Model %s disappeared before reconcile", model_id)
    return results


def mark_stale(model_id: int) -> None:
    """
    Flag a model whose counters may have drifted.

    Best effort: this runs after a counter update already failed, so a failure
    here is logged and not raised. The periodic reconcile still repairs it.
    """
    try:
        Model3D.objects.filter(pk=model_id).update(counters_stale=True)
    except DatabaseError:
        logger.exception("Could not flag model %s for reconcile", model_id)


def _ids(queryset: QuerySet) -> list[int]:
    return list(queryset.order_by('pk').values_list('pk', flat=True))
