"""Idempotent application of stock deltas produced by webhook jobs."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from stocksync.models.inventory import InventoryConflict, InventoryLevel, WebhookInventoryEffect
from stocksync.models.webhook_job import WebhookJob
from stocksync.services.identity import ProductResolver
from stocksync.services.normalize import NormalizedEffect, NormalizedWebhookWork, inventory_direction
from stocksync.utils.time import utcnow

logger = logging.getLogger(__name__)

UNRESOLVED_REASON = "No mapping for variant_id/sku"
_MAX_ERROR_LENGTH = 500


@dataclass(frozen=True)
class DeltaResult:
    """Outcome of one call to ``apply_inventory_delta``."""

    applied: bool
    product_id: str
    delta: int
    old_quantity: int | None = None
    new_quantity: int | None = None
    clamped: bool = False


def _find_ledger_entry(db: Session, idempotency_key: str) -> WebhookInventoryEffect | None:
    return db.scalars(
        select(WebhookInventoryEffect)
        .where(WebhookInventoryEffect.idempotency_key == idempotency_key)
        .execution_options(populate_existing=True)
    ).one_or_none()


def _lock_inventory_level(db: Session, product_id: str) -> InventoryLevel:
    stmt = (
        select(InventoryLevel)
        .where(InventoryLevel.product_id == product_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    level = db.scalars(stmt).one_or_none()
    if level is not None:
        return level
    try:
        with db.begin_nested():
            level = InventoryLevel(product_id=product_id, quantity_on_hand=0, last_updated=utcnow())
            db.add(level)
    except IntegrityError:
        # Created concurrently by another worker.
        level = db.scalars(stmt).one()
    return level


def apply_inventory_delta(
    db: Session,
    idempotency_key: str,
    product_id: str,
    delta: int,
    context: dict[str, Any] | None = None,
    *,
    webhook_id: str | None = None,
) -> DeltaResult:
    """Apply ``delta`` to the product's on-hand stock at most once per key.

    The ledger row and the stock update commit together. A repeated key
    leaves stock untouched and reports the originally recorded delta with
    ``applied=False``. Stock never goes below zero; a clamped result is
    recorded as an ``InventoryConflict``.
    """

    context = dict(context or {})
    try:
        try:
            with db.begin_nested():
                db.add(
                    WebhookInventoryEffect(
                        idempotency_key=idempotency_key,
                        webhook_id=webhook_id or idempotency_key,
                        product_id=product_id,
                        delta=delta,
                        context=context,
                    )
                )
        except IntegrityError:
            existing = _find_ledger_entry(db, idempotency_key)
            if existing is None:
                raise
            db.commit()
            logger.info(
                "Inventory delta already applied",
                extra={"idempotency_key": idempotency_key, "product_id": existing.product_id},
            )
            return DeltaResult(applied=False, product_id=existing.product_id, delta=existing.delta)

        level = _lock_inventory_level(db, product_id)
        old_quantity = level.quantity_on_hand or 0
        new_quantity = old_quantity + delta
        clamped = new_quantity < 0
        if clamped:
            new_quantity = 0
            db.add(
                InventoryConflict(
                    product_id=product_id,
                    attempted_delta=delta,
                    result_quantity=new_quantity,
                    context={**context, "idempotency_key": idempotency_key, "old_quantity": old_quantity},
                )
            )
        level.quantity_on_hand = new_quantity
        level.last_updated = utcnow()
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    if clamped:
        logger.warning(
            "Inventory clamped at zero",
            extra={"product_id": product_id, "attempted_delta": delta, "old_quantity": old_quantity},
        )
    return DeltaResult(
        applied=True,
        product_id=product_id,
        delta=delta,
        old_quantity=old_quantity,
        new_quantity=new_quantity,
        clamped=clamped,
    )


@dataclass(frozen=True)
class AppliedEffect:
    product_id: str
    quantity_change: int


@dataclass(frozen=True)
class EffectFailure:
    reason: str
    variant_id: int | None
    sku: str | None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ApplyOutcome:
    applied: list[AppliedEffect] = field(default_factory=list)
    failures: list[EffectFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def effect_idempotency_key(webhook_id: str, index: int, effect: NormalizedEffect) -> str:
    """Key a delta by delivery and line item so retries skip applied lines."""

    if effect.variant_id is not None:
        identity = f"v{effect.variant_id}"
    else:
        identity = f"s{(effect.sku or '').strip().lower()}"
    return f"{webhook_id}:{index}:{identity}"


class InventoryEffectApplier:
    """Resolves and applies every effect of a job, collecting failures."""

    def __init__(self, db: Session, resolver: ProductResolver) -> None:
        self.db = db
        self.resolver = resolver

    def apply(self, job: WebhookJob, work: NormalizedWebhookWork) -> ApplyOutcome:
        outcome = ApplyOutcome()
        direction = inventory_direction(work.topic)
        webhook_id = job.webhook_id
        base_context = {"shop": job.shop, "topic": job.topic, "order_id": job.order_id}

        for index, effect in enumerate(work.effects):
            if effect.error:
                outcome.failures.append(EffectFailure(effect.error, effect.variant_id, effect.sku))
                continue
            if effect.quantity <= 0:
                continue

            product_id = self.resolver.resolve(effect.variant_id, effect.sku)
            if not product_id:
                outcome.failures.append(EffectFailure(UNRESOLVED_REASON, effect.variant_id, effect.sku))
                continue

            try:
                result = apply_inventory_delta(
                    self.db,
                    effect_idempotency_key(webhook_id, index, effect),
                    product_id,
                    direction * effect.quantity,
                    {**base_context, "sku": effect.sku, "shopify_variant_id": effect.variant_id},
                    webhook_id=webhook_id,
                )
            except SQLAlchemyError as exc:
                logger.warning(
                    "Inventory delta failed",
                    extra={"webhook_id": webhook_id, "product_id": product_id, "error": str(exc)[:_MAX_ERROR_LENGTH]},
                )
                outcome.failures.append(
                    EffectFailure(
                        f"Failed to apply inventory delta: {str(exc)[:_MAX_ERROR_LENGTH]}",
                        effect.variant_id,
                        effect.sku,
                    )
                )
                continue

            outcome.applied.append(AppliedEffect(result.product_id, result.delta))

        return outcome


__all__ = [
    "DeltaResult",
    "apply_inventory_delta",
    "AppliedEffect",
    "EffectFailure",
    "ApplyOutcome",
    "InventoryEffectApplier",
    "effect_idempotency_key",
    "UNRESOLVED_REASON",
]
