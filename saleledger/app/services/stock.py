"""Stock synchronization for sales and returns.

Composite (recipe) products are expanded into their ingredients through a
depth-first walk that tracks the current path, so a misconfigured recipe
that reaches itself fails with ``RecipeCycleError`` instead of looping.
Shared sub-recipes are legal and their quantities aggregate.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from saleledger.app.core.config import settings
from saleledger.app.core.errors import RecipeCycleError, StockInsufficientError
from saleledger.app.models.inventory import (
    Product,
    StockLevel,
    StockMovement,
    StockMovementType,
)

logger = logging.getLogger(__name__)

QTY = Decimal("0.0001")
ZERO = Decimal("0")


def quantity(value: Decimal) -> Decimal:
    return Decimal(value).quantize(QTY, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class StockLine:
    """A sold (or returned) line as seen by the synchronizer."""

    product: Product
    variant_id: UUID | None
    quantity: Decimal


@dataclass
class StockDemand:
    product: Product
    variant_id: UUID | None
    quantity: Decimal


def resolve_ingredients(product: Product, qty: Decimal) -> list[tuple[Product, Decimal]]:
    """Flatten *product*'s recipe graph for *qty* units into (ingredient, qty).

    Each recipe is defined per ``recipe_yield`` units of its product. Nested
    composites are expanded in place; repeated ingredients are summed.
    """
    totals: dict[UUID, list] = {}

    def walk(node: Product, node_qty: Decimal, path: tuple[UUID, ...]) -> None:
        if node.id in path:
            raise RecipeCycleError(field="items", product=node.sku)
        path = path + (node.id,)
        scale = node_qty / Decimal(node.recipe_yield or 1)
        for item in node.recipe_items:
            ingredient = item.ingredient
            needed = Decimal(item.quantity) * scale
            if ingredient.consumes_recipe and ingredient.recipe_items:
                walk(ingredient, needed, path)
                continue
            entry = totals.setdefault(ingredient.id, [ingredient, ZERO])
            entry[1] += needed

    walk(product, Decimal(qty), ())
    return [(p, quantity(q)) for p, q in totals.values()]


def build_demands(lines: Iterable[StockLine]) -> list[StockDemand]:
    """Turn sold lines into per-(product, variant) stock demands.

    Untracked products are skipped. Composites contribute their ingredients
    rather than their own row.
    """
    demands: dict[tuple[UUID, UUID | None], StockDemand] = {}

    def add(product: Product, variant_id: UUID | None, qty: Decimal) -> None:
        if not product.track_stock or qty <= ZERO:
            return
        key = (product.id, variant_id)
        if key in demands:
            demands[key].quantity += qty
        else:
            demands[key] = StockDemand(product=product, variant_id=variant_id, quantity=qty)

    for line in lines:
        product = line.product
        if not product.track_stock:
            continue
        if product.consumes_recipe and product.recipe_items:
            for ingredient, qty in resolve_ingredients(product, line.quantity):
                add(ingredient, None, qty)
        else:
            if product.consumes_recipe:
                logger.warning(
                    "Product %s consumes a recipe but has none; decrementing own stock",
                    product.sku,
                )
            add(product, line.variant_id, quantity(line.quantity))

    # Stable lock order across concurrent checkouts
    return sorted(
        demands.values(),
        key=lambda d: (str(d.product.id), str(d.variant_id or "")),
    )


def _level_query(db: Session, warehouse_id: UUID, product_id: UUID, variant_id: UUID | None):
    query = db.query(StockLevel).filter(
        StockLevel.warehouse_id == warehouse_id,
        StockLevel.product_id == product_id,
    )
    if variant_id is None:
        query = query.filter(StockLevel.variant_id.is_(None))
    else:
        query = query.filter(StockLevel.variant_id == variant_id)
    return query.with_for_update()


def lock_stock_level(
    db: Session, warehouse_id: UUID, product_id: UUID, variant_id: UUID | None
) -> StockLevel:
    """Return the locked stock row, creating it at zero when missing."""
    level = _level_query(db, warehouse_id, product_id, variant_id).first()
    if level is None:
        try:
            with db.begin_nested():
                db.add(
                    StockLevel(
                        warehouse_id=warehouse_id,
                        product_id=product_id,
                        variant_id=variant_id,
                        quantity=ZERO,
                    )
                )
        except IntegrityError:
            logger.debug("Stock level for %s created concurrently; re-reading", product_id)
        level = _level_query(db, warehouse_id, product_id, variant_id).one()
    return level


def _move(
    db: Session,
    *,
    warehouse_id: UUID,
    demand: StockDemand,
    movement_type: StockMovementType,
    reason: str,
    reference: str,
    user_id: UUID | None,
) -> StockMovement:
    level = lock_stock_level(db, warehouse_id, demand.product.id, demand.variant_id)
    qty = quantity(demand.quantity)

    if movement_type == StockMovementType.OUT:
        if level.quantity < qty:
            if settings.BLOCK_OVERSELL:
                raise StockInsufficientError(
                    field="items",
                    product=demand.product.sku,
                    available=level.quantity,
                    requested=qty,
                )
            logger.warning(
                "Overselling %s at warehouse %s: %s on hand, %s sold (%s)",
                demand.product.sku,
                warehouse_id,
                level.quantity,
                qty,
                reference,
            )
        level.quantity = quantity(level.quantity - qty)
    else:
        level.quantity = quantity(level.quantity + qty)

    movement = StockMovement(
        warehouse_id=warehouse_id,
        product_id=demand.product.id,
        variant_id=demand.variant_id,
        movement_type=movement_type,
        quantity=qty,
        reason=reason,
        reference=reference,
        created_by=user_id,
    )
    db.add(movement)
    return movement


def sync_stock_for_sale(
    db: Session,
    *,
    lines: Iterable[StockLine],
    warehouse_id: UUID,
    invoice_number: str,
    user_id: UUID | None,
) -> list[StockMovement]:
    """Decrement stock for every sold line and log OUT movements."""
    return [
        _move(
            db,
            warehouse_id=warehouse_id,
            demand=demand,
            movement_type=StockMovementType.OUT,
            reason=f"POS sale {invoice_number}",
            reference=invoice_number,
            user_id=user_id,
        )
        for demand in build_demands(lines)
    ]


def restock_for_return(
    db: Session,
    *,
    lines: Iterable[StockLine],
    warehouse_id: UUID,
    invoice_number: str,
    user_id: UUID | None,
) -> list[StockMovement]:
    """Inverse of ``sync_stock_for_sale`` for returned quantities."""
    return [
        _move(
            db,
            warehouse_id=warehouse_id,
            demand=demand,
            movement_type=StockMovementType.IN,
            reason=f"Return on {invoice_number}",
            reference=invoice_number,
            user_id=user_id,
        )
        for demand in build_demands(lines)
    ]
