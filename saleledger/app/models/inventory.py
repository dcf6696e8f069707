from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from saleledger.app.core.database import Base


class ProductType(str, enum.Enum):
    RETAIL = "RETAIL"
    PREPARED = "PREPARED"
    INGREDIENT = "INGREDIENT"


class StockMovementType(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


class Product(Base):
    """Sellable or consumable item.

    A PREPARED product with ``enable_recipe_consumption`` is a composite:
    selling it consumes its ``recipe_items`` (per ``recipe_yield`` units)
    instead of its own stock row.
    """

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    product_type: Mapped[ProductType] = mapped_column(
        Enum(ProductType), nullable=False, default=ProductType.RETAIL
    )
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    cost: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    track_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    enable_recipe_consumption: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    recipe_yield: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("1")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    variants: Mapped[list[ProductVariant]] = relationship(back_populates="product")
    recipe_items: Mapped[list[RecipeItem]] = relationship(
        back_populates="product", foreign_keys="RecipeItem.product_id"
    )

    @property
    def consumes_recipe(self) -> bool:
        return (
            self.product_type == ProductType.PREPARED
            and self.enable_recipe_consumption
        )

    __table_args__ = (
        CheckConstraint("unit_price >= 0", name="ck_product_unit_price_non_negative"),
        CheckConstraint("cost >= 0", name="ck_product_cost_non_negative"),
        CheckConstraint("recipe_yield > 0", name="ck_product_recipe_yield_positive"),
    )


class ProductVariant(Base):
    __tablename__ = "product_variants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    unit_price: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=4), nullable=True
    )
    cost: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=4), nullable=True
    )

    product: Mapped[Product] = relationship(back_populates="variants")


class RecipeItem(Base):
    """``quantity`` of ``ingredient`` per ``product.recipe_yield`` units."""

    __tablename__ = "recipe_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id"), nullable=False
    )
    ingredient_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id"), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )

    product: Mapped[Product] = relationship(
        back_populates="recipe_items", foreign_keys=[product_id]
    )
    ingredient: Mapped[Product] = relationship(foreign_keys=[ingredient_id])

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_recipe_item_quantity_positive"),
        UniqueConstraint("product_id", "ingredient_id", name="uq_recipe_ingredient"),
    )


class Warehouse(Base):
    __tablename__ = "warehouses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class StockLevel(Base):
    """On-hand quantity per (warehouse, product, variant).

    Quantity is allowed to go negative when overselling is not blocked.
    """

    __tablename__ = "stock_levels"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("warehouses.id"), nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id"), nullable=False
    )
    variant_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("product_variants.id"), nullable=True
    )
    quantity: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    min_stock: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    max_stock: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=4), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "warehouse_id", "product_id", "variant_id", name="uq_stock_level_variant"
        ),
        # NULL variants are distinct under the constraint above
        Index(
            "uq_stock_level_base_product",
            "warehouse_id",
            "product_id",
            unique=True,
            postgresql_where=text("variant_id IS NULL"),
            sqlite_where=text("variant_id IS NULL"),
        ),
    )


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("warehouses.id"), nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id"), nullable=False
    )
    variant_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("product_variants.id"), nullable=True
    )
    movement_type: Mapped[StockMovementType] = mapped_column(
        Enum(StockMovementType), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_movement_quantity_positive"),
        Index("ix_stock_movements_product", "product_id"),
        Index("ix_stock_movements_reference", "reference"),
    )
