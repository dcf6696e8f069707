"""Tests for stock synchronization and recipe expansion."""
from __future__ import annotations

import logging
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from saleledger.app.core.config import settings
from saleledger.app.core.errors import RecipeCycleError, StockInsufficientError
from saleledger.app.models.inventory import (
    Product,
    ProductType,
    RecipeItem,
    StockMovement,
    StockMovementType,
    Warehouse,
)
from saleledger.app.models.user import User
from saleledger.app.services.stock import (
    StockLine,
    build_demands,
    resolve_ingredients,
    restock_for_return,
    sync_stock_for_sale,
)
from saleledger.tests.conftest import stock_of


def _prepared(db: Session, name: str, sku: str, yield_: str = "1") -> Product:
    p = Product(
        name=name,
        sku=sku,
        product_type=ProductType.PREPARED,
        enable_recipe_consumption=True,
        recipe_yield=Decimal(yield_),
    )
    db.add(p)
    db.flush()
    return p


class TestResolveIngredients:
    def test_flat_recipe(self, cake: Product, flour: Product, sugar: Product) -> None:
        result = {p.sku: qty for p, qty in resolve_ingredients(cake, Decimal("3"))}
        assert result == {"ING-FLOUR": Decimal("6.0000"), "ING-SUGAR": Decimal("3.0000")}

    def test_recipe_yield_scales_quantities(
        self, db: Session, flour: Product
    ) -> None:
        # 4 flour makes a batch of 8 cookies
        cookie = _prepared(db, "Cookie", "PREP-COOKIE", yield_="8")
        db.add(RecipeItem(product_id=cookie.id, ingredient_id=flour.id, quantity=Decimal("4")))
        db.commit()

        [(ingredient, qty)] = resolve_ingredients(cookie, Decimal("2"))
        assert ingredient.id == flour.id
        assert qty == Decimal("1.0000")

    def test_nested_and_shared_subrecipes_aggregate(
        self, db: Session, flour: Product, sugar: Product
    ) -> None:
        dough = _prepared(db, "Dough", "PREP-DOUGH")
        pie = _prepared(db, "Pie", "PREP-PIE")
        db.add_all(
            [
                RecipeItem(product_id=dough.id, ingredient_id=flour.id, quantity=Decimal("3")),
                RecipeItem(product_id=pie.id, ingredient_id=dough.id, quantity=Decimal("1")),
                RecipeItem(product_id=pie.id, ingredient_id=flour.id, quantity=Decimal("1")),
                RecipeItem(product_id=pie.id, ingredient_id=sugar.id, quantity=Decimal("2")),
            ]
        )
        db.commit()

        result = {p.sku: qty for p, qty in resolve_ingredients(pie, Decimal("2"))}
        # flour: 2 × (3 via dough + 1 direct)
        assert result == {"ING-FLOUR": Decimal("8.0000"), "ING-SUGAR": Decimal("4.0000")}

    def test_cycle_detected(self, db: Session) -> None:
        a = _prepared(db, "Loop A", "LOOP-A")
        b = _prepared(db, "Loop B", "LOOP-B")
        db.add_all(
            [
                RecipeItem(product_id=a.id, ingredient_id=b.id, quantity=Decimal("1")),
                RecipeItem(product_id=b.id, ingredient_id=a.id, quantity=Decimal("1")),
            ]
        )
        db.commit()

        with pytest.raises(RecipeCycleError) as exc_info:
            resolve_ingredients(a, Decimal("1"))
        assert exc_info.value.code == "RECIPE_CYCLE"
        assert exc_info.value.params["product"] == "LOOP-A"


class TestBuildDemands:
    def test_untracked_products_skipped(self, catering: Product) -> None:
        assert build_demands([StockLine(product=catering, variant_id=None, quantity=Decimal("1"))]) == []

    def test_same_product_lines_merge(self, coffee: Product) -> None:
        demands = build_demands(
            [
                StockLine(product=coffee, variant_id=None, quantity=Decimal("1")),
                StockLine(product=coffee, variant_id=None, quantity=Decimal("2")),
            ]
        )
        assert len(demands) == 1
        assert demands[0].quantity == Decimal("3")

    def test_composite_without_recipe_uses_own_stock(self, db: Session) -> None:
        bare = _prepared(db, "Bare", "PREP-BARE")
        db.commit()
        [demand] = build_demands([StockLine(product=bare, variant_id=None, quantity=Decimal("1"))])
        assert demand.product.id == bare.id


class TestSyncStockForSale:
    def test_composite_consumes_ingredients_only(
        self,
        db: Session,
        cashier_user: User,
        warehouse: Warehouse,
        cake: Product,
        flour: Product,
        sugar: Product,
    ) -> None:
        movements = sync_stock_for_sale(
            db,
            lines=[StockLine(product=cake, variant_id=None, quantity=Decimal("3"))],
            warehouse_id=warehouse.id,
            invoice_number="FV-000001",
            user_id=cashier_user.id,
        )
        db.flush()

        assert stock_of(db, warehouse, flour) == Decimal("94")
        assert stock_of(db, warehouse, sugar) == Decimal("97")
        assert stock_of(db, warehouse, cake) == Decimal("10")
        assert {m.product_id for m in movements} == {flour.id, sugar.id}
        assert all(m.movement_type == StockMovementType.OUT for m in movements)
        assert all(m.reference == "FV-000001" for m in movements)

    def test_missing_stock_row_created_and_goes_negative(
        self, db: Session, warehouse: Warehouse
    ) -> None:
        p = Product(name="Fresh Item", sku="FRESH-1", unit_price=Decimal("10"))
        db.add(p)
        db.commit()

        sync_stock_for_sale(
            db,
            lines=[StockLine(product=p, variant_id=None, quantity=Decimal("2"))],
            warehouse_id=warehouse.id,
            invoice_number="FV-000002",
            user_id=None,
        )
        db.flush()
        assert stock_of(db, warehouse, p) == Decimal("-2")

    def test_oversell_warns_by_default(
        self,
        db: Session,
        warehouse: Warehouse,
        coffee: Product,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="saleledger.app.services.stock"):
            sync_stock_for_sale(
                db,
                lines=[StockLine(product=coffee, variant_id=None, quantity=Decimal("60"))],
                warehouse_id=warehouse.id,
                invoice_number="FV-000003",
                user_id=None,
            )
        db.flush()
        assert stock_of(db, warehouse, coffee) == Decimal("-10")
        assert "Overselling COF-500" in caplog.text

    def test_oversell_blocked_when_configured(
        self,
        db: Session,
        warehouse: Warehouse,
        coffee: Product,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(settings, "BLOCK_OVERSELL", True)
        with pytest.raises(StockInsufficientError) as exc_info:
            sync_stock_for_sale(
                db,
                lines=[StockLine(product=coffee, variant_id=None, quantity=Decimal("60"))],
                warehouse_id=warehouse.id,
                invoice_number="FV-000004",
                user_id=None,
            )
        assert exc_info.value.params["product"] == "COF-500"
        assert db.query(StockMovement).count() == 0


class TestRestockForReturn:
    def test_returned_composite_restocks_ingredients(
        self,
        db: Session,
        warehouse: Warehouse,
        cake: Product,
        flour: Product,
        sugar: Product,
    ) -> None:
        movements = restock_for_return(
            db,
            lines=[StockLine(product=cake, variant_id=None, quantity=Decimal("1"))],
            warehouse_id=warehouse.id,
            invoice_number="FV-000005",
            user_id=None,
        )
        db.flush()

        assert stock_of(db, warehouse, flour) == Decimal("102")
        assert stock_of(db, warehouse, sugar) == Decimal("101")
        assert all(m.movement_type == StockMovementType.IN for m in movements)
