"""Shared test fixtures.

Each test runs inside an outer DB transaction that is rolled back after the
test completes. Service-level commits and rollbacks land on SAVEPOINTs, so
fixtures commit their rows to survive a service rolling back its own work.
"""

from __future__ import annotations

import os

os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL", "sqlite://")
os.environ.setdefault("OUTBOX_DISPATCH_ON_COMMIT", "false")
os.environ.setdefault("DB_RETRY_BASE_DELAY", "0")
os.environ.setdefault("DB_RETRY_MAX_DELAY", "0")

from decimal import Decimal  # noqa: E402
from typing import Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

import saleledger.app.models.registry  # noqa: E402,F401
from saleledger.app.core.database import Base, engine, get_db  # noqa: E402
from saleledger.app.core.security import create_access_token, get_password_hash  # noqa: E402
from saleledger.app.main import app  # noqa: E402
from saleledger.app.models.accounting import Account  # noqa: E402
from saleledger.app.models.customer import Customer  # noqa: E402
from saleledger.app.models.inventory import (  # noqa: E402
    Product,
    ProductType,
    RecipeItem,
    StockLevel,
    Warehouse,
)
from saleledger.app.models.pos import PaymentMethod, Shift  # noqa: E402
from saleledger.app.models.tax import TaxRate  # noqa: E402
from saleledger.app.models.user import Permission, Role, RolePermission, User  # noqa: E402
from saleledger.app.services.shift import open_shift  # noqa: E402
from saleledger.scripts.seed import (  # noqa: E402
    ACCOUNTS,
    ALL_PERMISSION_CODES,
    PAYMENT_METHODS,
    ROLE_PERMISSIONS,
    TAX_RATES,
)

_PASSWORD = "pass"
_PASSWORD_HASH = get_password_hash(_PASSWORD)


# ─── Schema and per-test session ─────────────────────────────────────────────


@pytest.fixture(scope="session", autouse=True)
def _schema() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    """Yield a session whose commits release SAVEPOINTs; rolled back after the test."""
    connection = engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection, autoflush=False, join_transaction_mode="create_savepoint"
    )

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture()
def client(db: Session) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to the transactional test session."""

    def _override_get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ─── Roles & permissions ─────────────────────────────────────────────────────


@pytest.fixture()
def seed_roles(db: Session) -> dict[str, Role]:
    perm_map: dict[str, Permission] = {}
    for code, desc in ALL_PERMISSION_CODES:
        p = Permission(code=code, description=desc)
        db.add(p)
        perm_map[code] = p
    db.flush()

    roles: dict[str, Role] = {}
    for role_name, perm_codes in ROLE_PERMISSIONS.items():
        role = Role(name=role_name, description=f"{role_name} role")
        db.add(role)
        db.flush()
        for code in perm_codes:
            db.add(RolePermission(role_id=role.id, permission_id=perm_map[code].id))
        roles[role_name] = role
    db.commit()
    return roles


def _make_user(db: Session, username: str, role: Role) -> User:
    user = User(username=username, hashed_password=_PASSWORD_HASH, role_id=role.id)
    db.add(user)
    db.commit()
    return user


@pytest.fixture()
def admin_user(db: Session, seed_roles: dict[str, Role]) -> User:
    return _make_user(db, "test_admin", seed_roles["ADMIN"])


@pytest.fixture()
def supervisor_user(db: Session, seed_roles: dict[str, Role]) -> User:
    return _make_user(db, "test_supervisor", seed_roles["SUPERVISOR"])


@pytest.fixture()
def cashier_user(db: Session, seed_roles: dict[str, Role]) -> User:
    return _make_user(db, "test_cashier", seed_roles["CASHIER"])


@pytest.fixture()
def admin_token(admin_user: User) -> str:
    return create_access_token(subject=str(admin_user.id))


@pytest.fixture()
def supervisor_token(supervisor_user: User) -> str:
    return create_access_token(subject=str(supervisor_user.id))


@pytest.fixture()
def cashier_token(cashier_user: User) -> str:
    return create_access_token(subject=str(cashier_user.id))


def auth(token: str, language: str | None = None) -> dict[str, str]:
    """Return Authorization header dict, optionally with Accept-Language."""
    headers = {"Authorization": f"Bearer {token}"}
    if language:
        headers["Accept-Language"] = language
    return headers


# ─── Chart of accounts and POS reference data ────────────────────────────────


@pytest.fixture()
def seed_accounts(db: Session) -> dict[str, Account]:
    accounts: dict[str, Account] = {}
    for code, name, atype in ACCOUNTS:
        acc = Account(code=code, name=name, account_type=atype)
        db.add(acc)
        accounts[code] = acc
    db.commit()
    return accounts


@pytest.fixture()
def payment_methods(db: Session) -> dict[str, PaymentMethod]:
    methods: dict[str, PaymentMethod] = {}
    for name, mtype, account_code in PAYMENT_METHODS:
        m = PaymentMethod(name=name, type=mtype, account_code=account_code)
        db.add(m)
        methods[name] = m
    db.commit()
    return methods


@pytest.fixture()
def tax_rates(db: Session) -> dict[str, TaxRate]:
    rates: dict[str, TaxRate] = {}
    for name, rate, kind in TAX_RATES:
        t = TaxRate(name=name, rate=rate, kind=kind)
        db.add(t)
        rates[name] = t
    db.commit()
    return rates


# ─── Inventory fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def warehouse(db: Session) -> Warehouse:
    wh = Warehouse(name="Test Main Store")
    db.add(wh)
    db.commit()
    return wh


def _add_product(db: Session, **kwargs) -> Product:
    p = Product(**kwargs)
    db.add(p)
    db.flush()
    return p


def _stock(db: Session, warehouse: Warehouse, product: Product, qty: str) -> StockLevel:
    level = StockLevel(
        warehouse_id=warehouse.id, product_id=product.id, quantity=Decimal(qty)
    )
    db.add(level)
    db.flush()
    return level


def stock_of(db: Session, warehouse: Warehouse, product: Product) -> Decimal:
    """Current on-hand quantity of the base (variant-less) row."""
    level = (
        db.query(StockLevel)
        .filter(
            StockLevel.warehouse_id == warehouse.id,
            StockLevel.product_id == product.id,
            StockLevel.variant_id.is_(None),
        )
        .one()
    )
    db.refresh(level)
    return level.quantity


@pytest.fixture()
def coffee(db: Session, warehouse: Warehouse) -> Product:
    """Retail product priced at 20,000 with 50 units on hand."""
    p = _add_product(
        db,
        name="Coffee Beans 500g",
        sku="COF-500",
        product_type=ProductType.RETAIL,
        unit_price=Decimal("20000"),
        cost=Decimal("12000"),
    )
    _stock(db, warehouse, p, "50")
    db.commit()
    return p


@pytest.fixture()
def catering(db: Session) -> Product:
    """Untracked service line priced at 50,000."""
    p = _add_product(
        db,
        name="Catering Service",
        sku="SRV-CAT",
        product_type=ProductType.RETAIL,
        unit_price=Decimal("50000"),
        track_stock=False,
    )
    db.commit()
    return p


@pytest.fixture()
def flour(db: Session, warehouse: Warehouse) -> Product:
    p = _add_product(
        db,
        name="Flour",
        sku="ING-FLOUR",
        product_type=ProductType.INGREDIENT,
        cost=Decimal("500"),
    )
    _stock(db, warehouse, p, "100")
    db.commit()
    return p


@pytest.fixture()
def sugar(db: Session, warehouse: Warehouse) -> Product:
    p = _add_product(
        db,
        name="Sugar",
        sku="ING-SUGAR",
        product_type=ProductType.INGREDIENT,
        cost=Decimal("300"),
    )
    _stock(db, warehouse, p, "100")
    db.commit()
    return p


@pytest.fixture()
def cake(db: Session, warehouse: Warehouse, flour: Product, sugar: Product) -> Product:
    """Composite: each unit consumes 2 flour and 1 sugar. Own stock row at 10."""
    p = _add_product(
        db,
        name="Sponge Cake",
        sku="PREP-CAKE",
        product_type=ProductType.PREPARED,
        unit_price=Decimal("8000"),
        enable_recipe_consumption=True,
        recipe_yield=Decimal("1"),
    )
    db.add_all(
        [
            RecipeItem(product_id=p.id, ingredient_id=flour.id, quantity=Decimal("2")),
            RecipeItem(product_id=p.id, ingredient_id=sugar.id, quantity=Decimal("1")),
        ]
    )
    _stock(db, warehouse, p, "10")
    db.commit()
    return p


# ─── Customers ───────────────────────────────────────────────────────────────


@pytest.fixture()
def credit_customer(db: Session) -> Customer:
    """Limit 100,000 with 60,000 already outstanding."""
    c = Customer(
        name="Limited Customer",
        credit_limit=Decimal("100000"),
        current_balance=Decimal("60000"),
    )
    db.add(c)
    db.commit()
    return c


@pytest.fixture()
def vip_customer(db: Session) -> Customer:
    """Limit 200,000 with 60,000 already outstanding."""
    c = Customer(
        name="VIP Customer",
        credit_limit=Decimal("200000"),
        current_balance=Decimal("60000"),
    )
    db.add(c)
    db.commit()
    return c


# ─── Shifts ──────────────────────────────────────────────────────────────────


@pytest.fixture()
def cashier_shift(db: Session, cashier_user: User) -> Shift:
    return open_shift(db, user_id=cashier_user.id, starting_cash=Decimal("100000"))


@pytest.fixture()
def supervisor_shift(db: Session, supervisor_user: User) -> Shift:
    return open_shift(db, user_id=supervisor_user.id, starting_cash=Decimal("50000"))
