"""Seed the database with roles, a chart of accounts and POS reference data.

Usage:
    python -m saleledger.scripts.seed

Safe to re-run: existing rows are left alone and only missing ones are added.
"""

from __future__ import annotations

import os
from decimal import Decimal

import saleledger.app.models.registry  # noqa: F401
from saleledger.app.core.config import settings
from saleledger.app.core.database import SessionLocal
from saleledger.app.core.security import get_password_hash
from saleledger.app.models.accounting import Account, AccountType
from saleledger.app.models.customer import WALK_IN_KEY, Customer
from saleledger.app.models.inventory import Warehouse
from saleledger.app.models.pos import PaymentMethod, PaymentMethodType
from saleledger.app.models.tax import TaxKind, TaxRate
from saleledger.app.models.user import Permission, Role, RolePermission, User

ACCOUNTS: list[tuple[str, str, AccountType]] = [
    # Assets
    ("1000", "Cash", AccountType.ASSET),
    ("1100", "Inventory", AccountType.ASSET),
    ("1200", "Bank", AccountType.ASSET),
    ("1300", "Accounts Receivable", AccountType.ASSET),
    # Liabilities
    ("2200", "Taxes Payable", AccountType.LIABILITY),
    # Equity
    ("3000", "Owner's Equity", AccountType.EQUITY),
    # Revenue
    ("4000", "Sales", AccountType.REVENUE),
    ("4100", "Sales Discounts", AccountType.REVENUE),
    ("4200", "Other Income", AccountType.REVENUE),
    # Expenses
    ("5000", "Cost of Goods Sold", AccountType.EXPENSE),
    ("5300", "Cash Shortage", AccountType.EXPENSE),
]

ALL_PERMISSION_CODES: list[tuple[str, str]] = [
    ("pos:sale", "Process POS sales"),
    ("pos:shift", "Open/close shifts and record drawer movements"),
    ("pos:discount", "Apply discounts and authorize overrides"),
    ("invoice:read", "View invoices"),
    ("invoice:write", "Record payments on credit invoices"),
    ("returns:process", "Process sales returns"),
    ("integration:read", "View integration events"),
    ("integration:write", "Requeue dead-lettered integration events"),
]

ALL_CODES = [c for c, _ in ALL_PERMISSION_CODES]

ROLE_PERMISSIONS: dict[str, list[str]] = {
    "ADMIN": ALL_CODES,
    "SUPERVISOR": [
        "pos:sale", "pos:shift", "pos:discount",
        "invoice:read", "invoice:write", "returns:process",
        "integration:read",
    ],
    "CASHIER": ["pos:sale", "pos:shift", "invoice:read"],
}

PAYMENT_METHODS: list[tuple[str, PaymentMethodType, str]] = [
    ("CASH", PaymentMethodType.CASH, "1000"),
    ("CARD", PaymentMethodType.ELECTRONIC, "1200"),
    ("TRANSFER", PaymentMethodType.ELECTRONIC, "1200"),
    ("CREDIT", PaymentMethodType.CREDIT, "1300"),
]

TAX_RATES: list[tuple[str, Decimal, TaxKind]] = [
    ("IVA 19%", Decimal("19"), TaxKind.VAT),
    ("IVA 5%", Decimal("5"), TaxKind.VAT),
    ("INC 8%", Decimal("8"), TaxKind.CONSUMPTION),
]


def seed() -> None:
    db = SessionLocal()
    try:
        # ── Permissions ────────────────────────────────────────────────
        perm_map: dict[str, Permission] = {}
        for code, desc in ALL_PERMISSION_CODES:
            existing = db.query(Permission).filter_by(code=code).first()
            if existing:
                perm_map[code] = existing
            else:
                p = Permission(code=code, description=desc)
                db.add(p)
                perm_map[code] = p
                print(f"Created permission: {code}")
        db.flush()

        # ── Roles ──────────────────────────────────────────────────────
        roles: dict[str, Role] = {}
        for role_name, perm_codes in ROLE_PERMISSIONS.items():
            role = db.query(Role).filter_by(name=role_name).first()
            if role is None:
                role = Role(name=role_name, description=f"{role_name.title()} role")
                db.add(role)
                db.flush()
                print(f"Created role: {role_name}")
            granted = {
                rp.permission_id
                for rp in db.query(RolePermission).filter_by(role_id=role.id).all()
            }
            for code in perm_codes:
                if perm_map[code].id not in granted:
                    db.add(RolePermission(role_id=role.id, permission_id=perm_map[code].id))
            roles[role_name] = role
        db.flush()

        # ── Admin user ─────────────────────────────────────────────────
        if not db.query(User).filter_by(username="admin").first():
            password = os.environ.get("SALELEDGER_ADMIN_PASSWORD", "admin")
            db.add(
                User(
                    username="admin",
                    full_name="Administrator",
                    hashed_password=get_password_hash(password),
                    role_id=roles["ADMIN"].id,
                )
            )
            print("Created admin user.")

        # ── Chart of Accounts ──────────────────────────────────────────
        for code, name, account_type in ACCOUNTS:
            if not db.query(Account).filter_by(code=code).first():
                db.add(Account(code=code, name=name, account_type=account_type))
                print(f"Created account {code} - {name}")

        # ── Payment methods ────────────────────────────────────────────
        for name, method_type, account_code in PAYMENT_METHODS:
            if not db.query(PaymentMethod).filter_by(name=name).first():
                db.add(PaymentMethod(name=name, type=method_type, account_code=account_code))
                print(f"Created payment method: {name}")

        # ── Tax rates ──────────────────────────────────────────────────
        for name, rate, kind in TAX_RATES:
            if not db.query(TaxRate).filter_by(name=name).first():
                db.add(TaxRate(name=name, rate=rate, kind=kind))
                print(f"Created tax rate: {name}")

        # ── Warehouse and walk-in customer ─────────────────────────────
        if not db.query(Warehouse).filter_by(name="Main Store").first():
            db.add(Warehouse(name="Main Store"))
            print("Created warehouse: Main Store")

        if not db.query(Customer).filter_by(walk_in_key=WALK_IN_KEY).first():
            db.add(
                Customer(
                    name=settings.WALK_IN_CUSTOMER_NAME,
                    is_walk_in=True,
                    walk_in_key=WALK_IN_KEY,
                )
            )
            print("Created walk-in customer.")

        db.commit()
        print("Seed complete.")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
