# Importing this module registers every mapped table on ``Base.metadata``.
# Alembic's env.py, the application entrypoint and the test-suite import it
# so string-based relationships resolve and ``create_all`` sees all tables.

from saleledger.app.models.accounting import Account, AccountType, JournalEntry, TransactionSplit
from saleledger.app.models.audit import AuditLog
from saleledger.app.models.customer import Customer
from saleledger.app.models.inventory import (
    Product,
    ProductType,
    ProductVariant,
    RecipeItem,
    StockLevel,
    StockMovement,
    StockMovementType,
    Warehouse,
)
from saleledger.app.models.invoice import (
    DocumentSequence,
    Invoice,
    InvoiceItem,
    InvoiceItemTax,
    InvoiceStatus,
    InvoiceTaxSummary,
    Payment,
)
from saleledger.app.models.outbox import IntegrationEvent, IntegrationEventStatus
from saleledger.app.models.pos import (
    CashMovement,
    CashMovementType,
    PaymentMethod,
    PaymentMethodType,
    Shift,
    ShiftStatus,
    ShiftSummary,
)
from saleledger.app.models.returns import CreditNote, Return, ReturnItem, ReturnRefund
from saleledger.app.models.tax import TaxKind, TaxRate
from saleledger.app.models.user import Permission, Role, RolePermission, User

__all__ = [
    "Account",
    "AccountType",
    "AuditLog",
    "CashMovement",
    "CashMovementType",
    "CreditNote",
    "Customer",
    "DocumentSequence",
    "IntegrationEvent",
    "IntegrationEventStatus",
    "Invoice",
    "InvoiceItem",
    "InvoiceItemTax",
    "InvoiceStatus",
    "InvoiceTaxSummary",
    "JournalEntry",
    "Payment",
    "PaymentMethod",
    "PaymentMethodType",
    "Permission",
    "Product",
    "ProductType",
    "ProductVariant",
    "RecipeItem",
    "Return",
    "ReturnItem",
    "ReturnRefund",
    "Role",
    "RolePermission",
    "Shift",
    "ShiftStatus",
    "ShiftSummary",
    "StockLevel",
    "StockMovement",
    "StockMovementType",
    "TaxKind",
    "TaxRate",
    "TransactionSplit",
    "User",
    "Warehouse",
]
