"""Tax computation for sale lines.

Every rate applies to the same discounted line base (no compounding).
Amounts are rounded to cents per line; document summaries add up the
rounded line figures grouped by rate identity.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from uuid import UUID

from sqlalchemy.orm import Session

from saleledger.app.core.errors import NotFoundError
from saleledger.app.models.tax import TaxKind, TaxRate

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def money(value: Decimal | int | str) -> Decimal:
    """Round to currency precision (half up)."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TaxRateDescriptor:
    key: str
    name: str
    rate: Decimal
    kind: TaxKind = TaxKind.VAT
    tax_rate_id: UUID | None = None


@dataclass(frozen=True)
class LineTax:
    descriptor: TaxRateDescriptor
    base: Decimal
    amount: Decimal


@dataclass(frozen=True)
class LineTaxResult:
    taxes: list[LineTax]
    total: Decimal


def legacy_descriptor(rate: Decimal) -> TaxRateDescriptor:
    """Synthesize the single rate used when a line only carries a percentage."""
    normalized = Decimal(rate).normalize()
    label = format(normalized, "f")
    return TaxRateDescriptor(key=f"legacy:{label}", name=f"IVA {label}%", rate=Decimal(rate))


def descriptor_from_model(tax_rate: TaxRate) -> TaxRateDescriptor:
    return TaxRateDescriptor(
        key=str(tax_rate.id),
        name=tax_rate.name,
        rate=Decimal(tax_rate.rate),
        kind=tax_rate.kind,
        tax_rate_id=tax_rate.id,
    )


def resolve_rates(
    db: Session,
    *,
    applied_tax_ids: Sequence[UUID] | None,
    legacy_rate: Decimal | None,
) -> list[TaxRateDescriptor]:
    """Return the ordered descriptors that apply to one line.

    Explicit ``applied_tax_ids`` win. Otherwise a positive ``legacy_rate``
    yields one synthesized rate; anything else means the line is untaxed.
    """
    if applied_tax_ids:
        rows = db.query(TaxRate).filter(TaxRate.id.in_(list(applied_tax_ids))).all()
        by_id = {r.id: r for r in rows}
        descriptors: list[TaxRateDescriptor] = []
        for tax_id in applied_tax_ids:
            tax_rate = by_id.get(tax_id)
            if tax_rate is None or not tax_rate.is_active:
                raise NotFoundError(
                    "errors.tax_rate_not_found", field="applied_taxes", id=tax_id
                )
            descriptors.append(descriptor_from_model(tax_rate))
        return descriptors
    if legacy_rate is not None and legacy_rate > ZERO:
        return [legacy_descriptor(legacy_rate)]
    return []


def line_subtotal(quantity: Decimal, unit_price: Decimal, discount_pct: Decimal) -> Decimal:
    """``quantity × unit_price × (1 − discount/100)`` rounded to cents."""
    gross = Decimal(quantity) * Decimal(unit_price)
    return money(gross * (HUNDRED - Decimal(discount_pct)) / HUNDRED)


def compute_line_taxes(
    base: Decimal, rates: Iterable[TaxRateDescriptor]
) -> LineTaxResult:
    taxes = [
        LineTax(descriptor=r, base=base, amount=money(base * r.rate / HUNDRED))
        for r in rates
    ]
    return LineTaxResult(taxes=taxes, total=sum((t.amount for t in taxes), ZERO))


@dataclass
class TaxSummaryRow:
    descriptor: TaxRateDescriptor
    base: Decimal = ZERO
    amount: Decimal = ZERO


@dataclass
class TaxSummary:
    """Accumulates rounded line taxes per rate identity, in first-seen order."""

    rows: dict[str, TaxSummaryRow] = field(default_factory=dict)

    def add(self, line: LineTaxResult) -> None:
        for tax in line.taxes:
            row = self.rows.setdefault(
                tax.descriptor.key, TaxSummaryRow(descriptor=tax.descriptor)
            )
            row.base += tax.base
            row.amount += tax.amount

    @property
    def total(self) -> Decimal:
        return sum((r.amount for r in self.rows.values()), ZERO)
