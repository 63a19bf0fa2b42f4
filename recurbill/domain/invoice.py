"""
Invoice draft for a subscription charge.

The engine never stores invoices; the draft is handed to whatever invoicing
module the caller uses.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict

from recurbill.domain.subscription import Subscription
from recurbill.utils.money import to_money


@dataclass(frozen=True)
class InvoiceLine:
    name: str
    qty: int
    price: Decimal
    total: Decimal


@dataclass(frozen=True)
class InvoiceDraft:
    subscription_id: str
    customer: str
    date: date
    lines: list[InvoiceLine] = field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subscription_id": self.subscription_id,
            "customer": self.customer,
            "date": self.date.isoformat(),
            "lines": [
                {"name": ln.name, "qty": ln.qty, "price": str(ln.price), "total": str(ln.total)}
                for ln in self.lines
            ],
            "subtotal": str(self.subtotal),
            "tax_rate": str(self.tax_rate),
            "tax": str(self.tax),
            "total": str(self.total),
            "notes": self.notes,
        }


def build_invoice_draft(
    subscription: Subscription,
    today: date,
    tax_rate: Decimal = Decimal("0"),
) -> InvoiceDraft:
    """
    Draft an invoice for one billing cycle.

    Args:
        subscription: subscription being charged
        today: invoice date
        tax_rate: percent, e.g. Decimal("20") for 20%
    """
    cycle = subscription.cadence.label
    amount = to_money(subscription.amount)
    line = InvoiceLine(
        name=f"{cycle} Subscription: {subscription.plan}",
        qty=1,
        price=amount,
        total=amount,
    )
    tax = to_money(amount * tax_rate / 100)
    return InvoiceDraft(
        subscription_id=subscription.id,
        customer=subscription.customer_ref,
        date=today,
        lines=[line],
        subtotal=amount,
        tax_rate=tax_rate,
        tax=tax,
        total=amount + tax,
        notes=f"Subscription ID: {subscription.id}\nBilling Cycle: {cycle}",
    )
