"""
Automated billing run - bills every subscription due on the billing date.

Each subscription is billed independently: a rejected item is recorded in the
report and the run continues. Store failures (PersistenceError) abort the run.
"""
import logging
from dataclasses import dataclass, field
from datetime import date

from recurbill.application.queries import due_for_billing
from recurbill.application.subscriptions import SubscriptionFacade

logger = logging.getLogger(__name__)


@dataclass
class BillingRunReport:
    billing_date: date
    processed: list[str] = field(default_factory=list)
    failed: dict[str, list[str]] = field(default_factory=dict)

    @property
    def processed_count(self) -> int:
        return len(self.processed)


def run_due_billing(facade: SubscriptionFacade, billing_date: date | None = None) -> BillingRunReport:
    """
    Process billing for all due subscriptions.

    Args:
        facade: subscription facade
        billing_date: selects the due set and is recorded as the charge date
            (default: facade clock's today)

    Returns:
        BillingRunReport with processed ids and per-id errors
    """
    if billing_date is None:
        billing_date = facade.clock.today()

    due = due_for_billing(facade.all_subscriptions(), billing_date)
    report = BillingRunReport(billing_date=billing_date)

    if not due:
        logger.info("Billing run %s: nothing due", billing_date)
        return report

    for sub in due:
        result = facade.process_billing(sub.id, billing_date)
        if result.success:
            report.processed.append(sub.id)
        else:
            report.failed[sub.id] = result.errors
            logger.warning("Billing run: subscription %s not billed: %s", sub.id, "; ".join(result.errors))

    logger.info(
        "Billing run %s: billed %d of %d due subscription(s)",
        billing_date, report.processed_count, len(due),
    )
    return report
