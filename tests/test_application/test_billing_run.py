"""
Tests for the automated billing run and its scheduler job
"""
import logging
from datetime import date
from unittest.mock import patch

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import sessionmaker

from recurbill.application.billing_run import run_due_billing
from recurbill.application.events import EVENT_BILLED
from recurbill.application.scheduler import DUE_BILLING_JOB_ID, _run_due_billing, configure_jobs
from recurbill.application.subscriptions import OperationResult
from recurbill.domain.errors import SubscriptionNotActiveError
from recurbill.infrastructure.store import SqlSubscriptionStore


class TestRunDueBilling:

    def test_bills_every_due_subscription(self, facade, make_subscription, recorder):
        due_1 = make_subscription(anchor_date="2023-12-15")
        make_subscription(anchor_date="2024-01-15")
        due_2 = make_subscription(anchor_date="2023-11-20", cadence="weekly")

        report = run_due_billing(facade)

        assert report.billing_date == date(2024, 1, 15)
        assert report.processed == [due_1.id, due_2.id]
        assert report.processed_count == 2
        assert report.failed == {}
        assert facade.due_for_billing() == []
        assert facade.get_subscription(due_1.id).next_charge_date == date(2024, 2, 15)
        assert facade.get_subscription(due_2.id).next_charge_date == date(2024, 1, 22)
        assert recorder.types.count(EVENT_BILLED) == 2

    def test_nothing_due(self, facade, make_subscription):
        make_subscription()
        report = run_due_billing(facade)
        assert report.processed == []
        assert report.failed == {}

    def test_billing_date_selects_due_set(self, facade, make_subscription):
        sub = make_subscription(anchor_date="2023-12-15")
        report = run_due_billing(facade, billing_date=date(2024, 1, 10))
        assert report.billing_date == date(2024, 1, 10)
        assert report.processed == []
        assert facade.get_subscription(sub.id).next_charge_date == date(2024, 1, 15)

    def test_later_billing_date_includes_upcoming(self, facade, make_subscription):
        today_due = make_subscription(anchor_date="2023-12-15")
        next_week = make_subscription(anchor_date="2024-01-11", cadence="weekly")
        not_yet = make_subscription(anchor_date="2024-01-15")

        report = run_due_billing(facade, billing_date=date(2024, 1, 18))

        assert report.processed == [today_due.id, next_week.id]
        assert facade.get_subscription(next_week.id).next_charge_date == date(2024, 1, 25)
        assert facade.get_subscription(today_due.id).next_charge_date == date(2024, 2, 18)
        assert facade.get_subscription(not_yet.id).last_charge_date is None

    def test_paused_and_cancelled_are_skipped(self, facade, make_subscription):
        paused = make_subscription(anchor_date="2023-12-15")
        cancelled = make_subscription(anchor_date="2023-12-15")
        facade.pause_subscription(paused.id)
        facade.cancel_subscription(cancelled.id)

        assert run_due_billing(facade).processed == []

    def test_failures_are_reported(self, facade, make_subscription, caplog):
        sub = make_subscription(anchor_date="2023-12-15")
        rejected = OperationResult.fail(SubscriptionNotActiveError("paused"))

        with patch.object(facade, "process_billing", return_value=rejected):
            with caplog.at_level(logging.WARNING, logger="recurbill.application.billing_run"):
                report = run_due_billing(facade)

        assert report.processed == []
        assert report.failed == {sub.id: ["Cannot bill a non-active subscription"]}
        assert "not billed" in caplog.text


class TestScheduler:

    def test_configure_jobs_registers_daily_cron(self):
        target = BackgroundScheduler(timezone="UTC")

        configure_jobs(target)

        job = target.get_job(DUE_BILLING_JOB_ID)
        assert job is not None
        assert isinstance(job.trigger, CronTrigger)
        assert "hour='6'" in str(job.trigger)

    def test_configure_jobs_is_idempotent(self):
        target = BackgroundScheduler(timezone="UTC")
        configure_jobs(target)
        configure_jobs(target)
        assert len(target.get_jobs()) == 1

    def test_job_bills_due_subscriptions(self, db_engine, sql_facade, db_session):
        created = sql_facade.create_subscription(
            customer_ref="Acme", plan="Pro", amount="10", cadence="monthly", anchor_date="2023-12-15",
        ).subscription

        with patch("recurbill.infrastructure.db.session.get_session_factory",
                   return_value=sessionmaker(bind=db_engine)):
            _run_due_billing()

        db_session.expire_all()
        stored = SqlSubscriptionStore(db_session).load()[0]
        assert stored.id == created.id
        assert stored.last_charge_date is not None
        assert stored.next_charge_date > date(2024, 1, 15)

    def test_job_logs_and_swallows_errors(self, caplog):
        with patch("recurbill.infrastructure.db.session.get_session_factory") as factory, \
                patch("recurbill.application.subscriptions.build_facade", side_effect=RuntimeError("db down")):
            with caplog.at_level(logging.ERROR, logger="recurbill.application.scheduler"):
                _run_due_billing()

        factory.return_value.return_value.close.assert_called_once()
        assert "Due billing job failed" in caplog.text
