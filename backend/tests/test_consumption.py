"""Tests for the consumption engine, including concurrent debits."""

import threading
from datetime import date, datetime

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from app.core.database import Base
from app.models import Account, CreditToolCost
from app.models.credit_transaction import CreditTransaction
from app.services.credits import (
    ToolCostCatalog,
    apply_delta,
    consume,
    get_balance,
    get_transaction_history,
    reconcile_balance,
)
from app.services.credits.ledger import utcnow


def _fund(db, account_id, amount):
    apply_delta(db, account_id, amount, "admin_grant")


class TestConsume:
    def test_paid_tool_debits_balance(self, db, account, catalog):
        _fund(db, account.id, 10)

        result = consume(db, account.id, "contract_review", {"document_id": "doc-7"}, catalog=catalog)

        assert result.allowed is True
        assert result.required == 6
        assert result.credits_consumed == 6
        assert result.new_balance == 4
        assert result.current_balance == 4
        assert result.tool_name == "Contract review"
        assert result.transaction_id is not None

    def test_logs_consumption_transaction(self, db, account, catalog):
        _fund(db, account.id, 10)
        consume(db, account.id, "contract_review", {"document_id": "doc-7"}, catalog=catalog)

        transactions, _ = get_transaction_history(db, account.id)
        tx = transactions[0]
        assert tx.transaction_type == "consumption"
        assert tx.amount == -6
        assert tx.balance_after == 4
        assert tx.reference_type == "tool"
        assert tx.reference_id == "contract_review"
        assert tx.description == "Used Contract review"
        assert tx.details == {"document_id": "doc-7"}

    def test_insufficient_balance_is_refused(self, db, account, catalog):
        _fund(db, account.id, 5)

        result = consume(db, account.id, "contract_review", catalog=catalog)

        assert result.allowed is False
        assert result.required == 6
        assert result.current_balance == 5
        assert result.shortfall == 1
        assert result.new_balance is None
        assert result.transaction_id is None
        assert get_balance(db, account.id).current_balance == 5
        _, total = get_transaction_history(db, account.id)
        assert total == 1

    def test_account_without_balance_is_refused(self, db, account, catalog):
        result = consume(db, account.id, "chat", catalog=catalog)
        assert result.allowed is False
        assert result.current_balance == 0
        assert result.shortfall == 1

    def test_exact_balance_is_allowed(self, db, account, catalog):
        _fund(db, account.id, 6)
        result = consume(db, account.id, "contract_review", catalog=catalog)
        assert result.allowed is True
        assert result.new_balance == 0

    def test_free_tool_touches_nothing(self, db, account, catalog):
        _fund(db, account.id, 3)

        result = consume(db, account.id, "report_export", catalog=catalog)

        assert result.allowed is True
        assert result.required == 0
        assert result.credits_consumed == 0
        assert result.current_balance == 3
        assert result.transaction_id is None
        _, total = get_transaction_history(db, account.id)
        assert total == 1

    def test_unknown_tool_is_free(self, db, account, catalog):
        result = consume(db, account.id, "does_not_exist", catalog=catalog)
        assert result.allowed is True
        assert result.required == 0
        assert result.tool_name is None

    def test_inactive_tool_is_free(self, db, account, catalog):
        result = consume(db, account.id, "legacy_search", catalog=catalog)
        assert result.allowed is True
        assert result.credits_consumed == 0

    def test_total_spent_tracks_consumption(self, db, account, catalog):
        _fund(db, account.id, 20)
        consume(db, account.id, "contract_review", catalog=catalog)
        consume(db, account.id, "chat", catalog=catalog)

        balance = get_balance(db, account.id)
        assert balance.current_balance == 13
        assert balance.total_spent == 7
        assert reconcile_balance(db, account.id).consistent is True


class TestActivityStreak:
    def test_first_use_starts_streak(self, db, account, catalog):
        _fund(db, account.id, 10)
        consume(db, account.id, "chat", catalog=catalog)

        balance = get_balance(db, account.id)
        assert balance.current_streak == 1
        assert balance.longest_streak == 1
        assert balance.last_activity_date == utcnow().date()

    def test_same_day_use_keeps_streak(self, db, account, catalog):
        _fund(db, account.id, 10)
        consume(db, account.id, "chat", catalog=catalog)
        consume(db, account.id, "chat", catalog=catalog)

        assert get_balance(db, account.id).current_streak == 1

    def test_consecutive_days_extend_streak(self, db, account, catalog, monkeypatch):
        _fund(db, account.id, 10)
        for day in (10, 11, 12):
            monkeypatch.setattr(
                "app.services.credits.consumption.utcnow",
                lambda day=day: datetime(2026, 3, day, 12, 0),
            )
            consume(db, account.id, "chat", catalog=catalog)

        balance = get_balance(db, account.id)
        assert balance.current_streak == 3
        assert balance.longest_streak == 3
        assert balance.last_activity_date == date(2026, 3, 12)

    def test_gap_resets_streak_but_keeps_longest(self, db, account, catalog, monkeypatch):
        _fund(db, account.id, 10)
        for day in (10, 11, 14):
            monkeypatch.setattr(
                "app.services.credits.consumption.utcnow",
                lambda day=day: datetime(2026, 3, day, 12, 0),
            )
            consume(db, account.id, "chat", catalog=catalog)

        balance = get_balance(db, account.id)
        assert balance.current_streak == 1
        assert balance.longest_streak == 2
        assert balance.last_activity_date == date(2026, 3, 14)

    def test_streak_continues_across_midnight(self, db, account, catalog, monkeypatch):
        _fund(db, account.id, 10)
        for moment in (datetime(2026, 3, 10, 23, 59), datetime(2026, 3, 11, 0, 1)):
            monkeypatch.setattr("app.services.credits.consumption.utcnow", lambda moment=moment: moment)
            consume(db, account.id, "chat", catalog=catalog)

        assert get_balance(db, account.id).current_streak == 2

    def test_refused_use_does_not_count(self, db, account, catalog):
        consume(db, account.id, "contract_review", catalog=catalog)
        assert get_balance(db, account.id).last_activity_date is None


class TestConsumeNotifications:
    @pytest.mark.asyncio
    async def test_successful_consume_publishes(self, db, account, catalog, notifier):
        _fund(db, account.id, 10)
        subscription = notifier.subscribe(account.id)

        result = consume(db, account.id, "chat", catalog=catalog, notifier=notifier)
        event = await subscription.get(timeout=1)

        assert event["event"] == "balance_changed"
        assert event["account_id"] == str(account.id)
        assert event["transaction_id"] == str(result.transaction_id)
        assert event["transaction_type"] == "consumption"

    @pytest.mark.asyncio
    async def test_refused_consume_publishes_nothing(self, db, account, catalog, notifier):
        subscription = notifier.subscribe(account.id)

        consume(db, account.id, "contract_review", catalog=catalog, notifier=notifier)

        assert subscription.queue.empty()


class TestConcurrentConsume:
    """Two sessions race for the same balance on a file-backed database."""

    def test_only_one_of_two_overlapping_debits_succeeds(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'ledger.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        with Session() as setup:
            account = Account(full_name="Race Account", email="race@example.com")
            setup.add(account)
            setup.add(CreditToolCost(tool_type="contract_review", tool_name="Contract review", credit_cost=6))
            setup.commit()
            account_id = account.id
            apply_delta(setup, account_id, 10, "admin_grant")

        catalog = ToolCostCatalog(session_factory=Session)
        catalog.refresh()

        barrier = threading.Barrier(2)
        results = []
        errors = []

        def worker():
            with Session() as session:
                barrier.wait()
                try:
                    results.append(consume(session, account_id, "contract_review", catalog=catalog))
                except Exception as exc:
                    errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert errors == []
        assert sorted(r.allowed for r in results) == [False, True]

        with Session() as check:
            balance = get_balance(check, account_id)
            assert balance.current_balance == 4
            assert balance.total_spent == 6
            consumption_rows = check.execute(
                select(func.count())
                .select_from(CreditTransaction)
                .where(CreditTransaction.transaction_type == "consumption")
            ).scalar_one()
            assert consumption_rows == 1
            assert reconcile_balance(check, account_id).consistent is True

        engine.dispose()
