"""Tests for credit packages, purchase orders, and payment-confirmed crediting."""

import threading
import uuid

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.core.database import Base
from app.models import Account, CreditPackage, GamificationTask
from app.models.credit_transaction import CreditTransaction
from app.services.credits import (
    InvalidReferenceError,
    create_purchase_order,
    credit_purchase,
    get_balance,
    get_purchase_order,
    get_transaction_history,
    list_packages,
    reconcile_balance,
)


class TestListPackages:
    def test_only_active_packages_in_display_order(self, db):
        db.add_all(
            [
                CreditPackage(name="Business", credits=1500, price_cop=250000, display_order=3),
                CreditPackage(name="Starter", credits=100, price_cop=20000, display_order=1),
                CreditPackage(name="Retired", credits=50, price_cop=10000, display_order=0, is_active=False),
            ]
        )
        db.commit()

        assert [p.name for p in list_packages(db)] == ["Starter", "Business"]

    def test_total_credits_includes_bonus(self, package):
        assert package.total_credits == 550


class TestCreatePurchaseOrder:
    def test_creates_pending_order(self, db, account, package):
        order = create_purchase_order(db, account.id, package.id)

        assert order.order_id.startswith(settings.CREDIT_ORDER_PREFIX)
        assert order.status == "pending"
        assert order.credits == 550
        assert order.price_cop == 90000
        assert order.completed_at is None

    def test_order_ids_are_unique(self, db, account, package):
        first = create_purchase_order(db, account.id, package.id)
        second = create_purchase_order(db, account.id, package.id)
        assert first.order_id != second.order_id

    def test_unknown_package(self, db, account):
        with pytest.raises(InvalidReferenceError):
            create_purchase_order(db, account.id, uuid.uuid4())

    def test_inactive_package(self, db, account, package):
        package.is_active = False
        db.commit()
        with pytest.raises(InvalidReferenceError):
            create_purchase_order(db, account.id, package.id)

    def test_unknown_account(self, db, package):
        with pytest.raises(InvalidReferenceError):
            create_purchase_order(db, uuid.uuid4(), package.id)


class TestCreditPurchase:
    def test_credits_order(self, db, account, package):
        order = create_purchase_order(db, account.id, package.id)

        result = credit_purchase(db, order.order_id, payment_transaction_id="bold-123")

        assert result.status == "credited"
        assert result.credits_added == 550
        assert result.bonus_credits == 0
        assert result.new_balance == 550
        assert len(result.transaction_ids) == 1

        balance = get_balance(db, account.id)
        assert balance.current_balance == 550
        assert balance.last_purchase_at is not None

        stored = get_purchase_order(db, order.order_id)
        assert stored.status == "completed"
        assert stored.payment_transaction_id == "bold-123"
        assert stored.completed_at is not None

    def test_logs_purchase_transaction(self, db, account, package):
        order = create_purchase_order(db, account.id, package.id)
        credit_purchase(db, order.order_id)

        transactions, _ = get_transaction_history(db, account.id)
        tx = transactions[0]
        assert tx.transaction_type == "purchase"
        assert tx.amount == 550
        assert tx.reference_type == "purchase_order"
        assert tx.reference_id == order.order_id
        assert tx.details["package_id"] == str(package.id)

    def test_duplicate_callback_is_already_processed(self, db, account, package):
        order = create_purchase_order(db, account.id, package.id)
        credit_purchase(db, order.order_id)

        result = credit_purchase(db, order.order_id)

        assert result.status == "already_processed"
        assert result.credits_added == 0
        assert get_balance(db, account.id).current_balance == 550
        _, total = get_transaction_history(db, account.id)
        assert total == 1

    def test_order_id_is_trimmed(self, db, account, package):
        order = create_purchase_order(db, account.id, package.id)
        result = credit_purchase(db, f"  {order.order_id} ")
        assert result.status == "credited"

    def test_foreign_order_prefix_rejected(self, db):
        with pytest.raises(InvalidReferenceError):
            credit_purchase(db, "SUB-1234")

    def test_unknown_order_rejected(self, db):
        with pytest.raises(InvalidReferenceError):
            credit_purchase(db, f"{settings.CREDIT_ORDER_PREFIX}MISSING")

    @pytest.mark.asyncio
    async def test_publishes_after_commit(self, db, account, package, notifier):
        order = create_purchase_order(db, account.id, package.id)
        subscription = notifier.subscribe(account.id)

        result = credit_purchase(db, order.order_id, notifier=notifier)
        event = await subscription.get(timeout=1)

        assert event["transaction_type"] == "purchase"
        assert event["transaction_id"] == str(result.transaction_ids[0])


class TestFirstPurchaseBonus:
    def test_first_purchase_pays_bonus(self, db, account, package, first_purchase_task):
        order = create_purchase_order(db, account.id, package.id)

        result = credit_purchase(db, order.order_id)

        assert result.bonus_credits == 25
        assert result.new_balance == 575
        assert len(result.transaction_ids) == 2

        transactions, _ = get_transaction_history(db, account.id)
        bonus = next(tx for tx in transactions if tx.transaction_type == "bonus")
        assert bonus.amount == 25
        assert bonus.reference_type == "task"
        assert bonus.reference_id == settings.FIRST_PURCHASE_TASK_KEY
        assert bonus.description == "First purchase bonus"

    def test_second_purchase_pays_no_bonus(self, db, account, package, first_purchase_task):
        credit_purchase(db, create_purchase_order(db, account.id, package.id).order_id)

        result = credit_purchase(db, create_purchase_order(db, account.id, package.id).order_id)

        assert result.bonus_credits == 0
        assert get_balance(db, account.id).current_balance == 550 * 2 + 25

    def test_no_bonus_without_task(self, db, account, package):
        result = credit_purchase(db, create_purchase_order(db, account.id, package.id).order_id)
        assert result.bonus_credits == 0

    def test_inactive_task_pays_nothing(self, db, account, package, first_purchase_task):
        first_purchase_task.is_active = False
        db.commit()

        result = credit_purchase(db, create_purchase_order(db, account.id, package.id).order_id)
        assert result.bonus_credits == 0

    def test_bonus_keeps_ledger_consistent(self, db, account, package, first_purchase_task):
        credit_purchase(db, create_purchase_order(db, account.id, package.id).order_id)

        report = reconcile_balance(db, account.id)
        assert report.consistent is True
        assert report.transaction_count == 2


class TestConcurrentCreditPurchase:
    """Two payment callbacks for one order race on a file-backed database."""

    def test_only_one_of_two_overlapping_callbacks_credits(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'purchases.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        with Session() as setup:
            account = Account(full_name="Race Buyer", email="buyer@example.com")
            package = CreditPackage(name="Professional", credits=500, bonus_credits=50, price_cop=90000)
            setup.add_all(
                [
                    account,
                    package,
                    GamificationTask(
                        task_key=settings.FIRST_PURCHASE_TASK_KEY,
                        name="First purchase",
                        credit_reward=25,
                    ),
                ]
            )
            setup.commit()
            account_id = account.id
            order_id = create_purchase_order(setup, account_id, package.id).order_id

        barrier = threading.Barrier(2)
        results = []
        errors = []

        def worker():
            with Session() as session:
                barrier.wait()
                try:
                    results.append(credit_purchase(session, order_id, payment_transaction_id="PAY-1"))
                except Exception as exc:
                    errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert errors == []
        assert sorted(r.status for r in results) == ["already_processed", "credited"]

        with Session() as check:
            balance = get_balance(check, account_id)
            assert balance.current_balance == 575
            rows = check.execute(
                select(CreditTransaction.transaction_type, func.count())
                .where(CreditTransaction.account_id == account_id)
                .group_by(CreditTransaction.transaction_type)
            ).all()
            assert dict(rows) == {"purchase": 1, "bonus": 1}
            assert reconcile_balance(check, account_id).consistent is True

        engine.dispose()
