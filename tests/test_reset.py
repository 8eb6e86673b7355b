"""
Tests for balance reset, monthly reduction and reduction policies.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from budget_ledger.config import LedgerSettings
from budget_ledger.models.audit import AuditEventType
from budget_ledger.models.commands import (
    AccountSubmission,
    IncomeSubmission,
    PotSubmission,
    TransactionSubmission,
    TransferScheduleSubmission,
)
from budget_ledger.models.ledger import BalanceRef
from budget_ledger.processing import RecurringTransactionProcessor
from budget_ledger.reset import (
    BalanceResetService,
    fixed,
    policy_from_settings,
    proportional,
    zero,
)
from budget_ledger.schedules import ScheduleRegistry


class TestPolicies:
    """Tests for the built-in reduction policies."""

    def test_proportional(self):
        """Test removing a share of the balance."""
        policy = proportional(Decimal("0.25"))
        assert policy(Decimal("100")) == Decimal("75.00")
        assert policy(Decimal("-40")) == Decimal("-30.00")
        assert proportional(Decimal("1"))(Decimal("12.34")) == Decimal("0.00")

    def test_proportional_rate_bounds(self):
        """Test that rates outside 0..1 are refused."""
        with pytest.raises(ValueError):
            proportional(Decimal("1.5"))
        with pytest.raises(ValueError):
            proportional(Decimal("-0.1"))

    def test_fixed_stops_at_zero(self):
        """Test that a fixed reduction never crosses zero."""
        policy = fixed(Decimal("50"))
        assert policy(Decimal("120")) == Decimal("70.00")
        assert policy(Decimal("30")) == Decimal("0.00")
        assert policy(Decimal("-80")) == Decimal("-30.00")
        assert policy(Decimal("-10")) == Decimal("0.00")

    def test_fixed_rejects_negative(self):
        """Test that a negative fixed amount is refused."""
        with pytest.raises(ValueError):
            fixed(Decimal("-1"))

    def test_zero(self):
        """Test the zero policy."""
        assert zero()(Decimal("-55.10")) == Decimal("0.00")

    def test_policy_from_settings(self):
        """Test that configuration picks the policy."""
        settings = LedgerSettings(reduction_policy="fixed", reduction_fixed_amount=Decimal("10"))
        assert policy_from_settings(settings)(Decimal("25")) == Decimal("15.00")

        settings = LedgerSettings(reduction_policy="proportional", reduction_rate=Decimal("0.5"))
        assert policy_from_settings(settings)(Decimal("25")) == Decimal("12.50")


async def _seed(store):
    main = await store.create_account(AccountSubmission(name="Main", kind="current", balance=Decimal("500")))
    await store.create_pot(main.id, PotSubmission(name="Rent", balance=Decimal("200")))
    await store.create_pot(main.id, PotSubmission(name="Rainy day", balance=Decimal("80"), exclude_from_reset=True))
    savings = await store.create_account(AccountSubmission(
        name="Savings", kind="savings", balance=Decimal("3000"), exclude_from_reset=True,
    ))
    await store.create_pot(savings.id, PotSubmission(name="Holiday", balance=Decimal("400")))
    return main, savings


class TestResetBalances:
    """Tests for reset_balances."""

    @pytest.mark.asyncio
    async def test_reset_zeroes_included_balances(self, store, clock, audit_logger, audit_storage):
        """Test which balances a reset touches."""
        main, savings = await _seed(store)
        service = BalanceResetService(store, audit_logger=audit_logger, clock=clock)

        summary = await service.reset_balances()

        assert summary.accounts_reset == 1
        assert summary.pots_reset == 2
        assert store.balance_of(BalanceRef.of(main.id)) == Decimal("0.00")
        assert store.balance_of(BalanceRef.of(main.id, "Rent")) == Decimal("0.00")
        assert store.balance_of(BalanceRef.of(main.id, "Rainy day")) == Decimal("80.00")
        assert store.balance_of(BalanceRef.of(savings.id)) == Decimal("3000.00")
        assert store.balance_of(BalanceRef.of(savings.id, "Holiday")) == Decimal("0.00")
        assert store.last_reset_at == clock.now
        assert audit_storage.events[-1].event_type == AuditEventType.BALANCES_RESET

    @pytest.mark.asyncio
    async def test_reset_reactivates_completed_schedules(self, store, clock):
        """Test that completed schedules go back to Pending."""
        main, savings = await _seed(store)
        registry = ScheduleRegistry(store, clock=clock)
        income = await store.create_income(main.id, IncomeSubmission(
            description="Salary", amount=Decimal("100"), day_of_month=1,
        ))
        income_schedule = (await registry.add_income_schedule(main.id, income.id)).schedule
        transfer = (await registry.add_transfer_schedule(TransferScheduleSubmission(
            from_account_id=savings.id, to_account_id=main.id, to_pot_name="Rent", amount=Decimal("50"),
        ))).schedule
        await registry.execute_income_schedule(income_schedule.id)
        await registry.execute_transfer_schedule(transfer.id)

        service = BalanceResetService(store, clock=clock)
        summary = await service.reset_balances()

        assert summary.schedules_reset == 2
        for schedule in [*store.income_schedules(), *store.transfer_schedules()]:
            assert schedule.is_pending
            assert schedule.last_executed is None

        again = await registry.execute_income_schedule(income_schedule.id)
        assert again.schedule.is_completed

    @pytest.mark.asyncio
    async def test_excluded_account_does_not_shield_its_pots(self, store, clock):
        """Test that exclusion is decided per balance."""
        savings = await store.create_account(AccountSubmission(
            name="Savings", kind="savings", balance=Decimal("500"), exclude_from_reset=True,
        ))
        await store.create_pot(savings.id, PotSubmission(name="Holiday", balance=Decimal("80")))
        await store.create_pot(savings.id, PotSubmission(
            name="Emergency", balance=Decimal("60"), exclude_from_reset=True,
        ))

        summary = await BalanceResetService(store, clock=clock).reset_balances()

        assert summary.accounts_reset == 0
        assert summary.pots_reset == 1
        assert store.balance_of(BalanceRef.of(savings.id)) == Decimal("500.00")
        assert store.balance_of(BalanceRef.of(savings.id, "Holiday")) == Decimal("0.00")
        assert store.balance_of(BalanceRef.of(savings.id, "Emergency")) == Decimal("60.00")

    @pytest.mark.asyncio
    async def test_reset_twice_matches_once(self, store, clock):
        """Test that a second reset changes nothing but the timestamp."""
        await _seed(store)
        service = BalanceResetService(store, clock=clock)

        await service.reset_balances()
        after_first = store.snapshot()
        clock.now = datetime(2024, 5, 16)
        await service.reset_balances()
        after_second = store.snapshot()

        assert after_second.accounts == after_first.accounts
        assert after_second.last_reset_at == datetime(2024, 5, 16)

    @pytest.mark.asyncio
    async def test_reset_keeps_processed_logs(self, store, clock):
        """Test that the sweep history survives a reset."""
        main, _ = await _seed(store)
        await store.create_transaction(TransactionSubmission(
            name="Rent", amount=Decimal("10"), day_of_month=15, to_account_id=main.id,
        ))
        await RecurringTransactionProcessor(store, clock=clock).run()

        await BalanceResetService(store, clock=clock).reset_balances()
        assert len(store.processed_logs()) == 1


class TestMonthlyReduction:
    """Tests for apply_monthly_reduction and its history."""

    @pytest.mark.asyncio
    async def test_reduction_logs_each_account(self, store, clock, audit_logger, audit_storage):
        """Test one log row per included account, sharing a timestamp."""
        main, savings = await _seed(store)
        other = await store.create_account(AccountSubmission(name="Other", kind="current", balance=Decimal("-20")))
        service = BalanceResetService(
            store, policy=proportional(Decimal("0.1")), policy_name="proportional",
            audit_logger=audit_logger, clock=clock,
        )

        run = await service.apply_monthly_reduction()

        assert [e.account_id for e in run.entries] == [main.id, other.id]
        assert {e.timestamp for e in run.entries} == {clock.now}
        first = run.entries[0]
        assert first.baseline_balance == Decimal("500.00")
        assert first.resulting_balance == Decimal("450.00")
        assert first.reduction_amount == Decimal("50.00")
        assert first.period == "2024-05"
        assert first.day_of_month == 15
        assert run.total_reduction == Decimal("48.00")

        assert store.balance_of(BalanceRef.of(main.id)) == Decimal("450.00")
        assert store.balance_of(BalanceRef.of(other.id)) == Decimal("-18.00")
        # Pots and excluded accounts keep their balances
        assert store.balance_of(BalanceRef.of(main.id, "Rent")) == Decimal("200.00")
        assert store.balance_of(BalanceRef.of(savings.id)) == Decimal("3000.00")

        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.REDUCTION_APPLIED
        assert event.details["total_reduction"] == "48.00"

    @pytest.mark.asyncio
    async def test_default_policy_empties_accounts(self, store, clock):
        """Test that without a policy the reduction zeroes balances."""
        main, _ = await _seed(store)
        run = await BalanceResetService(store, clock=clock).apply_monthly_reduction()
        assert run.entries[0].resulting_balance == Decimal("0.00")
        assert store.balance_of(BalanceRef.of(main.id)) == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_reduction_leaves_pots_untouched(self, store, clock):
        """Test that only account balances are reduced, whatever the pot flags."""
        main, savings = await _seed(store)
        pots_before = {
            (account.id, pot.name): pot.balance
            for account in store.accounts()
            for pot in account.pots
        }

        run = await BalanceResetService(store, policy=zero(), clock=clock).apply_monthly_reduction()

        assert [e.account_id for e in run.entries] == [main.id]
        assert store.balance_of(BalanceRef.of(main.id)) == Decimal("0.00")
        pots_after = {
            (account.id, pot.name): pot.balance
            for account in store.accounts()
            for pot in account.pots
        }
        assert pots_after == pots_before
        assert pots_after[(main.id, "Rent")] == Decimal("200.00")
        assert pots_after[(savings.id, "Holiday")] == Decimal("400.00")

    @pytest.mark.asyncio
    async def test_reduction_runs_newest_first(self, store, clock):
        """Test that history is grouped by run timestamp."""
        await _seed(store)
        service = BalanceResetService(store, policy=fixed(Decimal("100")), clock=clock)

        await service.apply_monthly_reduction()
        clock.now = datetime(2024, 6, 15, 9, 30)
        await service.apply_monthly_reduction()

        runs = service.reduction_runs()
        assert [r.timestamp for r in runs] == [datetime(2024, 6, 15, 9, 30), datetime(2024, 5, 15, 9, 30)]
        assert runs[0].entries[0].baseline_balance == Decimal("400.00")
        assert runs[1].entries[0].resulting_balance == Decimal("400.00")
