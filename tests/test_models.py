"""
Tests for Budget Ledger models

Test strategy:
1. Unit tests for individual models and validators
2. No storage or clock involved; components are tested in their own modules
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from budget_ledger.models.ledger import (
    Account,
    AccountKind,
    BalanceRef,
    PaymentMethod,
    TransactionKind,
    TransactionRecord,
    parse_day_of_month,
    to_money,
)
from budget_ledger.models.commands import (
    AccountSubmission,
    IncomeSubmission,
    PotUpdate,
    TransactionSubmission,
    TransferScheduleSubmission,
)
from budget_ledger.models.logs import (
    BalanceReductionLog,
    ReductionRun,
    SweepResult,
    period_of,
)
from budget_ledger.models.schedules import (
    IncomeSchedule,
    ScheduleStatus,
    TransferCandidate,
    TransferSchedule,
    destination_key,
)
from budget_ledger.models.state import LedgerState
from budget_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestMoneyAndDays:
    """Tests for money quantization and day-of-month parsing."""

    def test_to_money_rounds_half_up(self):
        """Test that amounts are quantized to two places, half up."""
        assert to_money("10.005") == Decimal("10.01")
        assert to_money(3) == Decimal("3.00")

    def test_to_money_never_goes_through_float_noise(self):
        """Test that float input is read via its string form."""
        assert to_money(0.1 + 0.2) == Decimal("0.30")

    @pytest.mark.parametrize("raw,expected", [
        (15, 15),
        ("15", 15),
        (" 7 ", 7),
        ("1st", 1),
        ("22nd", 22),
        ("3rd", 3),
        ("15th", 15),
        ("2024-05-15", 15),
        ("2024-05-31T10:00:00Z", 31),
        ("28/02", 28),
        ("09/06/2024", 9),
        (date(2024, 2, 29), 29),
    ])
    def test_parse_day_of_month_accepts_boundary_formats(self, raw, expected):
        """Test the day formats the UI sends."""
        assert parse_day_of_month(raw) == expected

    @pytest.mark.parametrize("raw", [0, 32, "32nd", "", "soon", True, 1.5])
    def test_parse_day_of_month_rejects_invalid(self, raw):
        """Test that unreadable or out-of-range days are rejected."""
        with pytest.raises(ValueError):
            parse_day_of_month(raw)


class TestLedgerModels:
    """Tests for accounts, records and balance references."""

    def test_credit_account_requires_limit(self):
        """Test that a credit account without a limit is rejected."""
        with pytest.raises(ValidationError):
            Account(id=1, name="Card", kind=AccountKind.CREDIT)

    def test_non_credit_account_rejects_limit(self):
        """Test that only credit accounts may carry a limit."""
        with pytest.raises(ValidationError):
            Account(id=1, name="Main", kind=AccountKind.CURRENT, credit_limit=Decimal("500"))

    def test_account_name_strips_whitespace(self):
        """Test that whitespace is stripped from the account name."""
        account = Account(id=1, name="  Main  ", kind=AccountKind.CURRENT)
        assert account.name == "Main"
        assert account.balance == Decimal("0.00")

    def test_account_finders(self):
        """Test pot, income and target lookups by key."""
        account = Account.model_validate({
            "id": 1,
            "name": "Main",
            "kind": "current",
            "pots": [{"id": 1, "name": "Rent"}],
            "incomes": [{"id": 4, "description": "Salary", "amount": "2500", "day_of_month": "25th"}],
            "targets": [{"id": 9, "name": "Food", "amount": "300", "day_of_month": 1}],
        })
        assert account.find_pot("Rent").id == 1
        assert account.find_pot("rent") is None
        assert account.find_income(4).day_of_month == 25
        assert account.find_target(9).name == "Food"
        assert account.find_target(10) is None

    def test_transaction_record_defaults_to_scheduled(self):
        """Test that records take part in the sweep unless marked manual."""
        record = TransactionRecord(
            id=1, name="Rent", amount=Decimal("800"), day_of_month="1", to_account_id=2,
        )
        assert record.is_scheduled
        assert record.payment_method == PaymentMethod.OTHER

        manual = record.model_copy(update={"kind": TransactionKind.MANUAL})
        assert not manual.is_scheduled

    def test_balance_ref_treats_empty_pot_as_account(self):
        """Test that an empty pot name points at the account itself."""
        assert BalanceRef.of(3, "").pot_name is None
        assert BalanceRef.of(3).describe() == "account #3"
        assert BalanceRef.of(3, "Rent").describe() == "account #3 pot 'Rent'"


class TestSubmissions:
    """Tests for the command submission models."""

    def test_account_submission_credit_limit_invariant(self):
        """Test credit limit present if and only if kind is credit."""
        AccountSubmission(name="Card", kind="credit", credit_limit="1000")
        with pytest.raises(ValidationError):
            AccountSubmission(name="Card", kind="credit")
        with pytest.raises(ValidationError):
            AccountSubmission(name="Main", kind="savings", credit_limit="10")

    def test_income_submission_rejects_non_positive_amount(self):
        """Test that incomes must be positive."""
        with pytest.raises(ValidationError):
            IncomeSubmission(description="Salary", amount=Decimal("0"), day_of_month=1)

    def test_transaction_submission_rejects_bad_day(self):
        """Test that day 32 is refused at the boundary."""
        with pytest.raises(ValidationError):
            TransactionSubmission(
                name="Rent", amount=Decimal("10"), day_of_month="32", to_account_id=1,
            )

    def test_submission_rejects_sub_cent_amount(self):
        """Test that amounts finer than a cent are refused."""
        with pytest.raises(ValidationError):
            TransferScheduleSubmission(
                from_account_id=1, to_account_id=2, amount=Decimal("10.005"),
            )

    def test_pot_update_is_partial(self):
        """Test that omitted pot fields stay unset."""
        update = PotUpdate(new_balance=Decimal("5.00"))
        assert update.new_name is None
        assert update.exclude_from_reset is None


class TestScheduleModels:
    """Tests for schedule state and grouping keys."""

    def test_schedule_lifecycle(self):
        """Test Pending -> Completed -> Pending."""
        schedule = IncomeSchedule(
            id=1, account_id=1, income_id=1, description="Salary", amount=Decimal("100"),
        )
        assert schedule.status == ScheduleStatus.PENDING
        assert schedule.is_pending

        schedule.mark_completed(datetime(2024, 5, 1))
        assert schedule.status == ScheduleStatus.COMPLETED
        assert schedule.last_executed == datetime(2024, 5, 1)

        schedule.mark_pending()
        assert schedule.is_pending
        assert schedule.last_executed is None

    def test_inactive_schedule_is_not_pending(self):
        """Test that a paused schedule is never picked up."""
        schedule = TransferSchedule(
            id=1, from_account_id=1, to_account_id=2, amount=Decimal("5"), is_active=False,
        )
        assert not schedule.is_pending

    def test_destination_key_format(self):
        """Test the destination key used to group transfers."""
        assert destination_key(4) == "to-4-account"
        assert destination_key(4, "Rent") == "to-4-Rent"
        schedule = TransferSchedule(
            id=1, from_account_id=1, to_account_id=4, to_pot_name="Rent", amount=Decimal("5"),
        )
        assert schedule.destination_key == "to-4-Rent"

    def test_transfer_candidate_display(self):
        """Test that a candidate is named by its pot when it has one."""
        candidate = TransferCandidate(
            from_account_id=1,
            from_account_name="Main",
            to_account_id=2,
            to_account_name="Bills",
            to_pot_name="Rent",
            amount=Decimal("850.00"),
            transaction_names=["Rent", "Council tax"],
        )
        assert candidate.destination_display_name == "Rent"
        assert candidate.summary == "Rent, Council tax"
        assert candidate.destination_key == "to-2-Rent"


class TestLogsAndState:
    """Tests for execution logs and the persisted aggregate."""

    def test_period_of(self):
        """Test the YYYY-MM period format."""
        assert period_of(datetime(2024, 5, 15)) == "2024-05"
        assert period_of(datetime(987, 12, 1)) == "0987-12"

    def test_sweep_result_did_nothing(self):
        """Test that an empty sweep reports it did nothing."""
        result = SweepResult(period="2024-05", effective_day=15, was_manual=False)
        assert result.did_nothing
        assert result.processed_ids == []

    def test_reduction_run_total(self):
        """Test that a run totals its rows."""
        now = datetime(2024, 5, 31)
        rows = [
            BalanceReductionLog(
                id=i, timestamp=now, period="2024-05", day_of_month=31,
                account_id=i, account_name=f"A{i}",
                baseline_balance=Decimal("100"), resulting_balance=Decimal("90"),
                reduction_amount=Decimal("10.00"),
            )
            for i in (1, 2)
        ]
        assert ReductionRun(timestamp=now, entries=rows).total_reduction == Decimal("20.00")

    def test_allocate_id_advances_counter(self):
        """Test that ids are handed out in sequence."""
        state = LedgerState()
        assert state.allocate_id("account") == 1
        assert state.allocate_id("account") == 2
        assert state.next_account_id == 3

    def test_normalized_bumps_lagging_counters(self):
        """Test that imported counters never collide with existing ids."""
        state = LedgerState.model_validate({
            "accounts": [{"id": 7, "name": "Main", "kind": "current", "pots": [{"id": 3, "name": "Rent"}]}],
            "next_account_id": 1,
        })
        normalized = state.normalized()
        assert normalized.next_account_id == 8
        assert normalized.next_pot_id == 4
        # The original is untouched
        assert state.next_account_id == 1


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            description="Created account Main",
        )
        assert event.event_id is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.SCHEDULE_EXECUTED,
            entity_type="transfer_schedule",
            entity_id=3,
            description="Executed",
            details={"amount": Decimal("200.00")},
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "schedule_executed"
        assert log_dict["entity_id"] == 3
        assert log_dict["details"]["amount"] == "200.00"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        correlation_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.SWEEP_COMPLETED,
            correlation_id=correlation_id,
            description="Sweep",
        )
        row = event.to_sheets_row()
        assert len(row) == 11
        assert row[2] == "sweep_completed"
        assert row[5] == ""
        assert row[6] == str(correlation_id)

    def test_sweep_builder_distinguishes_blocked(self):
        """Test that a sweep with a blocked reason is a warning."""
        correlation_id = uuid4()
        blocked = AuditEventBuilder.sweep_finished(
            period="2024-05", effective_day=15, processed=0, skipped=0,
            blocked_reason="No scheduled transactions exist",
            was_manual=False, correlation_id=correlation_id,
        )
        assert blocked.event_type == AuditEventType.SWEEP_BLOCKED
        assert blocked.severity == AuditSeverity.WARNING

        completed = AuditEventBuilder.sweep_finished(
            period="2024-05", effective_day=15, processed=2, skipped=0,
            blocked_reason=None, was_manual=True, correlation_id=correlation_id,
        )
        assert completed.event_type == AuditEventType.SWEEP_COMPLETED
        assert completed.is_user_action

    def test_persistence_failed_builder(self):
        """Test that storage failures are recorded as errors."""
        event = AuditEventBuilder.persistence_failed("create_pot", "disk full")
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "disk full"
        assert event.details["operation"] == "create_pot"
