"""
Main Orchestrator for the Budget Ledger

This module ties the components together and exposes the command
surface the UI calls:

1. Entity management (accounts, pots, incomes, targets, expenses,
   transactions)
2. Schedules (income and transfer: add, execute, batch, pause, delete)
3. The monthly sweep of scheduled transactions
4. Monthly reset and reduction
5. Reads and whole-state export/import

DESIGN DECISION: The command surface validates the shape of every
command (pydantic submission models) and audits what happened. It holds
no business rules of its own; those live in the store, the registry,
the processor and the reset service.
"""

from datetime import datetime
from typing import Callable, Optional, Type, TypeVar, Union

import structlog
from pydantic import BaseModel, ValidationError

from budget_ledger.audit import AuditLogger
from budget_ledger.config import LedgerSettings, get_settings
from budget_ledger.ledger import LedgerStore, PersistenceError
from budget_ledger.models.audit import AuditEventType
from budget_ledger.models.commands import (
    AccountSubmission,
    ExpenseSubmission,
    IncomeSubmission,
    PotSubmission,
    PotUpdate,
    TargetSubmission,
    TransactionSubmission,
    TransferScheduleSubmission,
)
from budget_ledger.models.ledger import (
    Account,
    Expense,
    Income,
    Pot,
    Target,
    TransactionRecord,
)
from budget_ledger.models.logs import ProcessedTransactionLog, ReductionRun, SweepResult
from budget_ledger.models.results import (
    BatchExecutionResult,
    ResetSummary,
    ScheduleResult,
)
from budget_ledger.models.schedules import (
    IncomeSchedule,
    ScheduleKind,
    TransferCandidate,
    TransferGroup,
    TransferSchedule,
)
from budget_ledger.models.state import LedgerState
from budget_ledger.processing import RecurringTransactionProcessor
from budget_ledger.reset import BalanceResetService, ReductionPolicy, policy_from_settings
from budget_ledger.schedules import ScheduleRegistry
from budget_ledger.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    JsonFileLedgerStorage,
    LedgerStorageInterface,
)


logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


def _coerce(model: Type[M], value: Union[M, dict]) -> M:
    """Accept a submission model or a raw dict from the UI."""
    if isinstance(value, model):
        return value
    return model.model_validate(value)


class LedgerCommands:
    """
    Every operation the UI may invoke.

    Create with create_ledger(). All methods are async.
    """

    def __init__(
        self,
        store: LedgerStore,
        registry: ScheduleRegistry,
        processor: RecurringTransactionProcessor,
        reset_service: BalanceResetService,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._registry = registry
        self._processor = processor
        self._reset_service = reset_service
        self._audit_logger = audit_logger

    @property
    def store(self) -> LedgerStore:
        return self._store

    async def _guard(self, operation: str, awaitable):
        """Await a ledger operation, auditing persistence failures."""
        try:
            return await awaitable
        except PersistenceError as e:
            if self._audit_logger:
                await self._audit_logger.log_persistence_failed(operation, str(e))
            raise

    async def _audit(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: Optional[int],
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_entity_change(
                event_type, entity_type, entity_id, description, details
            )

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def create_account(self, submission: Union[AccountSubmission, dict]) -> Account:
        submission = _coerce(AccountSubmission, submission)
        account = await self._guard("create_account", self._store.create_account(submission))
        await self._audit(
            AuditEventType.ACCOUNT_CREATED, "account", account.id,
            f"Created account {account.name}",
            {"kind": account.kind.value, "balance": str(account.balance)},
        )
        return account

    async def update_account(
        self,
        account_id: int,
        submission: Union[AccountSubmission, dict],
    ) -> Account:
        submission = _coerce(AccountSubmission, submission)
        account = await self._guard(
            "update_account", self._store.update_account(account_id, submission)
        )
        await self._audit(
            AuditEventType.ACCOUNT_UPDATED, "account", account_id,
            f"Updated account {account.name}",
        )
        return account

    async def delete_account(self, account_id: int) -> None:
        await self._guard("delete_account", self._store.delete_account(account_id))
        await self._audit(
            AuditEventType.ACCOUNT_DELETED, "account", account_id,
            f"Deleted account #{account_id}",
        )

    async def reorder_accounts(self, from_index: int, to_index: int) -> list[Account]:
        return await self._guard(
            "reorder_accounts", self._store.reorder_accounts(from_index, to_index)
        )

    async def toggle_account_exclusion(self, account_id: int) -> bool:
        excluded = await self._guard(
            "toggle_account_exclusion", self._store.toggle_account_exclusion(account_id)
        )
        await self._audit(
            AuditEventType.ACCOUNT_UPDATED, "account", account_id,
            f"Account #{account_id} {'excluded from' if excluded else 'included in'} reset",
        )
        return excluded

    # =========================================================================
    # POTS
    # =========================================================================

    async def create_pot(self, account_id: int, submission: Union[PotSubmission, dict]) -> Pot:
        submission = _coerce(PotSubmission, submission)
        pot = await self._guard("create_pot", self._store.create_pot(account_id, submission))
        await self._audit(
            AuditEventType.POT_CREATED, "pot", pot.id,
            f"Created pot {pot.name} in account #{account_id}",
        )
        return pot

    async def update_pot(
        self,
        account_id: int,
        existing_name: str,
        update: Union[PotUpdate, dict],
    ) -> Pot:
        update = _coerce(PotUpdate, update)
        pot = await self._guard(
            "update_pot", self._store.update_pot(account_id, existing_name, update)
        )
        await self._audit(
            AuditEventType.POT_UPDATED, "pot", pot.id,
            f"Updated pot {existing_name} in account #{account_id}",
            {"name": pot.name},
        )
        return pot

    async def delete_pot(self, account_id: int, pot_name: str) -> None:
        await self._guard("delete_pot", self._store.delete_pot(account_id, pot_name))
        await self._audit(
            AuditEventType.POT_DELETED, "pot", None,
            f"Deleted pot {pot_name} from account #{account_id}",
        )

    async def toggle_pot_exclusion(self, account_id: int, pot_name: str) -> bool:
        return await self._guard(
            "toggle_pot_exclusion", self._store.toggle_pot_exclusion(account_id, pot_name)
        )

    # =========================================================================
    # INCOMES
    # =========================================================================

    async def create_income(
        self,
        account_id: int,
        submission: Union[IncomeSubmission, dict],
    ) -> Income:
        submission = _coerce(IncomeSubmission, submission)
        income = await self._guard(
            "create_income", self._store.create_income(account_id, submission)
        )
        await self._audit(
            AuditEventType.INCOME_SAVED, "income", income.id,
            f"Created income {income.description}",
            {"amount": str(income.amount)},
        )
        return income

    async def update_income(
        self,
        account_id: int,
        income_id: int,
        submission: Union[IncomeSubmission, dict],
    ) -> Income:
        submission = _coerce(IncomeSubmission, submission)
        income = await self._guard(
            "update_income", self._store.update_income(account_id, income_id, submission)
        )
        await self._audit(
            AuditEventType.INCOME_SAVED, "income", income_id,
            f"Updated income {income.description}",
        )
        return income

    async def delete_income(self, account_id: int, income_id: int) -> None:
        await self._guard("delete_income", self._store.delete_income(account_id, income_id))
        await self._audit(
            AuditEventType.INCOME_DELETED, "income", income_id,
            f"Deleted income #{income_id}",
        )

    # =========================================================================
    # TARGETS
    # =========================================================================

    async def create_target(
        self,
        account_id: int,
        submission: Union[TargetSubmission, dict],
    ) -> Target:
        submission = _coerce(TargetSubmission, submission)
        target = await self._guard(
            "create_target", self._store.create_target(account_id, submission)
        )
        await self._audit(
            AuditEventType.TARGET_SAVED, "target", target.id,
            f"Created target {target.name}",
        )
        return target

    async def update_target(
        self,
        account_id: int,
        target_id: int,
        submission: Union[TargetSubmission, dict],
    ) -> Target:
        submission = _coerce(TargetSubmission, submission)
        target = await self._guard(
            "update_target", self._store.update_target(account_id, target_id, submission)
        )
        await self._audit(
            AuditEventType.TARGET_SAVED, "target", target_id,
            f"Updated target {target.name}",
        )
        return target

    async def delete_target(self, account_id: int, target_id: int) -> None:
        await self._guard("delete_target", self._store.delete_target(account_id, target_id))
        await self._audit(
            AuditEventType.TARGET_DELETED, "target", target_id,
            f"Deleted target #{target_id}",
        )

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def create_expense(
        self,
        account_id: int,
        submission: Union[ExpenseSubmission, dict],
    ) -> Expense:
        submission = _coerce(ExpenseSubmission, submission)
        expense = await self._guard(
            "create_expense", self._store.create_expense(account_id, submission)
        )
        await self._audit(
            AuditEventType.EXPENSE_SAVED, "expense", expense.id,
            f"Created expense {expense.description}",
            {"account_id": account_id, "amount": str(expense.amount)},
        )
        return expense

    async def update_expense(
        self,
        account_id: int,
        expense_id: int,
        submission: Union[ExpenseSubmission, dict],
    ) -> Expense:
        submission = _coerce(ExpenseSubmission, submission)
        expense = await self._guard(
            "update_expense", self._store.update_expense(account_id, expense_id, submission)
        )
        await self._audit(
            AuditEventType.EXPENSE_SAVED, "expense", expense_id,
            f"Updated expense {expense.description}",
            {"account_id": account_id, "amount": str(expense.amount)},
        )
        return expense

    async def delete_expense(self, account_id: int, expense_id: int) -> None:
        await self._guard("delete_expense", self._store.delete_expense(account_id, expense_id))
        await self._audit(
            AuditEventType.EXPENSE_DELETED, "expense", expense_id,
            f"Deleted expense #{expense_id}",
        )

    # =========================================================================
    # TRANSACTION RECORDS
    # =========================================================================

    async def create_transaction(
        self,
        submission: Union[TransactionSubmission, dict],
    ) -> TransactionRecord:
        submission = _coerce(TransactionSubmission, submission)
        record = await self._guard(
            "create_transaction", self._store.create_transaction(submission)
        )
        await self._audit(
            AuditEventType.TRANSACTION_SAVED, "transaction", record.id,
            f"Created transaction {record.name}",
            {"amount": str(record.amount), "day_of_month": record.day_of_month},
        )
        return record

    async def update_transaction(
        self,
        transaction_id: int,
        submission: Union[TransactionSubmission, dict],
    ) -> TransactionRecord:
        submission = _coerce(TransactionSubmission, submission)
        record = await self._guard(
            "update_transaction", self._store.update_transaction(transaction_id, submission)
        )
        await self._audit(
            AuditEventType.TRANSACTION_SAVED, "transaction", transaction_id,
            f"Updated transaction {record.name}",
        )
        return record

    async def delete_transaction(self, transaction_id: int) -> None:
        await self._guard(
            "delete_transaction", self._store.delete_transaction(transaction_id)
        )
        await self._audit(
            AuditEventType.TRANSACTION_DELETED, "transaction", transaction_id,
            f"Deleted transaction #{transaction_id}",
        )

    # =========================================================================
    # SCHEDULES
    # =========================================================================

    async def add_income_schedule(self, account_id: int, income_id: int) -> ScheduleResult:
        return await self._guard(
            "add_income_schedule", self._registry.add_income_schedule(account_id, income_id)
        )

    async def execute_income_schedule(self, schedule_id: int) -> ScheduleResult:
        return await self._guard(
            "execute_income_schedule", self._registry.execute_income_schedule(schedule_id)
        )

    async def execute_all_income_schedules(self) -> BatchExecutionResult:
        return await self._registry.execute_all(ScheduleKind.INCOME)

    async def add_transfer_schedule(
        self,
        submission: Union[TransferScheduleSubmission, dict],
    ) -> ScheduleResult:
        submission = _coerce(TransferScheduleSubmission, submission)
        return await self._guard(
            "add_transfer_schedule", self._registry.add_transfer_schedule(submission)
        )

    async def can_execute_transfer(self, schedule_id: int) -> bool:
        return self._registry.can_execute(schedule_id)

    async def execute_transfer_schedule(self, schedule_id: int) -> ScheduleResult:
        return await self._guard(
            "execute_transfer_schedule", self._registry.execute_transfer_schedule(schedule_id)
        )

    async def execute_group(self, destination_key: str) -> BatchExecutionResult:
        return await self._registry.execute_group(destination_key)

    async def execute_all_transfer_schedules(self) -> BatchExecutionResult:
        return await self._registry.execute_all(ScheduleKind.TRANSFER)

    async def delete_income_schedule(self, schedule_id: int) -> None:
        await self._guard(
            "delete_income_schedule", self._registry.delete_income_schedule(schedule_id)
        )

    async def delete_transfer_schedule(self, schedule_id: int) -> None:
        await self._guard(
            "delete_transfer_schedule", self._registry.delete_transfer_schedule(schedule_id)
        )

    async def set_income_schedule_active(self, schedule_id: int, active: bool) -> IncomeSchedule:
        return await self._guard(
            "set_income_active", self._registry.set_income_active(schedule_id, active)
        )

    async def set_transfer_schedule_active(self, schedule_id: int, active: bool) -> TransferSchedule:
        return await self._guard(
            "set_transfer_active", self._registry.set_transfer_active(schedule_id, active)
        )

    async def transfer_candidates(self, from_account_id: int) -> list[TransferCandidate]:
        return self._registry.transfer_candidates(from_account_id)

    async def transfer_groups(self) -> list[TransferGroup]:
        return self._registry.groups_by_destination()

    # =========================================================================
    # SWEEP, RESET, REDUCTION
    # =========================================================================

    async def run_sweep(self, force_manual: bool = False) -> SweepResult:
        """Apply due scheduled transactions; see RecurringTransactionProcessor."""
        return await self._processor.run(force_manual=force_manual)

    async def reset_balances(self) -> ResetSummary:
        return await self._guard("reset_balances", self._reset_service.reset_balances())

    async def apply_monthly_reduction(self) -> ReductionRun:
        return await self._guard(
            "apply_monthly_reduction", self._reset_service.apply_monthly_reduction()
        )

    async def reduction_runs(self) -> list[ReductionRun]:
        return self._reset_service.reduction_runs()

    # =========================================================================
    # READS
    # =========================================================================

    async def accounts(self) -> list[Account]:
        return self._store.accounts()

    async def get_account(self, account_id: int) -> Account:
        return self._store.get_account(account_id)

    async def savings_and_investments(self) -> list[Account]:
        return self._store.savings_and_investments()

    async def transactions(self) -> list[TransactionRecord]:
        return self._store.transactions()

    async def income_schedules(self) -> list[IncomeSchedule]:
        return self._store.income_schedules()

    async def transfer_schedules(self) -> list[TransferSchedule]:
        return self._store.transfer_schedules()

    async def processed_logs(self, period: Optional[str] = None) -> list[ProcessedTransactionLog]:
        return self._store.processed_logs(period)

    async def processed_periods(self) -> list[str]:
        return self._store.processed_periods()

    # =========================================================================
    # WHOLE STATE
    # =========================================================================

    async def export_state(self) -> str:
        return self._store.export_state()

    async def import_state(self, payload: Union[str, bytes, dict]) -> LedgerState:
        state = await self._guard("import_state", self._store.import_state(payload))
        await self._audit(
            AuditEventType.STATE_IMPORTED, "ledger", None,
            f"Imported ledger with {len(state.accounts)} accounts",
        )
        return state

    async def clear_all(self) -> None:
        await self._guard("clear_all", self._store.clear_all())
        await self._audit(AuditEventType.STATE_CLEARED, "ledger", None, "Cleared all ledger data")


def _audit_storage_from_settings(settings: LedgerSettings) -> Optional[AuditStorageInterface]:
    if settings.audit_backend != "google_sheets":
        return None
    try:
        return GoogleSheetsAuditStorage(GoogleSheetsClient())
    except ValidationError as e:
        # Google Sheets not configured - continue with local logging
        logger.warning("audit_storage_not_configured", error=str(e))
        return None


async def create_ledger(
    settings: Optional[LedgerSettings] = None,
    storage: Optional[LedgerStorageInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    clock: Optional[Callable[[], datetime]] = None,
    reduction_policy: Optional[ReductionPolicy] = None,
) -> LedgerCommands:
    """
    Factory function to create all ledger components.

    Args:
        settings: Ledger settings; defaults to get_settings().ledger
        storage: Where ledger state lives; defaults to a JSON file at
                 settings.state_path
        audit_storage: Where audit events are persisted besides the
                 local log; defaults to the configured backend
        clock: Source of "now" shared by every component
        reduction_policy: Overrides the configured reduction policy

    Returns:
        LedgerCommands wired to a loaded LedgerStore
    """
    settings = settings or get_settings().ledger
    storage = storage or JsonFileLedgerStorage(settings.state_path)
    if audit_storage is None:
        audit_storage = _audit_storage_from_settings(settings)

    audit_logger = AuditLogger(audit_storage)
    store = await LedgerStore.open(storage)

    registry = ScheduleRegistry(store, audit_logger=audit_logger, clock=clock)
    processor = RecurringTransactionProcessor(
        store,
        audit_logger=audit_logger,
        clock=clock,
        require_transfer_execution=settings.require_transfer_execution,
    )
    reset_service = BalanceResetService(
        store,
        policy=reduction_policy or policy_from_settings(settings),
        policy_name="custom" if reduction_policy else settings.reduction_policy,
        audit_logger=audit_logger,
        clock=clock,
    )

    return LedgerCommands(
        store=store,
        registry=registry,
        processor=processor,
        reset_service=reset_service,
        audit_logger=audit_logger,
    )
