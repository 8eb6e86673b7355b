"""
Ledger Store

The single owner of ledger state: accounts and their pots, incomes,
targets and expenses, transaction records, schedules and logs.

DESIGN DECISION: Every change happens inside `mutation()`. A mutation
holds the store's one asyncio.Lock, works on a private copy of the
state, and only replaces the committed state once that copy has been
saved. If the body raises, or the save fails, the copy is thrown away
and nothing the mutation did is visible. Readers always see committed
state, returned as deep copies.

Balance primitives (credit, debit, apply_legs) only work inside a
mutation. They are synchronous: the save at the end of the mutation is
the only place a mutation yields to the event loop.

Mutations do not nest.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import AsyncIterator, Optional, Union

import structlog
from pydantic import ValidationError

from budget_ledger.ledger.errors import (
    InvalidOperationError,
    NotFoundError,
    PersistenceError,
)
from budget_ledger.models.commands import (
    AccountSubmission,
    ExpenseSubmission,
    IncomeSubmission,
    PotSubmission,
    PotUpdate,
    TargetSubmission,
    TransactionSubmission,
)
from budget_ledger.models.ledger import (
    Account,
    AccountKind,
    BalanceRef,
    Expense,
    Income,
    Pot,
    Target,
    TransactionRecord,
    to_money,
)
from budget_ledger.models.logs import BalanceReductionLog, ProcessedTransactionLog
from budget_ledger.models.results import DebitOutcome, LegOutcome
from budget_ledger.models.schedules import IncomeSchedule, TransferSchedule
from budget_ledger.models.state import LedgerState
from budget_ledger.services.storage import LedgerStorageInterface, StorageError


logger = structlog.get_logger(__name__)

BalanceHolder = Union[Account, Pot]

SAVINGS_KINDS = (AccountKind.SAVINGS, AccountKind.INVESTMENT)


# =============================================================================
# STATE LOOKUPS
# =============================================================================

def find_account(state: LedgerState, account_id: int) -> Account:
    """The live account with this id; raises NotFoundError."""
    for account in state.accounts:
        if account.id == account_id:
            return account
    raise NotFoundError(f"Account #{account_id} not found")


def find_pot(account: Account, pot_name: str) -> Pot:
    pot = account.find_pot(pot_name)
    if pot is None:
        raise NotFoundError(f"Pot '{pot_name}' not found in account #{account.id}")
    return pot


def find_holder(state: LedgerState, ref: BalanceRef) -> BalanceHolder:
    """The live object carrying the balance a ref points at."""
    account = find_account(state, ref.account_id)
    if ref.pot_name:
        return find_pot(account, ref.pot_name)
    return account


def find_transaction(state: LedgerState, transaction_id: int) -> TransactionRecord:
    for record in state.transactions:
        if record.id == transaction_id:
            return record
    raise NotFoundError(f"Transaction #{transaction_id} not found")


class LedgerStore:
    """
    Authoritative ledger state plus its mutation primitives.

    Create with `await LedgerStore.open(storage)` to load persisted
    state, or pass a state directly for an empty/in-memory ledger.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        state: Optional[LedgerState] = None,
    ):
        self._storage = storage
        self._state = (state or LedgerState()).normalized()
        self._working: Optional[LedgerState] = None
        self._lock = asyncio.Lock()

    @classmethod
    async def open(cls, storage: LedgerStorageInterface) -> 'LedgerStore':
        """Load persisted state, or start empty when none exists."""
        try:
            state = await storage.load_state()
        except StorageError as e:
            raise PersistenceError(f"Could not load ledger state: {e}") from e

        store = cls(storage, state)
        logger.info(
            "ledger_store_opened",
            accounts=len(store._state.accounts),
            transactions=len(store._state.transactions),
        )
        return store

    # =========================================================================
    # MUTATION BOUNDARY
    # =========================================================================

    @asynccontextmanager
    async def mutation(self, operation: str) -> AsyncIterator[LedgerState]:
        """
        Run a block of changes atomically.

        Yields the working state. On normal exit the working state is
        persisted and becomes the committed state.

        Raises:
            PersistenceError: If the save failed (nothing is committed)
        """
        async with self._lock:
            working = self._state.model_copy(deep=True)
            self._working = working
            try:
                yield working
                await self._storage.save_state(working)
            except StorageError as e:
                logger.error("ledger_persist_failed", operation=operation, error=str(e))
                raise PersistenceError(
                    f"Could not save ledger state during {operation}: {e}"
                ) from e
            finally:
                self._working = None
            self._state = working

    def _require_working(self) -> LedgerState:
        if self._working is None or not self._lock.locked():
            raise InvalidOperationError(
                "Balance primitives can only be used inside a ledger mutation"
            )
        return self._working

    # =========================================================================
    # BALANCE PRIMITIVES
    # =========================================================================

    @staticmethod
    def _positive(amount: Decimal) -> Decimal:
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidOperationError(f"Amount must be positive, got {amount}")
        return amount

    def working_balance(self, ref: BalanceRef) -> Decimal:
        """Balance as seen by the open mutation."""
        return find_holder(self._require_working(), ref).balance

    def credit(self, ref: BalanceRef, amount: Decimal) -> None:
        """Add money to a balance. Never fails on funds."""
        holder = find_holder(self._require_working(), ref)
        holder.balance = to_money(holder.balance + self._positive(amount))

    def debit(self, ref: BalanceRef, amount: Decimal) -> DebitOutcome:
        """Remove money from a balance; refuses to go below zero."""
        amount = self._positive(amount)
        holder = find_holder(self._require_working(), ref)
        if holder.balance < amount:
            return DebitOutcome.INSUFFICIENT_FUNDS
        holder.balance = to_money(holder.balance - amount)
        return DebitOutcome.SUCCESS

    def set_balance(self, ref: BalanceRef, amount: Decimal) -> Decimal:
        """Overwrite a balance (reset and reduction); returns the old one."""
        holder = find_holder(self._require_working(), ref)
        previous = holder.balance
        holder.balance = to_money(amount)
        return previous

    def apply_legs(
        self,
        destination: BalanceRef,
        amount: Decimal,
        source: Optional[BalanceRef] = None,
        linked_credit_account_id: Optional[int] = None,
        require_funds: bool = True,
    ) -> LegOutcome:
        """
        Move one amount across up to three balances, all or nothing.

        Legs: debit source (if any), credit destination, debit the linked
        credit account (if any). Every reference is resolved and every
        check passes before the first balance changes.

        require_funds=False skips the source funds check (the recurring
        sweep pays bills regardless). The credit limit is always enforced
        when the linked account ends up further in debt; a leg that nets
        to zero on it, such as a card paying itself, is never refused.

        Raises:
            NotFoundError: An account or pot does not exist
            InvalidOperationError: Linked account is not a credit account
        """
        state = self._require_working()
        amount = self._positive(amount)

        legs: list[tuple[BalanceRef, Decimal]] = []
        if source is not None:
            legs.append((source, -amount))
        legs.append((destination, amount))

        linked: Optional[Account] = None
        if linked_credit_account_id is not None:
            linked = find_account(state, linked_credit_account_id)
            if not linked.is_credit:
                raise InvalidOperationError(
                    f"Linked account #{linked.id} is not a credit account"
                )
            legs.append((BalanceRef.of(linked.id), -amount))

        resolved = [(find_holder(state, ref), delta) for ref, delta in legs]

        if source is not None and require_funds:
            source_holder = resolved[0][0]
            if source_holder.balance < amount:
                return LegOutcome.INSUFFICIENT_FUNDS

        if linked is not None:
            net = sum(
                (delta for holder, delta in resolved if holder is linked),
                Decimal("0"),
            )
            if net < 0 and linked.balance + net < -linked.credit_limit:
                return LegOutcome.CREDIT_LIMIT_EXCEEDED

        for holder, delta in resolved:
            holder.balance = to_money(holder.balance + delta)
        return LegOutcome.APPLIED

    # =========================================================================
    # READS
    # =========================================================================

    def snapshot(self) -> LedgerState:
        return self._state.model_copy(deep=True)

    def accounts(self) -> list[Account]:
        return [account.model_copy(deep=True) for account in self._state.accounts]

    def get_account(self, account_id: int) -> Account:
        return find_account(self._state, account_id).model_copy(deep=True)

    def balance_of(self, ref: BalanceRef) -> Decimal:
        """Committed balance of an account or pot."""
        return find_holder(self._state, ref).balance

    def savings_and_investments(self) -> list[Account]:
        """Savings and investment accounts, in display order."""
        return [
            account.model_copy(deep=True)
            for account in self._state.accounts
            if account.kind in SAVINGS_KINDS
            or (account.category or "").lower() == "investment"
        ]

    def transactions(self) -> list[TransactionRecord]:
        return [record.model_copy(deep=True) for record in self._state.transactions]

    def get_transaction(self, transaction_id: int) -> TransactionRecord:
        return find_transaction(self._state, transaction_id).model_copy(deep=True)

    def income_schedules(self) -> list[IncomeSchedule]:
        return [s.model_copy(deep=True) for s in self._state.income_schedules]

    def transfer_schedules(self) -> list[TransferSchedule]:
        return [s.model_copy(deep=True) for s in self._state.transfer_schedules]

    def processed_logs(self, period: Optional[str] = None) -> list[ProcessedTransactionLog]:
        """Processed-transaction history, optionally for one period."""
        return [
            log.model_copy(deep=True)
            for log in self._state.processed_logs
            if period is None or log.period == period
        ]

    def processed_periods(self) -> list[str]:
        """Periods that have processed rows, newest first."""
        return sorted({log.period for log in self._state.processed_logs}, reverse=True)

    def reduction_logs(self) -> list[BalanceReductionLog]:
        return [log.model_copy(deep=True) for log in self._state.reduction_logs]

    @property
    def last_reset_at(self) -> Optional[datetime]:
        return self._state.last_reset_at

    @property
    def last_transfer_execution_at(self) -> Optional[datetime]:
        return self._state.last_transfer_execution_at

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def create_account(self, submission: AccountSubmission) -> Account:
        async with self.mutation("create_account") as state:
            account = Account(
                id=state.allocate_id("account"),
                name=submission.name,
                kind=submission.kind,
                category=submission.category,
                balance=to_money(submission.balance),
                credit_limit=submission.credit_limit,
                exclude_from_reset=submission.exclude_from_reset,
            )
            state.accounts.append(account)
        return account.model_copy(deep=True)

    async def update_account(self, account_id: int, submission: AccountSubmission) -> Account:
        """Replace an account's own fields; pots, incomes and targets stay."""
        async with self.mutation("update_account") as state:
            account = find_account(state, account_id)
            account.name = submission.name
            account.kind = submission.kind
            account.category = submission.category
            account.balance = to_money(submission.balance)
            account.credit_limit = submission.credit_limit
            account.exclude_from_reset = submission.exclude_from_reset
        return account.model_copy(deep=True)

    async def delete_account(self, account_id: int) -> None:
        """
        Delete an account and everything that points at it.

        Pots, incomes, targets and expenses go with the account, as do
        its income schedules and any transfer schedule or transaction
        record that uses it as source, destination or linked credit
        account.
        Processed and reduction logs are history and are kept.
        """
        async with self.mutation("delete_account") as state:
            account = find_account(state, account_id)
            state.accounts.remove(account)

            def touches(item) -> bool:
                return account_id in (
                    item.from_account_id,
                    item.to_account_id,
                    item.linked_credit_account_id,
                )

            state.income_schedules = [
                s for s in state.income_schedules if s.account_id != account_id
            ]
            state.transfer_schedules = [
                s for s in state.transfer_schedules if not touches(s)
            ]
            state.transactions = [t for t in state.transactions if not touches(t)]

    async def reorder_accounts(self, from_index: int, to_index: int) -> list[Account]:
        """Move one account to a new position in display order."""
        async with self.mutation("reorder_accounts") as state:
            count = len(state.accounts)
            if not (0 <= from_index < count and 0 <= to_index < count):
                raise InvalidOperationError(
                    f"Cannot move account from position {from_index} to {to_index}"
                )
            account = state.accounts.pop(from_index)
            state.accounts.insert(to_index, account)
        return self.accounts()

    async def toggle_account_exclusion(self, account_id: int) -> bool:
        """Flip exclude_from_reset; returns the new value."""
        async with self.mutation("toggle_account_exclusion") as state:
            account = find_account(state, account_id)
            account.exclude_from_reset = not account.exclude_from_reset
        return account.exclude_from_reset

    # =========================================================================
    # POTS
    # =========================================================================

    @staticmethod
    def _ensure_unique_pot_name(account: Account, name: str, ignore: Optional[Pot] = None) -> None:
        for pot in account.pots:
            if pot is not ignore and pot.name.casefold() == name.casefold():
                raise InvalidOperationError(
                    f"A pot named '{name}' already exists in account #{account.id}"
                )

    async def create_pot(self, account_id: int, submission: PotSubmission) -> Pot:
        async with self.mutation("create_pot") as state:
            account = find_account(state, account_id)
            self._ensure_unique_pot_name(account, submission.name)
            pot = Pot(
                id=state.allocate_id("pot"),
                name=submission.name,
                balance=to_money(submission.balance),
                exclude_from_reset=submission.exclude_from_reset,
            )
            account.pots.append(pot)
        return pot.model_copy(deep=True)

    async def update_pot(self, account_id: int, existing_name: str, update: PotUpdate) -> Pot:
        """
        Rename, rebalance or flag a pot.

        A rename is carried over to everything that refers to the pot
        by name: the account's incomes, transaction records and schedules.
        """
        async with self.mutation("update_pot") as state:
            account = find_account(state, account_id)
            pot = find_pot(account, existing_name)

            if update.new_name is not None and update.new_name != pot.name:
                self._ensure_unique_pot_name(account, update.new_name, ignore=pot)
                _rename_pot_references(state, account_id, pot.name, update.new_name)
                pot.name = update.new_name

            if update.new_balance is not None:
                pot.balance = to_money(update.new_balance)
            if update.exclude_from_reset is not None:
                pot.exclude_from_reset = update.exclude_from_reset
        return pot.model_copy(deep=True)

    async def delete_pot(self, account_id: int, pot_name: str) -> None:
        """
        Delete a pot.

        Records and schedules still naming the pot are left alone; they
        fail with NotFoundError when executed and the sweep reports them
        as skipped.
        """
        async with self.mutation("delete_pot") as state:
            account = find_account(state, account_id)
            account.pots.remove(find_pot(account, pot_name))

    async def toggle_pot_exclusion(self, account_id: int, pot_name: str) -> bool:
        async with self.mutation("toggle_pot_exclusion") as state:
            pot = find_pot(find_account(state, account_id), pot_name)
            pot.exclude_from_reset = not pot.exclude_from_reset
        return pot.exclude_from_reset

    # =========================================================================
    # INCOMES
    # =========================================================================

    async def create_income(self, account_id: int, submission: IncomeSubmission) -> Income:
        async with self.mutation("create_income") as state:
            account = find_account(state, account_id)
            if submission.pot_name:
                find_pot(account, submission.pot_name)
            income = Income(
                id=state.allocate_id("income"),
                description=submission.description,
                company=submission.company,
                amount=to_money(submission.amount),
                day_of_month=submission.day_of_month,
                pot_name=submission.pot_name or None,
            )
            account.incomes.append(income)
        return income.model_copy(deep=True)

    async def update_income(
        self,
        account_id: int,
        income_id: int,
        submission: IncomeSubmission,
    ) -> Income:
        """Edit an income. Existing income schedules keep their snapshot."""
        async with self.mutation("update_income") as state:
            account = find_account(state, account_id)
            income = account.find_income(income_id)
            if income is None:
                raise NotFoundError(f"Income #{income_id} not found in account #{account_id}")
            if submission.pot_name:
                find_pot(account, submission.pot_name)
            income.description = submission.description
            income.company = submission.company
            income.amount = to_money(submission.amount)
            income.day_of_month = submission.day_of_month
            income.pot_name = submission.pot_name or None
        return income.model_copy(deep=True)

    async def delete_income(self, account_id: int, income_id: int) -> None:
        async with self.mutation("delete_income") as state:
            account = find_account(state, account_id)
            income = account.find_income(income_id)
            if income is None:
                raise NotFoundError(f"Income #{income_id} not found in account #{account_id}")
            account.incomes.remove(income)

    # =========================================================================
    # TARGETS
    # =========================================================================

    async def create_target(self, account_id: int, submission: TargetSubmission) -> Target:
        async with self.mutation("create_target") as state:
            account = find_account(state, account_id)
            target = Target(
                id=state.allocate_id("target"),
                name=submission.name,
                amount=to_money(submission.amount),
                day_of_month=submission.day_of_month,
            )
            account.targets.append(target)
        return target.model_copy(deep=True)

    async def update_target(
        self,
        account_id: int,
        target_id: int,
        submission: TargetSubmission,
    ) -> Target:
        async with self.mutation("update_target") as state:
            target = find_account(state, account_id).find_target(target_id)
            if target is None:
                raise NotFoundError(f"Target #{target_id} not found in account #{account_id}")
            target.name = submission.name
            target.amount = to_money(submission.amount)
            target.day_of_month = submission.day_of_month
        return target.model_copy(deep=True)

    async def delete_target(self, account_id: int, target_id: int) -> None:
        async with self.mutation("delete_target") as state:
            account = find_account(state, account_id)
            target = account.find_target(target_id)
            if target is None:
                raise NotFoundError(f"Target #{target_id} not found in account #{account_id}")
            account.targets.remove(target)

    # =========================================================================
    # EXPENSES
    # =========================================================================

    def _adjust_account(self, account_id: int, delta: Decimal) -> None:
        ref = BalanceRef.of(account_id)
        self.set_balance(ref, self.working_balance(ref) + delta)

    @staticmethod
    def _check_expense_destination(state: LedgerState, submission: ExpenseSubmission) -> None:
        if submission.to_account_id is None:
            return
        destination = find_account(state, submission.to_account_id)
        if submission.to_pot_name:
            find_pot(destination, submission.to_pot_name)

    async def create_expense(self, account_id: int, submission: ExpenseSubmission) -> Expense:
        """Book an expense and take its amount off the account balance."""
        async with self.mutation("create_expense") as state:
            account = find_account(state, account_id)
            self._check_expense_destination(state, submission)
            expense = Expense(
                id=state.allocate_id("expense"),
                amount=to_money(submission.amount),
                description=submission.description,
                date=submission.date or datetime.now(),
                to_account_id=submission.to_account_id,
                to_pot_name=submission.to_pot_name or None,
            )
            account.expenses.append(expense)
            self._adjust_account(account_id, -expense.amount)
        return expense.model_copy(deep=True)

    async def update_expense(
        self,
        account_id: int,
        expense_id: int,
        submission: ExpenseSubmission,
    ) -> Expense:
        """Edit an expense; the balance moves by the difference in amount."""
        async with self.mutation("update_expense") as state:
            expense = find_account(state, account_id).find_expense(expense_id)
            if expense is None:
                raise NotFoundError(f"Expense #{expense_id} not found in account #{account_id}")
            self._check_expense_destination(state, submission)
            new_amount = to_money(submission.amount)
            self._adjust_account(account_id, expense.amount - new_amount)
            expense.amount = new_amount
            expense.description = submission.description
            if submission.date is not None:
                expense.date = submission.date
            expense.to_account_id = submission.to_account_id
            expense.to_pot_name = submission.to_pot_name or None
        return expense.model_copy(deep=True)

    async def delete_expense(self, account_id: int, expense_id: int) -> None:
        """Remove an expense and give its amount back to the account."""
        async with self.mutation("delete_expense") as state:
            account = find_account(state, account_id)
            expense = account.find_expense(expense_id)
            if expense is None:
                raise NotFoundError(f"Expense #{expense_id} not found in account #{account_id}")
            account.expenses.remove(expense)
            self._adjust_account(account_id, expense.amount)

    # =========================================================================
    # TRANSACTION RECORDS
    # =========================================================================

    @staticmethod
    def _check_references(state: LedgerState, submission: TransactionSubmission) -> None:
        destination = find_account(state, submission.to_account_id)
        if submission.to_pot_name:
            find_pot(destination, submission.to_pot_name)
        if submission.from_account_id is not None:
            find_account(state, submission.from_account_id)
        if submission.linked_credit_account_id is not None:
            linked = find_account(state, submission.linked_credit_account_id)
            if not linked.is_credit:
                raise InvalidOperationError(
                    f"Linked account #{linked.id} is not a credit account"
                )

    async def create_transaction(self, submission: TransactionSubmission) -> TransactionRecord:
        async with self.mutation("create_transaction") as state:
            self._check_references(state, submission)
            record = TransactionRecord(
                id=state.allocate_id("transaction"),
                **_transaction_fields(submission),
            )
            state.transactions.append(record)
        return record.model_copy(deep=True)

    async def update_transaction(
        self,
        transaction_id: int,
        submission: TransactionSubmission,
    ) -> TransactionRecord:
        """Edit a record. Its processed history stays attached by id."""
        async with self.mutation("update_transaction") as state:
            record = find_transaction(state, transaction_id)
            self._check_references(state, submission)
            for field, value in _transaction_fields(submission).items():
                setattr(record, field, value)
        return record.model_copy(deep=True)

    async def delete_transaction(self, transaction_id: int) -> None:
        async with self.mutation("delete_transaction") as state:
            state.transactions.remove(find_transaction(state, transaction_id))

    # =========================================================================
    # WHOLE-STATE OPERATIONS
    # =========================================================================

    def export_state(self) -> str:
        """Committed state as a JSON document."""
        return self._state.model_dump_json(indent=2)

    async def import_state(self, payload: Union[str, bytes, dict]) -> LedgerState:
        """
        Replace the whole ledger with an exported document.

        Raises:
            InvalidOperationError: If the document is not a valid ledger
        """
        try:
            if isinstance(payload, dict):
                imported = LedgerState.model_validate(payload)
            else:
                imported = LedgerState.model_validate_json(payload)
        except (ValidationError, json.JSONDecodeError) as e:
            raise InvalidOperationError(f"Not a valid ledger export: {e}") from e

        imported = imported.normalized()
        async with self.mutation("import_state") as state:
            for field in LedgerState.model_fields:
                setattr(state, field, getattr(imported, field))
        return self.snapshot()

    async def clear_all(self) -> None:
        """Remove every entity, schedule and log."""
        empty = LedgerState()
        async with self.mutation("clear_all") as state:
            for field in LedgerState.model_fields:
                setattr(state, field, getattr(empty, field))


def _transaction_fields(submission: TransactionSubmission) -> dict:
    return {
        "name": submission.name,
        "vendor": submission.vendor,
        "amount": to_money(submission.amount),
        "day_of_month": submission.day_of_month,
        "from_account_id": submission.from_account_id,
        "to_account_id": submission.to_account_id,
        "to_pot_name": submission.to_pot_name or None,
        "payment_method": submission.payment_method,
        "linked_credit_account_id": submission.linked_credit_account_id,
        "kind": submission.kind,
    }


def _rename_pot_references(
    state: LedgerState,
    account_id: int,
    old_name: str,
    new_name: str,
) -> None:
    for account in state.accounts:
        if account.id == account_id:
            for income in account.incomes:
                if income.pot_name == old_name:
                    income.pot_name = new_name

    for record in state.transactions:
        if record.to_account_id == account_id and record.to_pot_name == old_name:
            record.to_pot_name = new_name

    for schedule in state.income_schedules:
        if schedule.account_id == account_id and schedule.pot_name == old_name:
            schedule.pot_name = new_name

    for schedule in state.transfer_schedules:
        if schedule.from_account_id == account_id and schedule.from_pot_name == old_name:
            schedule.from_pot_name = new_name
        if schedule.to_account_id == account_id and schedule.to_pot_name == old_name:
            schedule.to_pot_name = new_name
