"""
FinSync - Data Managers

PURPOSE: Entity stores for wishlist items, wallets, budgets, transactions, loans and categories
SCOPE: Per-entity validation, derived views, and the per-session bundle
DEPENDENCIES: store.py, memo.py, calculations.py, validators.py, remote.py
"""

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import date
from typing import Any, Dict, List, Optional, Set, Tuple

from . import calculations
from .config import config
from .errors import NotFound
from .memo import derived_query, derived_view
from .models import Budget, Category, PinjamanItem, Transaction, Wallet, WantToBuyItem
from .notifications import Notifier
from .remote import BackendClient, RestTable
from .session import Session
from .store import RemoteTable, SyncStore
from .validators import (
    validate_budget, validate_category, validate_pinjaman_item, validate_transaction, validate_wallet,
    validate_want_to_buy_item,
)

logger = logging.getLogger(__name__)


class WantToBuyManager(SyncStore[WantToBuyItem]):
    """Handles wishlist ("want to buy") items."""

    model = WantToBuyItem
    entity_name = 'Wishlist item'
    entity_plural = 'wishlist items'
    order = 'created_at.desc'

    def validate(self, record: WantToBuyItem, creating: bool) -> Tuple[bool, List[str]]:
        return validate_want_to_buy_item(record)

    def _insert_row(self, record: WantToBuyItem, owner_id: str) -> Dict[str, Any]:
        row = record.insert_row(owner_id)
        row['is_purchased'] = False
        row['purchase_date'] = None
        return row

    @derived_view
    def purchased_items(items):
        return tuple(item for item in items if item.is_purchased)

    @derived_view
    def pending_items(items):
        return tuple(item for item in items if not item.is_purchased)

    @derived_view
    def total_wishlist_value(items):
        """Sum of prices of the items not bought yet."""
        return sum(item.price for item in items if not item.is_purchased)

    @derived_query
    def items_by_priority(items, priority: str):
        return tuple(item for item in items if item.priority == priority and not item.is_purchased)

    @derived_query
    def items_by_category(items, category: str):
        return tuple(item for item in items if item.category == category and not item.is_purchased)

    async def toggle_purchased(self, item_id: str) -> bool:
        item = self.get(item_id)
        if item is None:
            self._report(NotFound(item_id), 'update')
            return False
        purchased = not item.is_purchased
        return await self.update(replace(
            item,
            is_purchased=purchased,
            purchase_date=date.today().isoformat() if purchased else None,
        ))


class TransactionManager(SyncStore[Transaction]):
    """Handles income, expense and transfer transactions."""

    model = Transaction
    entity_name = 'Transaction'
    entity_plural = 'transactions'
    order = 'date.desc'

    def __init__(self, table: RemoteTable, session: Session, notifier: Notifier,
                 wallets: Optional['WalletManager'] = None):
        super().__init__(table, session, notifier)
        self.wallets = wallets

    def validate(self, record: Transaction, creating: bool) -> Tuple[bool, List[str]]:
        wallets = self.wallets.items if self.wallets is not None else ()
        return validate_transaction(record, wallets, check_balance=creating)

    @derived_view
    def monthly_income(items):
        return calculations.calculate_monthly_income(items)

    @derived_view
    def monthly_expense(items):
        return calculations.calculate_monthly_expense(items)

    @derived_view
    def by_category_totals(items):
        return calculations.group_transactions_by_category(items)

    @derived_query
    def by_category(items, category_id: int):
        return tuple(t for t in items if t.category_id == category_id)

    @derived_query
    def by_wallet(items, wallet_id: str):
        return tuple(t for t in items if t.wallet_id == wallet_id or t.destination_wallet_id == wallet_id)

    @derived_query
    def by_date_range(items, start: date, end: date):
        return tuple(calculations.filter_transactions_by_date_range(items, start, end))

    def income_for(self, month: int, year: int) -> float:
        return calculations.calculate_monthly_income(self.items, month, year)

    def expense_for(self, month: int, year: int) -> float:
        return calculations.calculate_monthly_expense(self.items, month, year)

    def forget_wallet(self, wallet_id: str) -> None:
        """Drop local transactions of a wallet that was deleted remotely."""
        remaining = [t for t in self.items if t.wallet_id != wallet_id and t.destination_wallet_id != wallet_id]
        if len(remaining) != len(self.items):
            self._set_items(remaining)


class WalletManager(SyncStore[Wallet]):
    """Handles wallets. Deleting a wallet also deletes its transactions."""

    model = Wallet
    entity_name = 'Wallet'
    entity_plural = 'wallets'
    order = 'created_at.asc'

    def __init__(self, table: RemoteTable, session: Session, notifier: Notifier,
                 transactions_table: Optional[RestTable] = None):
        super().__init__(table, session, notifier)
        self.transactions_table = transactions_table
        self.transactions: Optional[TransactionManager] = None

    def validate(self, record: Wallet, creating: bool) -> Tuple[bool, List[str]]:
        return validate_wallet(record)

    async def _remote_delete(self, record_id: str, owner_id: str) -> None:
        if self.transactions_table is not None:
            await self.transactions_table.delete_where(owner_id, {'wallet_id': record_id})
        await self.table.delete(record_id, owner_id)

    async def delete(self, record_id: str) -> bool:
        deleted = await super().delete(record_id)
        if deleted and self.transactions is not None:
            self.transactions.forget_wallet(record_id)
        return deleted

    def update_balance(self, wallet_id: str, balance: float) -> None:
        """Local-only balance adjustment after a transaction changed it remotely."""
        self._set_items(replace(w, balance=balance) if w.id == wallet_id else w for w in self.items)

    @derived_view
    def total_balance(items):
        return calculations.calculate_total_balance(items)

    @derived_view
    def sorted_by_balance(items):
        return tuple(sorted(items, key=lambda w: w.balance, reverse=True))

    @derived_query
    def wallets_by_type(items, wallet_type: str):
        return tuple(w for w in items if w.type == wallet_type)


class BudgetManager(SyncStore[Budget]):
    """Handles category budgets and their spend tracking."""

    model = Budget
    entity_name = 'Budget'
    entity_plural = 'budgets'
    order = 'created_at.asc'

    def validate(self, record: Budget, creating: bool) -> Tuple[bool, List[str]]:
        return validate_budget(record)

    budget_status = staticmethod(calculations.budget_status)

    @derived_view
    def total_budget(items):
        return calculations.calculate_total_budget(items)

    @derived_view
    def total_spent(items):
        return calculations.calculate_total_spent(items)

    @derived_view
    def overall_utilization(items):
        return calculations.calculate_overall_utilization(items)

    @derived_view
    def sorted_by_utilization(items):
        return tuple(sorted(
            items,
            key=lambda b: calculations.calculate_budget_utilization(b.spent or 0.0, b.amount),
            reverse=True,
        ))

    @derived_view
    def alerts(items):
        return tuple(calculations.budget_alerts(items))

    @derived_query
    def budgets_by_status(items, status: str):
        return tuple(b for b in items if calculations.budget_status(b) == status)

    @derived_query
    def budgets_by_period(items, period: str):
        return tuple(b for b in items if b.period == period)

    async def recalculate_spent(self, transactions: Tuple[Transaction, ...],
                                today: Optional[date] = None) -> int:
        """Recompute ``spent`` from transactions and push the budgets that changed.

        Returns the number of budgets successfully updated.
        """
        changed = []
        for budget in self.items:
            spent = calculations.calculate_budget_spent(budget, transactions, today)
            if spent != budget.spent:
                changed.append(replace(budget, spent=spent))
        results = await asyncio.gather(*(self.update(budget) for budget in changed))
        return sum(1 for ok in results if ok)


class PinjamanManager(SyncStore[PinjamanItem]):
    """Handles debts (Utang) and credits (Piutang), kept in due-date order."""

    model = PinjamanItem
    entity_name = 'Pinjaman item'
    entity_plural = 'pinjaman items'
    order = 'due_date.asc'

    def validate(self, record: PinjamanItem, creating: bool) -> Tuple[bool, List[str]]:
        return validate_pinjaman_item(record)

    def _insert_row(self, record: PinjamanItem, owner_id: str) -> Dict[str, Any]:
        row = record.insert_row(owner_id)
        row['is_settled'] = False
        return row

    def _arrange(self, items) -> Tuple[PinjamanItem, ...]:
        def due(item):
            d = calculations.parse_date(item.due_date)
            return (d is None, d or date.min)

        return tuple(sorted(items, key=due))

    @derived_view
    def settled_items(items):
        return tuple(item for item in items if item.is_settled)

    @derived_view
    def unsettled_items(items):
        return tuple(item for item in items if not item.is_settled)

    @derived_view
    def total_debt(items):
        """Outstanding amount we owe."""
        return sum(item.amount for item in items if not item.is_settled and item.category == 'Utang')

    @derived_view
    def total_credit(items):
        """Outstanding amount owed to us."""
        return sum(item.amount for item in items if not item.is_settled and item.category == 'Piutang')

    @property
    def net_position(self) -> float:
        return self.total_credit - self.total_debt

    @derived_query
    def items_by_category(items, category: str):
        return tuple(item for item in items if item.category == category and not item.is_settled)

    @derived_query
    def overdue_as_of(items, today: date):
        overdue = []
        for item in items:
            due = calculations.parse_date(item.due_date)
            if not item.is_settled and due is not None and due < today:
                overdue.append(item)
        return tuple(overdue)

    def overdue_items(self, today: Optional[date] = None) -> Tuple[PinjamanItem, ...]:
        return self.overdue_as_of(today or date.today())

    async def toggle_settled(self, item_id: str) -> bool:
        item = self.get(item_id)
        if item is None:
            self._report(NotFound(item_id), 'update')
            return False
        return await self.update(replace(item, is_settled=not item.is_settled))


class CategoryManager(SyncStore[Category]):
    """Handles the user's own categories. Built-in categories live in ``parsers.AI_CATEGORY_HINTS``."""

    model = Category
    entity_name = 'Category'
    entity_plural = 'categories'
    order = 'en_name.asc'

    def validate(self, record: Category, creating: bool) -> Tuple[bool, List[str]]:
        return validate_category(record)

    def _insert_row(self, record: Category, owner_id: str) -> Dict[str, Any]:
        name = record.en_name.strip()
        row = record.insert_row(owner_id)
        row['en_name'] = name
        row['id_name'] = record.id_name.strip() or name
        row['category_key'] = record.category_key or f"custom_{uuid.uuid4().hex[:12]}"
        return row

    def _arrange(self, items) -> Tuple[Category, ...]:
        return tuple(sorted(items, key=lambda c: (c.type, c.en_name.lower())))

    @derived_query
    def by_type(items, category_type: str):
        return tuple(c for c in items if c.type == category_type)

    @derived_query
    def search(items, query: str):
        """Case-insensitive match on either language's name. A blank query matches all."""
        needle = query.lower().strip()
        if not needle:
            return tuple(items)
        return tuple(c for c in items if needle in c.en_name.lower() or needle in c.id_name.lower())

    def name_for(self, category_id: str, language: Optional[str] = None) -> str:
        category = self.get(category_id)
        if category is None:
            return ''
        return category.display_name(language or config.LANGUAGE)


class FinanceSession:
    """One manager per entity kind, bound to one ``Session`` and torn down together."""

    def __init__(self, session: Optional[Session] = None, backend: Optional[BackendClient] = None,
                 notifier: Optional[Notifier] = None, auto_load: bool = True):
        self.session = session or Session()
        self.notifier = notifier or Notifier()
        self.backend = backend or BackendClient(token_provider=lambda: self.session.access_token)
        self.auto_load = auto_load
        self._tasks: Set[asyncio.Task] = set()

        tables = config.TABLES
        transactions_table = self.backend.table(tables['transactions'])
        self.wallets = WalletManager(self.backend.table(tables['wallets']), self.session, self.notifier,
                                     transactions_table=transactions_table)
        self.transactions = TransactionManager(transactions_table, self.session, self.notifier,
                                               wallets=self.wallets)
        self.wallets.transactions = self.transactions
        self.budgets = BudgetManager(self.backend.table(tables['budgets']), self.session, self.notifier)
        self.wishlist = WantToBuyManager(self.backend.table(tables['want_to_buy']), self.session, self.notifier)
        self.loans = PinjamanManager(self.backend.table(tables['pinjaman']), self.session, self.notifier)
        self.categories = CategoryManager(self.backend.table(tables['categories']), self.session, self.notifier)

        # Subscribed after the stores so they purge before the reload is scheduled.
        self._unsubscribe = self.session.subscribe(self._on_session_change)

    @property
    def stores(self) -> Tuple[SyncStore, ...]:
        return (self.wallets, self.transactions, self.budgets, self.wishlist, self.loans, self.categories)

    async def load_all(self) -> None:
        await asyncio.gather(*(store.load() for store in self.stores))

    async def refresh_all(self) -> None:
        await asyncio.gather(*(store.refresh() for store in self.stores))

    def _on_session_change(self, previous: Optional[str], current: Optional[str]) -> None:
        if not (self.auto_load and current):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.load_all())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def close(self) -> None:
        self._unsubscribe()
        for store in self.stores:
            store.close()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.backend.aclose()
