"""
FinSync - Domain Records

PURPOSE: Record types for the four synced entity kinds
SCOPE: Field defaults, row mapping to and from backend columns
DEPENDENCIES: dataclasses
"""

from dataclasses import dataclass, fields, asdict
from typing import Any, Dict, Optional, Tuple

WISHLIST_CATEGORIES = ('Keinginan', 'Kebutuhan')
WISHLIST_PRIORITIES = ('Tinggi', 'Sedang', 'Rendah')
WALLET_TYPES = ('cash', 'bank', 'e-wallet', 'investment')
BUDGET_PERIODS = ('weekly', 'monthly', 'yearly')
TRANSACTION_TYPES = ('income', 'expense', 'transfer')
PINJAMAN_CATEGORIES = ('Utang', 'Piutang')
CATEGORY_TYPES = ('income', 'expense')

# Columns owned by the backend, never sent on insert or update.
SERVER_COLUMNS = ('id', 'user_id', 'created_at')


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else _float(value)


def _optional_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


@dataclass(frozen=True)
class Record:
    """Owner-scoped record. ``owner_id`` travels as ``user_id`` on the wire."""
    id: str = ''
    owner_id: str = ''
    created_at: Optional[str] = None

    table_key = ''

    @classmethod
    def domain_fields(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls) if f.name not in ('id', 'owner_id', 'created_at'))

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Record':
        """Build a record from a backend row, coercing loose column types."""
        values = {name: row.get(name) for name in cls.domain_fields() if name in row}
        return cls(
            id=str(row.get('id', '')),
            owner_id=str(row.get('user_id', '')),
            created_at=_optional_str(row.get('created_at')),
            **cls._coerce(values),
        )

    @classmethod
    def _coerce(cls, values: Dict[str, Any]) -> Dict[str, Any]:
        return values

    def to_row(self) -> Dict[str, Any]:
        """Domain columns only, as sent on update."""
        data = asdict(self)
        return {name: data[name] for name in self.domain_fields()}

    def insert_row(self, owner_id: str) -> Dict[str, Any]:
        row = self.to_row()
        row['user_id'] = owner_id
        return row


@dataclass(frozen=True)
class WantToBuyItem(Record):
    name: str = ''
    price: float = 0.0
    category: str = 'Keinginan'
    priority: str = 'Sedang'
    estimated_date: str = ''
    is_purchased: bool = False
    purchase_date: Optional[str] = None
    icon: Optional[str] = None

    table_key = 'want_to_buy'

    @classmethod
    def _coerce(cls, values: Dict[str, Any]) -> Dict[str, Any]:
        if 'name' in values:
            values['name'] = str(values['name'] or '')
        if 'price' in values:
            values['price'] = _float(values['price'])
        if 'estimated_date' in values:
            values['estimated_date'] = str(values['estimated_date'] or '')
        if 'is_purchased' in values:
            values['is_purchased'] = bool(values['is_purchased'])
        return values


@dataclass(frozen=True)
class Wallet(Record):
    name: str = ''
    balance: float = 0.0
    color: str = ''
    type: str = 'cash'
    icon: Optional[str] = 'wallet'

    table_key = 'wallets'

    @classmethod
    def _coerce(cls, values: Dict[str, Any]) -> Dict[str, Any]:
        if 'name' in values:
            values['name'] = str(values['name'] or '')
        if 'balance' in values:
            values['balance'] = _float(values['balance'])
        if 'color' in values:
            values['color'] = str(values['color'] or '')
        if 'type' in values:
            values['type'] = str(values['type'] or 'cash')
        return values


@dataclass(frozen=True)
class Budget(Record):
    amount: float = 0.0
    category_id: Optional[int] = None
    spent: float = 0.0
    period: str = 'monthly'
    wallet_id: Optional[str] = None

    table_key = 'budgets'

    @classmethod
    def _coerce(cls, values: Dict[str, Any]) -> Dict[str, Any]:
        if 'amount' in values:
            values['amount'] = _float(values['amount'])
        if 'category_id' in values:
            values['category_id'] = _optional_int(values['category_id'])
        if 'spent' in values:
            values['spent'] = _float(values['spent'])
        if 'period' in values:
            values['period'] = str(values['period'] or 'monthly')
        return values


@dataclass(frozen=True)
class Transaction(Record):
    amount: float = 0.0
    category_id: Optional[int] = None
    description: str = ''
    date: str = ''
    type: str = 'expense'
    wallet_id: str = ''
    destination_wallet_id: Optional[str] = None
    fee: Optional[float] = None

    table_key = 'transactions'

    @classmethod
    def _coerce(cls, values: Dict[str, Any]) -> Dict[str, Any]:
        if 'amount' in values:
            values['amount'] = _float(values['amount'])
        if 'category_id' in values:
            values['category_id'] = _optional_int(values['category_id'])
        if 'description' in values:
            values['description'] = str(values['description'] or '')
        if 'date' in values:
            values['date'] = str(values['date'] or '')
        if 'wallet_id' in values:
            values['wallet_id'] = str(values['wallet_id'] or '')
        if 'fee' in values:
            values['fee'] = _optional_float(values['fee'])
        return values


@dataclass(frozen=True)
class PinjamanItem(Record):
    """A debt (``Utang``) or a credit (``Piutang``) due on ``due_date``."""
    name: str = ''
    amount: float = 0.0
    due_date: str = ''
    category: str = 'Utang'
    icon: Optional[str] = None
    is_settled: bool = False
    description: Optional[str] = None
    lender_name: Optional[str] = None

    table_key = 'pinjaman'

    @classmethod
    def _coerce(cls, values: Dict[str, Any]) -> Dict[str, Any]:
        if 'name' in values:
            values['name'] = str(values['name'] or '')
        if 'amount' in values:
            values['amount'] = _float(values['amount'])
        if 'due_date' in values:
            values['due_date'] = str(values['due_date'] or '')
        if 'is_settled' in values:
            values['is_settled'] = bool(values['is_settled'])
        return values


@dataclass(frozen=True)
class Category(Record):
    """User-defined category. The built-in ones are not stored per user."""
    en_name: str = ''
    id_name: str = ''
    type: str = 'expense'
    category_key: str = ''
    icon: str = 'circle'
    color: str = '#6B7280'

    table_key = 'categories'

    @classmethod
    def _coerce(cls, values: Dict[str, Any]) -> Dict[str, Any]:
        for name in ('en_name', 'id_name', 'category_key'):
            if name in values:
                values[name] = str(values[name] or '')
        if 'icon' in values:
            values['icon'] = str(values['icon'] or 'circle')
        if 'color' in values:
            values['color'] = str(values['color'] or '#6B7280')
        return values

    def display_name(self, language: str) -> str:
        return self.id_name if language == 'id' else self.en_name
