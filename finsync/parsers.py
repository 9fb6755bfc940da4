"""
FinSync - Amount and AI Response Parsers

PURPOSE: Turn loosely written amounts and AI replies into structured values
SCOPE: Indonesian amount shorthand, Rupiah formatting, AI transaction payloads
DEPENDENCIES: re, json, decimal, logging
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

Number = Union[int, float]

_MILLION = re.compile(r'juta|(?<![a-z])jt(?![a-z])')
_THOUSAND = re.compile(r'ribu|(?<![a-z])rb(?![a-z])|(?<![a-z])k(?![a-z])')
_NUMBER_RUN = re.compile(r'\d[\d.,]*|\.\d+')
_GROUPED = re.compile(r'^\d{1,3}([.,])\d{3}(\1\d{3})*$')


def _detect_multiplier(text: str) -> int:
    if _MILLION.search(text):
        return 1_000_000
    if _THOUSAND.search(text):
        return 1_000
    return 1


def _to_number(run: str, has_multiplier: bool) -> Optional[float]:
    """Read one run of digits and separators, deciding which separator is decimal."""
    cleaned = run.rstrip('.,')
    if not cleaned:
        return None

    if '.' in cleaned and ',' in cleaned:
        # Whichever separator comes last is the decimal one: 1.524,55 or 1,524.55
        if cleaned.rfind(',') > cleaned.rfind('.'):
            cleaned = cleaned.replace('.', '').replace(',', '.')
        else:
            cleaned = cleaned.replace(',', '')
    elif not has_multiplier and _GROUPED.match(cleaned):
        # 1.500.000 or 1,500,000 written out in full
        cleaned = cleaned.replace('.', '').replace(',', '')
    elif ',' in cleaned:
        head, _, tail = cleaned.rpartition(',')
        cleaned = head.replace(',', '') + '.' + tail
    elif cleaned.count('.') > 1:
        head, _, tail = cleaned.rpartition('.')
        cleaned = head.replace('.', '') + '.' + tail

    try:
        return float(cleaned)
    except ValueError:
        logger.warning(f"Could not parse amount: {run}")
        return None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_amount(amount: Any) -> Number:
    """Parse amounts like ``350 ribu``, ``50k``, ``2.5 juta`` or ``1.5jt``.

    Numbers pass through unchanged. Strings without digits give ``0``.
    """
    if isinstance(amount, bool):
        return 0
    if isinstance(amount, (int, float)):
        return amount
    if not isinstance(amount, str):
        return 0

    text = amount.lower()
    # Multiplier is detected before the digits are pulled out.
    multiplier = _detect_multiplier(text)

    match = _NUMBER_RUN.search(text)
    if not match:
        return 0

    value = _to_number(match.group(0), multiplier != 1)
    if value is None:
        return 0
    return _round_half_up(value * multiplier)


def format_currency(amount: Number) -> str:
    """Rupiah display format: ``Rp 1.500.000`` (no decimals, dot grouping)."""
    rounded = int(Decimal(str(amount)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))
    grouped = f"{abs(rounded):,}".replace(',', '.')
    return f"Rp {'-' if rounded < 0 else ''}{grouped}"


def is_valid_currency(value: str) -> bool:
    """Comma-grouped numeric string such as ``1,500,000``."""
    numeric = value.replace(',', '').strip()
    if not numeric:
        return True
    try:
        float(numeric)
    except ValueError:
        return False
    return True


def parse_currency(value: str) -> float:
    if not is_valid_currency(value):
        raise ValueError('Invalid currency format. Expected format: 1,000,000')
    numeric = value.replace(',', '').strip()
    return float(numeric) if numeric else 0.0


# ============================================================================
# AI TRANSACTION RESPONSES
# ============================================================================

AI_CATEGORY_HINTS: Dict[str, List[Tuple[int, str]]] = {
    'expense': [
        (1, 'Groceries'), (2, 'Dining'), (3, 'Transportation'), (4, 'Subscription'),
        (5, 'Housing'), (6, 'Entertainment'), (7, 'Shopping'), (8, 'Health'),
        (9, 'Education'), (10, 'Vehicle'), (11, 'Personal'), (12, 'Other'),
    ],
    'income': [
        (13, 'Salary'), (14, 'Business'), (15, 'Investment'), (16, 'Gift'), (17, 'Other'),
    ],
}

CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    'dining': ['makan', 'makanan', 'nasi', 'padang', 'restoran', 'cafe', 'kopi', 'kuliner', 'food'],
    'groceries': ['belanja', 'supermarket', 'minimarket', 'sembako', 'bahan makanan', 'grocery'],
    'transportation': ['transport', 'kendaraan', 'mobil', 'motor', 'bensin', 'parkir', 'tol', 'ojek',
                       'grab', 'gojek'],
    'subscription': ['langganan', 'netflix', 'spotify', 'youtube', 'premium', 'berlangganan'],
    'housing': ['rumah', 'kost', 'kontrakan', 'listrik', 'air', 'internet', 'tagihan'],
    'entertainment': ['hiburan', 'film', 'bioskop', 'game', 'music', 'concert'],
    'shopping': ['belanja', 'baju', 'celana', 'sepatu', 'tas', 'kemeja', 'jaket'],
    'health': ['kesehatan', 'dokter', 'rumah sakit', 'obat', 'vitamin'],
    'education': ['pendidikan', 'sekolah', 'kuliah', 'buku', 'kursus'],
    'travel': ['travel', 'liburan', 'hotel', 'pesawat', 'tiket'],
    'personal': ['personal', 'potong rambut', 'spa', 'salon'],
    'salary': ['gaji', 'salary', 'pendapatan', 'upah'],
    'business': ['bisnis', 'usaha', 'toko', 'jualan'],
    'gift': ['hadiah', 'kado', 'bonus', 'uang'],
}

_FENCED_BLOCKS = (
    re.compile(r'```json\s*([\s\S]*?)\s*```'),
    re.compile(r'```\s*(\{[\s\S]*\}|\[[\s\S]*\])\s*```'),
)


@dataclass(frozen=True)
class ParsedTransaction:
    description: str
    amount: Number
    category: str
    category_id: int
    type: str
    confidence: float


class AIResponseParser:
    """Parses the transaction list returned by the AI function."""

    @staticmethod
    def category_keywords(category_name: str) -> List[str]:
        name = category_name.lower()
        return CATEGORY_KEYWORDS.get(name, [name])

    @staticmethod
    def available_categories() -> List[Dict[str, Any]]:
        """Category hints sent along with the prompt."""
        return [
            {'name': name, 'type': kind, 'keywords': AIResponseParser.category_keywords(name)}
            for kind, categories in AI_CATEGORY_HINTS.items()
            for _, name in categories
        ]

    @staticmethod
    def map_to_category_id(category_name: Optional[str], tx_type: str) -> int:
        """Exact name match first, then keyword match, then the type's ``Other``."""
        normalized = (category_name or '').lower().strip()
        for categories in AI_CATEGORY_HINTS.values():
            for category_id, name in categories:
                if name.lower() == normalized:
                    return category_id

        candidates = AI_CATEGORY_HINTS['income' if tx_type == 'income' else 'expense']
        for category_id, name in candidates:
            if any(keyword in normalized for keyword in AIResponseParser.category_keywords(name)):
                return category_id
        return next(category_id for category_id, name in candidates if name == 'Other')

    @staticmethod
    def extract_transactions_payload(data: Any) -> List[Dict[str, Any]]:
        """Accept a list, or a string holding JSON (optionally inside a fenced block)."""
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except json.JSONDecodeError:
                data = AIResponseParser._from_fenced_block(data)

        if isinstance(data, dict):
            data = data.get('transactions', [data])
        if not isinstance(data, list):
            raise ValueError('Transactions payload is not a list')
        return [item for item in data if isinstance(item, dict)]

    @staticmethod
    def _from_fenced_block(text: str) -> Any:
        for pattern in _FENCED_BLOCKS:
            match = pattern.search(text)
            if match:
                try:
                    return json.loads(match.group(1))
                except json.JSONDecodeError as e:
                    raise ValueError('Invalid JSON format in response') from e
        raise ValueError('No valid JSON found in response')

    @staticmethod
    def parse_transaction(raw: Dict[str, Any]) -> ParsedTransaction:
        tx_type = raw.get('type') if raw.get('type') in ('income', 'expense') else 'expense'
        category = str(raw.get('category') or '')
        try:
            confidence = float(raw.get('confidence') or 0.5)
        except (TypeError, ValueError):
            confidence = 0.5
        return ParsedTransaction(
            description=str(raw.get('description') or ''),
            amount=parse_amount(raw.get('amount')),
            category=category,
            category_id=AIResponseParser.map_to_category_id(category, tx_type),
            type=tx_type,
            confidence=confidence,
        )

    @staticmethod
    def split_valid(transactions: List[ParsedTransaction]) -> Tuple[List[ParsedTransaction], List[ParsedTransaction]]:
        """Valid means a positive amount and a non-blank description."""
        valid, invalid = [], []
        for tx in transactions:
            if tx.amount > 0 and tx.description.strip():
                valid.append(tx)
            else:
                invalid.append(tx)
        return valid, invalid
