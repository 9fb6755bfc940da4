"""
FinSync - Data Validation

PURPOSE: Data validation and business rule enforcement before a mutation is sent
SCOPE: Wishlist, wallet, budget, transaction, loan and category input checks
DEPENDENCIES: models.py
"""

import math
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .models import (
    BUDGET_PERIODS, CATEGORY_TYPES, PINJAMAN_CATEGORIES, WALLET_TYPES, WISHLIST_CATEGORIES, WISHLIST_PRIORITIES,
    Budget, Category, PinjamanItem, Transaction, Wallet, WantToBuyItem,
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate_want_to_buy_item(item: WantToBuyItem) -> Tuple[bool, List[str]]:
    """Validate a wishlist item and return validation result with error messages."""
    errors = []

    if not _is_text(item.name):
        errors.append("Item name is required")

    if not _is_number(item.price) or item.price <= 0:
        errors.append("Price must be greater than 0")

    if item.category not in WISHLIST_CATEGORIES:
        errors.append("Invalid category")

    if item.priority not in WISHLIST_PRIORITIES:
        errors.append("Invalid priority")

    return len(errors) == 0, errors


def validate_wallet(wallet: Wallet) -> Tuple[bool, List[str]]:
    """Validate wallet data. Stops at the first problem, like the form does."""
    if not _is_text(wallet.name):
        return False, ["Wallet name is required"]

    if not _is_number(wallet.balance):
        return False, ["Valid balance is required"]

    if not wallet.type:
        return False, ["Wallet type is required"]

    if wallet.type not in WALLET_TYPES:
        return False, ["Invalid wallet type"]

    if not _is_text(wallet.color):
        return False, ["Wallet color is required"]

    return True, []


def validate_budget(budget: Budget) -> Tuple[bool, List[str]]:
    """Validate budget data."""
    if not _is_number(budget.amount) or budget.amount <= 0:
        return False, ["Budget amount must be greater than 0"]

    if not budget.category_id:
        return False, ["Category is required"]

    if budget.period and budget.period not in BUDGET_PERIODS:
        return False, ["Invalid budget period"]

    return True, []


def has_sufficient_balance(wallet: Wallet, amount: float, fee: float = 0.0) -> bool:
    return wallet.balance >= amount + fee


def _find_wallet(wallets: Iterable[Wallet], wallet_id: Optional[str]) -> Optional[Wallet]:
    return next((w for w in wallets if w.id == wallet_id), None)


def validate_transaction(transaction: Transaction, wallets: Iterable[Wallet],
                         check_balance: bool = True) -> Tuple[bool, List[str]]:
    """Validate a transaction against the caller's wallets.

    Balance sufficiency is only checked when ``check_balance`` is set; an
    edit of an existing transaction has already been applied to the balance.
    """
    wallets = list(wallets)

    if not _is_number(transaction.amount) or transaction.amount <= 0:
        return False, ["Amount must be greater than 0"]

    if not transaction.wallet_id:
        return False, ["Wallet is required"]

    wallet = _find_wallet(wallets, transaction.wallet_id)
    if wallet is None:
        return False, ["Wallet not found"]

    if transaction.type == 'transfer':
        if not transaction.destination_wallet_id:
            return False, ["Destination wallet is required for transfers"]

        if transaction.wallet_id == transaction.destination_wallet_id:
            return False, ["Cannot transfer to the same wallet"]

        if _find_wallet(wallets, transaction.destination_wallet_id) is None:
            return False, ["Destination wallet not found"]

        fee = transaction.fee or 0.0
        if not _is_number(fee):
            return False, ["Transfer fee must be a number"]

        if fee < 0:
            return False, ["Transfer fee cannot be negative"]

        if check_balance and not has_sufficient_balance(wallet, transaction.amount, fee):
            return False, ["Insufficient balance for transfer"]
    elif transaction.type == 'expense':
        if check_balance and not has_sufficient_balance(wallet, transaction.amount):
            return False, ["Insufficient balance for expense"]
    elif transaction.type != 'income':
        return False, ["Invalid transaction type"]

    if transaction.type != 'transfer' and not transaction.category_id:
        return False, ["Category is required"]

    return True, []


def validate_pinjaman_item(item: PinjamanItem) -> Tuple[bool, List[str]]:
    """Validate a debt or credit entry."""
    errors = []

    if not _is_text(item.name):
        errors.append("Name is required")

    if not _is_number(item.amount) or item.amount <= 0:
        errors.append("Amount must be greater than 0")

    if item.category not in PINJAMAN_CATEGORIES:
        errors.append("Category must be Utang or Piutang")

    if not _is_text(item.due_date):
        errors.append("Due date is required")
    else:
        try:
            date.fromisoformat(item.due_date[:10])
        except ValueError:
            errors.append("Invalid due date")

    return len(errors) == 0, errors


def validate_category(category: Category) -> Tuple[bool, List[str]]:
    if not _is_text(category.en_name):
        return False, ["Category name is required"]

    if category.type not in CATEGORY_TYPES:
        return False, ['Invalid category type. Must be "income" or "expense"']

    return True, []


def sanitize_form_data(form_data: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize form data by stripping whitespace from string values."""
    sanitized = {}

    for key, value in form_data.items():
        if isinstance(value, str):
            sanitized[key] = value.strip()
        else:
            sanitized[key] = value

    return sanitized
