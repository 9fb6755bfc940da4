"""
FinSync Package

PURPOSE: Optimistic sync client for a hosted personal-finance backend
SCOPE: Module imports and package configuration
"""

__version__ = "1.0.0"
__author__ = "FinSync Team"
__description__ = "Optimistic, rollback-capable sync stores for wallets, budgets, transactions, wishlists, loans and categories"

# Package imports for easier access
from .config import config
from .errors import SyncError, Unauthenticated, RemoteRejected, NotFound, ValidationFailed
from .models import Record, WantToBuyItem, Wallet, Budget, Transaction, PinjamanItem, Category
from .notifications import Notification, Notifier
from .remote import BackendClient, RestTable
from .session import Session, AuthClient
from .store import SyncStore, StoreState
from .managers import (
    WantToBuyManager, WalletManager, BudgetManager, TransactionManager, PinjamanManager, CategoryManager,
    FinanceSession,
)
from .parsers import parse_amount, format_currency, parse_currency, is_valid_currency
from .ai import AITransactionService

__all__ = [
    "config",
    "SyncError",
    "Unauthenticated",
    "RemoteRejected",
    "NotFound",
    "ValidationFailed",
    "Record",
    "WantToBuyItem",
    "Wallet",
    "Budget",
    "Transaction",
    "PinjamanItem",
    "Category",
    "Notification",
    "Notifier",
    "BackendClient",
    "RestTable",
    "Session",
    "AuthClient",
    "SyncStore",
    "StoreState",
    "WantToBuyManager",
    "WalletManager",
    "BudgetManager",
    "TransactionManager",
    "PinjamanManager",
    "CategoryManager",
    "FinanceSession",
    "parse_amount",
    "format_currency",
    "parse_currency",
    "is_valid_currency",
    "AITransactionService",
]
