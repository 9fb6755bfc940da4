"""
FinSync - Configuration and Constants

PURPOSE: Central configuration management for the sync client and dev backend
SCOPE: Backend endpoints, table names, timeouts and environment variables
DEPENDENCIES: python-dotenv (foundational module)
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


@dataclass
class AppConfig:
    """Application configuration constants."""
    SUPABASE_URL: str = ''
    SUPABASE_ANON_KEY: str = ''
    REQUEST_TIMEOUT: float = 10.0
    DB_FILE: str = 'finsync.db'
    LANGUAGE: str = 'id'
    LOG_LEVEL: str = 'INFO'
    AI_FUNCTION_NAME: str = 'gemini-finance-insight'
    TABLES: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if not self.TABLES:
            self.TABLES = {
                'want_to_buy': 'want_to_buy_items',
                'wallets': 'wallets',
                'budgets': 'budgets',
                'transactions': 'transactions',
                'pinjaman': 'pinjaman_items',
                'categories': 'categories',
            }

    @classmethod
    def from_env(cls) -> 'AppConfig':
        return cls(
            SUPABASE_URL=os.environ.get('SUPABASE_URL', ''),
            SUPABASE_ANON_KEY=os.environ.get('SUPABASE_ANON_KEY', ''),
            REQUEST_TIMEOUT=_env_float('FINSYNC_REQUEST_TIMEOUT', 10.0),
            DB_FILE=os.environ.get('FINSYNC_DB_FILE', 'finsync.db'),
            LANGUAGE=os.environ.get('FINSYNC_LANGUAGE', 'id'),
            LOG_LEVEL=os.environ.get('FINSYNC_LOG_LEVEL', 'INFO').upper(),
        )


# Global configuration instance
config = AppConfig.from_env()

# Set up logging
logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)
