"""
FinSync - AI Transaction Entry

PURPOSE: Free-text transaction entry through the hosted AI function
SCOPE: Function invocation, response parsing, conversion to transactions
DEPENDENCIES: remote.py, parsers.py
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple

from .config import config
from .errors import RemoteRejected
from .models import Transaction
from .parsers import AIResponseParser, ParsedTransaction
from .remote import BackendClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AIParseResult:
    success: bool
    message: str
    transactions: List[ParsedTransaction] = field(default_factory=list)
    error: Optional[str] = None


class AITransactionService:
    """Sends user text to the AI function and returns parsed transactions. Never raises."""

    def __init__(self, backend: BackendClient, language: Optional[str] = None,
                 function_name: Optional[str] = None):
        self.backend = backend
        self.language = language or config.LANGUAGE
        self.function_name = function_name or config.AI_FUNCTION_NAME
        self.parser = AIResponseParser()

    async def parse_transaction_input(self, text: str) -> AIParseResult:
        try:
            data = await self.backend.invoke_function(self.function_name, {
                'action': 'parse_transactions',
                'input': text.strip(),
                'language': self.language,
                'availableCategories': self.parser.available_categories(),
            })
        except RemoteRejected as e:
            logger.error(f"AI function error: {e.message}")
            return AIParseResult(success=False, message='Failed to parse transactions', error=e.message)

        result = data.get('result') if isinstance(data, dict) else None
        if not isinstance(result, dict) or not result.get('transactions'):
            return AIParseResult(success=False, message='No transactions found', error='Invalid response format')

        try:
            payload = self.parser.extract_transactions_payload(result['transactions'])
        except ValueError as e:
            logger.warning(f"Unparseable AI response: {e}")
            return AIParseResult(success=False, message='Failed to parse transactions', error=str(e))

        transactions = [self.parser.parse_transaction(raw) for raw in payload]
        logger.info(f"AI parsed {len(transactions)} transactions")
        return AIParseResult(
            success=True,
            message=result.get('message') or 'Transactions parsed successfully',
            transactions=transactions,
        )

    def validate_transactions(self, transactions: List[ParsedTransaction]
                              ) -> Tuple[List[ParsedTransaction], List[ParsedTransaction]]:
        return self.parser.split_valid(transactions)

    @staticmethod
    def to_transaction_input(parsed: ParsedTransaction, wallet_id: str,
                             today: Optional[date] = None) -> Transaction:
        """Create-input for ``TransactionManager.create``, dated today."""
        return Transaction(
            amount=float(parsed.amount),
            category_id=parsed.category_id,
            description=parsed.description,
            date=(today or date.today()).isoformat(),
            type=parsed.type,
            wallet_id=wallet_id,
        )
