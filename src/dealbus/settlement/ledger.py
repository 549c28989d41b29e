"""
Value-transfer collaborator.

The payment agent only needs one primitive: transfer an amount of a token
(or of the native currency) to an account, and learn either the transaction
id of the submitted transfer or why nothing was submitted.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from ..core.types import NATIVE_TOKEN, TransferResult, is_native_token

logger = logging.getLogger(__name__)


class TransferExecutor(Protocol):
    """Executes a transfer from the operator account of the implementation."""

    async def transfer(
        self,
        amount: float,
        token_id: str,
        to_account: str,
        memo: str = "",
    ) -> TransferResult:
        ...


@dataclass(frozen=True)
class TransferRecord:
    """A transfer the ledger accepted."""

    transaction_id: str
    from_account: str
    to_account: str
    token_id: str
    amount: float
    memo: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryLedger:
    """
    In-process ledger with native and token balances per account.

    Transfers are debited from `operator_account`. The native-currency
    sentinel selects the native balance, any other token id a token balance.
    A rejected transfer changes nothing and reports the ledger status.

    Example:
        ledger = InMemoryLedger("0.0.1001", {"0.0.1001": {"HBAR": 1000}})
        result = await ledger.transfer(750, "HBAR", "0.0.2002", "Payment for 10 widgets")
    """

    def __init__(
        self,
        operator_account: str,
        balances: Optional[Dict[str, Dict[str, float]]] = None,
    ):
        self.operator_account = operator_account
        self._balances: Dict[str, Dict[str, float]] = {
            account: dict(tokens) for account, tokens in (balances or {}).items()
        }
        self.transfers: List[TransferRecord] = []
        self._last_nanos = 0

    def balance(self, account: str, token_id: str = NATIVE_TOKEN) -> float:
        key = NATIVE_TOKEN if is_native_token(token_id) else token_id
        return self._balances.get(account, {}).get(key, 0)

    def credit(self, account: str, amount: float, token_id: str = NATIVE_TOKEN) -> None:
        key = NATIVE_TOKEN if is_native_token(token_id) else token_id
        tokens = self._balances.setdefault(account, {})
        tokens[key] = tokens.get(key, 0) + amount

    async def transfer(
        self,
        amount: float,
        token_id: str,
        to_account: str,
        memo: str = "",
    ) -> TransferResult:
        native = is_native_token(token_id)
        key = NATIVE_TOKEN if native else token_id

        if amount <= 0:
            return self._rejected("INVALID_ACCOUNT_AMOUNTS")

        if self.balance(self.operator_account, key) < amount:
            return self._rejected(
                "INSUFFICIENT_ACCOUNT_BALANCE" if native else "INSUFFICIENT_TOKEN_BALANCE"
            )

        self.credit(self.operator_account, -amount, key)
        self.credit(to_account, amount, key)

        transaction_id = self._next_transaction_id()
        self.transfers.append(
            TransferRecord(
                transaction_id=transaction_id,
                from_account=self.operator_account,
                to_account=to_account,
                token_id=key,
                amount=amount,
                memo=memo,
            )
        )

        logger.info(
            f"[InMemoryLedger] {'Native' if native else 'Token'} transfer of {amount} {key} "
            f"{self.operator_account} -> {to_account} ({transaction_id})"
        )
        return TransferResult(success=True, transaction_id=transaction_id)

    def _rejected(self, status: str) -> TransferResult:
        logger.warning(f"[InMemoryLedger] Transfer rejected: {status}")
        return TransferResult(
            success=False,
            error=f"Transaction failed with status: {status}",
        )

    def _next_transaction_id(self) -> str:
        nanos = max(time.time_ns(), self._last_nanos + 1)
        self._last_nanos = nanos
        seconds, remainder = divmod(nanos, 1_000_000_000)
        return f"{self.operator_account}@{seconds}.{remainder:09d}"
