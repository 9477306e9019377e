"""
Pay-per-verification accounts for verifiers.

Accounts live in an injected repository; the service charges a flat fee
before each verification.
"""

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Protocol

from veritas_vc.credential import Credential
from veritas_vc.errors import AccountNotFoundError, InsufficientBalanceError
from veritas_vc.verifier import VCVerifier

logger = logging.getLogger(__name__)

VERIFICATION_FEE = 1


@dataclass
class VerifierAccount:
    id: str
    email: str
    balance: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AccountRepository(Protocol):
    """Storage for verifier accounts."""

    def get(self, account_id: str) -> VerifierAccount | None:
        ...

    def find_by_email(self, email: str) -> VerifierAccount | None:
        ...

    def save(self, account: VerifierAccount) -> None:
        ...


class InMemoryAccountRepository:
    """Dict-backed repository for development and tests."""

    def __init__(self) -> None:
        self._accounts: dict[str, VerifierAccount] = {}

    def get(self, account_id: str) -> VerifierAccount | None:
        return self._accounts.get(account_id)

    def find_by_email(self, email: str) -> VerifierAccount | None:
        for account in self._accounts.values():
            if account.email == email:
                return account
        return None

    def save(self, account: VerifierAccount) -> None:
        self._accounts[account.id] = account


class VerificationService:
    """Charges verifier accounts and runs verifications."""

    def __init__(
        self,
        repository: AccountRepository,
        verifier: VCVerifier | None = None,
        fee: int = VERIFICATION_FEE,
    ) -> None:
        if fee < 0:
            raise ValueError(f"Fee must be non-negative, got {fee}")
        self.repository = repository
        self.verifier = verifier or VCVerifier()
        self.fee = fee
        self._lock = threading.Lock()

    def create_account(self, email: str) -> VerifierAccount:
        """Open a new zero-balance account.

        Raises:
            ValueError: If an account with this email already exists.
        """
        with self._lock:
            if self.repository.find_by_email(email) is not None:
                raise ValueError("Account already exists")
            account = VerifierAccount(id=f"verifier_{secrets.token_hex(6)}", email=email)
            self.repository.save(account)
        logger.info("Created verifier account %s", account.id)
        return account

    def _account(self, account_id: str) -> VerifierAccount:
        account = self.repository.get(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account not found: {account_id}")
        return account

    def add_funds(self, account_id: str, amount: int) -> int:
        """Credit an account and return the new balance."""
        if amount <= 0:
            raise ValueError(f"Amount must be positive, got {amount}")
        with self._lock:
            account = self._account(account_id)
            account.balance += amount
            self.repository.save(account)
            return account.balance

    def get_balance(self, account_id: str) -> int:
        return self._account(account_id).balance

    def verify_with_fee(
        self,
        account_id: str,
        credential: Mapping[str, Any] | Credential,
    ) -> dict[str, Any]:
        """Charge the fee and verify a credential.

        The fee is charged whatever the verification outcome.

        Raises:
            AccountNotFoundError: If the account does not exist.
            InsufficientBalanceError: If the balance is below the fee.
        """
        with self._lock:
            account = self._account(account_id)
            if account.balance < self.fee:
                raise InsufficientBalanceError(
                    f"Insufficient balance: {account.balance} < {self.fee}"
                )
            account.balance -= self.fee
            self.repository.save(account)
            remaining = account.balance

        result = self.verifier.verify(credential)
        return {
            **result.to_dict(),
            "feeCharged": self.fee,
            "remainingBalance": remaining,
        }
