"""Prepaid credit ledger: balance checks, idempotent charges and refunds."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from batchgen.core.database import get_session_factory
from batchgen.schema.credits import CreditAccount, CreditTransaction, CreditTransactionKind

logger = logging.getLogger(__name__)


class InsufficientCreditsError(RuntimeError):
  """Raised when a charge would take a balance below zero."""

  def __init__(self, *, required: int, available: int) -> None:
    super().__init__(f"insufficient credits (required {required}, available {available})")
    self.required = required
    self.available = available


@dataclass(frozen=True)
class CreditBalance:
  """Snapshot of a user's balance after a ledger operation."""

  user_id: str
  balance: int


class CreditLedger(Protocol):
  """Ledger operations the job service and the orchestrator depend on."""

  async def get_balance(self, user_id: str) -> CreditBalance:
    """Return the current balance."""

  async def charge(self, *, user_id: str, amount: int, reference_type: str, reference_id: str, metadata: dict | None = None) -> CreditBalance:
    """Charge once per reference; repeated calls return the current balance."""

  async def refund(self, *, user_id: str, amount: int, reference_type: str, reference_id: str, reason: str) -> bool:
    """Refund at most once per reference; return False when nothing was refunded."""


@asynccontextmanager
async def _ledger_transaction(session: AsyncSession):
  """Start a transaction appropriate for the current session state.

  How/Why:
    - AsyncSession autobegins on the first statement, so a nested explicit
      begin() inside a caller's transaction would raise.
    - Use a SAVEPOINT when a transaction is already active to keep atomicity.
  """
  if session.in_transaction():
    async with session.begin_nested():
      yield
    return
  async with session.begin():
    yield


async def _find_entry(session: AsyncSession, *, reference_type: str, reference_id: str, kind: CreditTransactionKind) -> CreditTransaction | None:
  stmt = select(CreditTransaction).where(CreditTransaction.reference_type == reference_type, CreditTransaction.reference_id == reference_id, CreditTransaction.kind == kind.value)
  result = await session.execute(stmt)
  return result.scalar_one_or_none()


async def _lock_account(session: AsyncSession, user_id: str) -> CreditAccount:
  """Lock (creating if needed) the account row so balance updates serialize."""
  stmt = select(CreditAccount).where(CreditAccount.user_id == user_id).with_for_update()
  result = await session.execute(stmt)
  account = result.scalar_one_or_none()
  if account is None:
    account = CreditAccount(user_id=user_id, balance=0)
    session.add(account)
    await session.flush()
  return account


async def get_credit_balance(session: AsyncSession, *, user_id: str) -> CreditBalance:
  """Return the balance for a user, treating a missing account as zero."""
  stmt = select(CreditAccount.balance).where(CreditAccount.user_id == user_id)
  result = await session.execute(stmt)
  balance = result.scalar_one_or_none()
  return CreditBalance(user_id=user_id, balance=int(balance or 0))


async def charge_credits(session: AsyncSession, *, user_id: str, amount: int, reference_type: str, reference_id: str, metadata: dict | None = None) -> CreditBalance:
  """Deduct credits for a referenced object exactly once."""
  if amount < 0:
    raise ValueError("amount must be >= 0")

  async with _ledger_transaction(session):
    account = await _lock_account(session, user_id)

    # A charge row for this reference means the caller is retrying a completed charge.
    existing = await _find_entry(session, reference_type=reference_type, reference_id=reference_id, kind=CreditTransactionKind.CHARGE)
    if existing is not None:
      logger.info("Charge for %s %s already recorded; skipping.", reference_type, reference_id)
      return CreditBalance(user_id=user_id, balance=int(account.balance))

    if int(account.balance) < amount:
      raise InsufficientCreditsError(required=amount, available=int(account.balance))

    account.balance = int(account.balance) - amount
    session.add(account)
    session.add(CreditTransaction(user_id=user_id, kind=CreditTransactionKind.CHARGE.value, amount=amount, balance_after=int(account.balance), reference_type=reference_type, reference_id=reference_id, metadata_json=metadata))
    await session.flush()

  return CreditBalance(user_id=user_id, balance=int(account.balance))


async def refund_credits(session: AsyncSession, *, user_id: str, amount: int, reference_type: str, reference_id: str, reason: str, metadata: dict | None = None) -> bool:
  """Return credits for a referenced object at most once, capped at the original charge."""
  if amount <= 0:
    return False

  try:
    async with _ledger_transaction(session):
      account = await _lock_account(session, user_id)

      existing = await _find_entry(session, reference_type=reference_type, reference_id=reference_id, kind=CreditTransactionKind.REFUND)
      if existing is not None:
        logger.info("Refund for %s %s already recorded (%s credits); skipping.", reference_type, reference_id, existing.amount)
        return False

      # Never give back more than was taken for this reference.
      charge = await _find_entry(session, reference_type=reference_type, reference_id=reference_id, kind=CreditTransactionKind.CHARGE)
      if charge is None:
        logger.warning("Refund requested for %s %s without a charge; ignoring.", reference_type, reference_id)
        return False
      refundable = min(int(amount), int(charge.amount))

      account.balance = int(account.balance) + refundable
      session.add(account)
      session.add(CreditTransaction(user_id=user_id, kind=CreditTransactionKind.REFUND.value, amount=refundable, balance_after=int(account.balance), reference_type=reference_type, reference_id=reference_id, reason=reason, metadata_json=metadata))
      await session.flush()
  except IntegrityError:
    # The partial unique index caught a concurrent refund for the same reference.
    await session.rollback()
    logger.info("Concurrent refund for %s %s detected; keeping the first.", reference_type, reference_id)
    return False

  return True


class PostgresCreditLedger(CreditLedger):
  """Ledger bound to the application session factory."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def get_balance(self, user_id: str) -> CreditBalance:
    async with self._session_factory() as session:
      return await get_credit_balance(session, user_id=user_id)

  async def charge(self, *, user_id: str, amount: int, reference_type: str, reference_id: str, metadata: dict | None = None) -> CreditBalance:
    async with self._session_factory() as session:
      return await charge_credits(session, user_id=user_id, amount=amount, reference_type=reference_type, reference_id=reference_id, metadata=metadata)

  async def refund(self, *, user_id: str, amount: int, reference_type: str, reference_id: str, reason: str) -> bool:
    async with self._session_factory() as session:
      return await refund_credits(session, user_id=user_id, amount=amount, reference_type=reference_type, reference_id=reference_id, reason=reason)
