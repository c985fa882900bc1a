"""SQLAlchemy models for prepaid credit balances and their ledger."""

from __future__ import annotations

import datetime
import enum

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from batchgen.core.database import Base


class CreditTransactionKind(str, enum.Enum):
  """Ledger entry kinds."""

  CHARGE = "charge"
  REFUND = "refund"
  GRANT = "grant"


class CreditAccount(Base):
  __tablename__ = "credit_accounts"

  user_id: Mapped[str] = mapped_column(String, primary_key=True)
  balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class CreditTransaction(Base):
  __tablename__ = "credit_transactions"
  __table_args__ = (
    # One charge and one refund per referenced object; this is the ledger idempotency key.
    Index("ux_credit_transactions_reference_kind", "reference_type", "reference_id", "kind", unique=True, postgresql_where=text("reference_id IS NOT NULL AND kind IN ('charge', 'refund')")),
  )

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  kind: Mapped[str] = mapped_column(String, nullable=False)
  amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
  balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
  reference_type: Mapped[str | None] = mapped_column(String, nullable=True)
  reference_id: Mapped[str | None] = mapped_column(String, nullable=True)
  reason: Mapped[str | None] = mapped_column(String, nullable=True)
  metadata_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
