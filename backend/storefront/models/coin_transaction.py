import enum

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from storefront.core.database import Base


class CoinTransactionStatus(str, enum.Enum):
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"


class CoinTransaction(Base):
    __tablename__ = "coin_transactions"
    __table_args__ = (
        CheckConstraint("credit_amount >= 0", name="ck_coin_transactions_credit_nonneg"),
        CheckConstraint("debit_amount >= 0", name="ck_coin_transactions_debit_nonneg"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    description = Column(String, nullable=False)
    credit_amount = Column(Integer, nullable=False, default=0)
    debit_amount = Column(Integer, nullable=False, default=0)
    status = Column(String, index=True, nullable=False, default=CoinTransactionStatus.SUCCESS.value)
    # idempotency key for credits coming from outside, e.g. "duitku:<merchant_order_id>"
    reference = Column(String, unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
