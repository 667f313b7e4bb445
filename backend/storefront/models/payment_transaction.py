import enum

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from storefront.core.database import Base


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    EXPIRED = "expired"


TERMINAL_PAYMENT_STATUSES = {PaymentStatus.SUCCESS.value, PaymentStatus.FAILED.value, PaymentStatus.EXPIRED.value}


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    merchant_code = Column(String, nullable=True)
    merchant_order_id = Column(String, unique=True, index=True, nullable=False)
    reference = Column(String, index=True, nullable=True)
    payment_method = Column(String, nullable=True)
    coin_amount = Column(Integer, nullable=False)
    amount = Column(Integer, nullable=False)
    status = Column(String, index=True, nullable=False, default=PaymentStatus.PENDING.value)
    result_code = Column(String, nullable=True)
    payment_code = Column(String, nullable=True)
    payment_url = Column(String, nullable=True)
    va_number = Column(String, nullable=True)
    qr_string = Column(String, nullable=True)
    callback_reference = Column(String, nullable=True)
    settlement_date = Column(String, nullable=True)
    publisher_order_id = Column(String, nullable=True)
    issuer_code = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
