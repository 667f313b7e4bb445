import enum
from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from storefront.core.database import Base


class VoucherStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"


class DiscountKind(str, enum.Enum):
    SHIPPING = "shipping"
    PRICE_CUT = "price_cut"


class DiscountType(str, enum.Enum):
    PERCENT = "percent"
    FIXED = "fixed"


class Voucher(Base):
    __tablename__ = "vouchers"
    __table_args__ = (UniqueConstraint("store_id", "code", name="uq_vouchers_store_code"),)

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid4()))
    store_id = Column(String, index=True, nullable=False)
    code = Column(String, index=True, nullable=False)
    description = Column(Text, nullable=True)
    quota = Column(Integer, nullable=False, default=0)
    quota_used = Column(Integer, nullable=False, default=0)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String, index=True, nullable=False, default=VoucherStatus.ACTIVE.value)
    discount_kind = Column(String, nullable=False)
    discount_type = Column(String, nullable=False, default=DiscountType.FIXED.value)
    discount_value = Column(Numeric(15, 2), nullable=False, default=0)
    min_purchase = Column(Numeric(15, 2), nullable=True)
    max_discount = Column(Numeric(15, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
