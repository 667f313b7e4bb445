from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from storefront.models.voucher import DiscountKind, DiscountType, VoucherStatus


class VoucherPayload(BaseModel):
    code: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    quota: int = Field(..., ge=1, le=1_000_000)
    start_date: date
    end_date: date
    status: VoucherStatus = VoucherStatus.ACTIVE
    discount_kind: DiscountKind
    discount_type: DiscountType = DiscountType.FIXED
    discount_value: Decimal = Field(..., ge=0, le=100_000_000)
    min_purchase: Optional[Decimal] = Field(default=None, ge=0, le=100_000_000)
    max_discount: Optional[Decimal] = Field(default=None, ge=0, le=100_000_000)

    class Config:
        use_enum_values = True


class VoucherResponse(BaseModel):
    id: str
    store_id: str
    code: str
    description: Optional[str] = None
    quota: int
    quota_used: int
    remaining_quota: int
    start_date: date
    end_date: date
    status: str
    discount_kind: str
    discount_type: str
    discount_value: float
    min_purchase: Optional[float] = None
    max_discount: Optional[float] = None
    created_at: Optional[datetime] = None


class VoucherListResponse(BaseModel):
    items: List[VoucherResponse]
    total: int
    limit: int
    offset: int


class VoucherValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=255)
    subtotal: Decimal = Field(..., ge=0, le=100_000_000_000)


class VoucherRedeemRequest(BaseModel):
    voucher_id: str = Field(..., min_length=1)
    subtotal: Decimal = Field(..., ge=0, le=100_000_000_000)


class VoucherQuoteResponse(BaseModel):
    discount: float
    kind: str
    type: str
    voucher: Dict[str, Any]
