from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class PaymentCreateRequest(BaseModel):
    coin_amount: int = Field(..., ge=1)
    payment_method: Optional[str] = Field(default=None, max_length=2)
    idempotency_key: Optional[str] = Field(default=None, max_length=64)


class PaymentCreateResponse(BaseModel):
    transaction_id: int
    merchant_order_id: str
    reference: Optional[str] = None
    payment_url: Optional[str] = None
    va_number: Optional[str] = None
    qr_string: Optional[str] = None
    amount: int
    coin_amount: int


class PaymentResponse(BaseModel):
    id: int
    merchant_order_id: str
    reference: Optional[str] = None
    payment_method: Optional[str] = None
    coin_amount: int
    amount: int
    status: str
    result_code: Optional[str] = None
    payment_url: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentListResponse(BaseModel):
    items: List[PaymentResponse]
    total: int
    limit: int
    offset: int


class PaymentStatusResponse(BaseModel):
    payment: PaymentResponse
    api_status_code: Optional[str] = None


class CallbackResponse(BaseModel):
    success: bool
    message: str
    already_processed: bool = False
