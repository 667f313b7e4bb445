from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class SpendRequest(BaseModel):
    amount: int = Field(..., ge=1)
    description: str = Field(..., min_length=1, max_length=255)


class SpendResponse(BaseModel):
    balance: int
    transaction_id: int


class CoinTransactionResponse(BaseModel):
    id: int
    description: str
    credit_amount: int
    debit_amount: int
    status: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CoinTransactionListResponse(BaseModel):
    items: List[CoinTransactionResponse]
    total: int
    limit: int
    offset: int


class CoinSummaryResponse(BaseModel):
    balance: int
    total_credit: int
    total_debit: int


class GenerationCreateRequest(BaseModel):
    description: str = Field(..., min_length=1, max_length=255)
    result_url: Optional[str] = Field(default=None, max_length=2048)
    coin_used: Optional[int] = Field(default=None, ge=1)


class GenerationResponse(BaseModel):
    id: int
    description: str
    result_url: Optional[str] = None
    coin_used: int
    coin_transaction_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GenerationCreateResponse(BaseModel):
    history: GenerationResponse
    balance: int


class GenerationListResponse(BaseModel):
    items: List[GenerationResponse]
    total: int
    limit: int
    offset: int


class CheckCoinResponse(BaseModel):
    current_coin: int
    required_coin: int
    has_enough: bool
