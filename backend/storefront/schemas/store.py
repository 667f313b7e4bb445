from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class StoreCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    subdomain: str = Field(..., min_length=1, max_length=63)
    custom_domain: Optional[str] = Field(default=None, max_length=255)


class StoreResponse(BaseModel):
    id: str
    owner_id: str
    name: str
    subdomain: str
    custom_domain: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
