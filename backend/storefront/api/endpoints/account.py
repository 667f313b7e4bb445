from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from storefront.core.database import get_db
from storefront.core.security import CurrentUser, get_current_user
from storefront.models.store import Store
from storefront.services.coin_ledger import get_balance


router = APIRouter(dependencies=[Depends(get_current_user)])


class MeResponse(BaseModel):
    id: str
    email: str
    role: str
    coin_balance: int
    store_ids: list[str] = []


@router.get("/me", response_model=MeResponse)
async def me(db: Session = Depends(get_db), current_user: CurrentUser = Depends(get_current_user)):
    stores = db.query(Store.id).filter(Store.owner_id == current_user.id).order_by(Store.created_at.asc()).all()
    return MeResponse(
        id=current_user.id,
        email=current_user.email,
        role=current_user.role,
        coin_balance=get_balance(db, current_user.id),
        store_ids=[str(row[0]) for row in stores],
    )
