from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.core.database import get_db
from storefront.core.security import CurrentUser, get_current_user
from storefront.schemas.coin import (
    CheckCoinResponse,
    GenerationCreateRequest,
    GenerationCreateResponse,
    GenerationListResponse,
    GenerationResponse,
)
from storefront.services.generation_history import check_coin, delete_history, list_history, record_generation


router = APIRouter(dependencies=[Depends(get_current_user)])


@router.get("/ai-history", response_model=GenerationListResponse)
async def ai_history(
    limit: int = 10,
    offset: int = 0,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    limit = max(1, min(int(limit or 10), 100))
    offset = max(0, int(offset or 0))
    rows, total = list_history(db, current_user.id, limit=limit, offset=offset)
    return GenerationListResponse(
        items=[GenerationResponse.model_validate(r) for r in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/ai-history/check-coin", response_model=CheckCoinResponse)
async def ai_check_coin(db: Session = Depends(get_db), current_user: CurrentUser = Depends(get_current_user)):
    return CheckCoinResponse(**check_coin(db, current_user.id))


@router.post("/ai-history", response_model=GenerationCreateResponse, status_code=201)
async def ai_history_create(
    body: GenerationCreateRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    history, balance = record_generation(
        db,
        current_user.id,
        description=body.description,
        result_url=body.result_url,
        coin_used=body.coin_used,
    )
    return GenerationCreateResponse(history=GenerationResponse.model_validate(history), balance=balance)


@router.delete("/ai-history/{history_id}")
async def ai_history_delete(
    history_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    delete_history(db, current_user.id, history_id)
    return {"ok": True}
