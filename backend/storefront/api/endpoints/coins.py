from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from storefront.core.database import get_db
from storefront.core.errors import ValidationFailed
from storefront.core.security import CurrentUser, get_current_user
from storefront.schemas.coin import (
    CoinSummaryResponse,
    CoinTransactionListResponse,
    CoinTransactionResponse,
    SpendRequest,
    SpendResponse,
)
from storefront.services.coin_ledger import export_transactions_csv, get_summary, list_transactions, spend_coins


router = APIRouter(dependencies=[Depends(get_current_user)])


def _check_range(start_date: date | None, end_date: date | None) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValidationFailed("end_date must be on or after start_date")


@router.get("/coins", response_model=CoinTransactionListResponse)
async def coin_transactions(
    start_date: date | None = None,
    end_date: date | None = None,
    search: str | None = None,
    limit: int = 10,
    offset: int = 0,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    _check_range(start_date, end_date)
    limit = max(1, min(int(limit or 10), 100))
    offset = max(0, int(offset or 0))
    rows, total = list_transactions(
        db,
        current_user.id,
        start=start_date,
        end=end_date,
        search=search,
        limit=limit,
        offset=offset,
    )
    return CoinTransactionListResponse(
        items=[CoinTransactionResponse.model_validate(r) for r in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/coins/summary", response_model=CoinSummaryResponse)
async def coin_summary(
    start_date: date | None = None,
    end_date: date | None = None,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    _check_range(start_date, end_date)
    summary = get_summary(db, current_user.id, start=start_date, end=end_date)
    return CoinSummaryResponse(
        balance=summary.balance,
        total_credit=summary.total_credit,
        total_debit=summary.total_debit,
    )


@router.get("/coins/export")
async def coin_export(
    start_date: date | None = None,
    end_date: date | None = None,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    _check_range(start_date, end_date)
    content = export_transactions_csv(db, current_user.id, start=start_date, end=end_date)
    filename = f"coin_transactions_{datetime.now().strftime('%Y-%m-%d_%H%M%S')}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/coins/spend", response_model=SpendResponse)
async def coin_spend(
    body: SpendRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    result = spend_coins(db, current_user.id, body.amount, body.description.strip())
    return SpendResponse(balance=result.balance, transaction_id=result.transaction.id)
