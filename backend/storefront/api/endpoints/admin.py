from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from storefront.core.database import get_db
from storefront.core.errors import NotFound, ValidationFailed
from storefront.core.security import CurrentUser, require_admin
from storefront.models.coin_transaction import CoinTransaction, CoinTransactionStatus
from storefront.models.payment_transaction import PaymentStatus, PaymentTransaction
from storefront.models.profile import Profile
from storefront.models.store import Store
from storefront.models.voucher import Voucher
from storefront.schemas.payment import PaymentListResponse, PaymentResponse
from storefront.services.coin_ledger import adjust_coins

logger = logging.getLogger(__name__)


router = APIRouter(dependencies=[Depends(require_admin)])


class CoinAdjustRequest(BaseModel):
    delta: int
    reason: str | None = None


@router.get("/admin/stats")
async def admin_stats(db: Session = Depends(get_db)) -> dict:
    users = int(db.query(func.count(Profile.id)).scalar() or 0)
    stores = int(db.query(func.count(Store.id)).scalar() or 0)
    vouchers = int(db.query(func.count(Voucher.id)).scalar() or 0)
    coins_credited, coins_spent = (
        db.query(
            func.coalesce(func.sum(CoinTransaction.credit_amount), 0),
            func.coalesce(func.sum(CoinTransaction.debit_amount), 0),
        )
        .filter(CoinTransaction.status == CoinTransactionStatus.SUCCESS.value)
        .one()
    )
    payments_success = int(
        db.query(func.count(PaymentTransaction.id))
        .filter(PaymentTransaction.status == PaymentStatus.SUCCESS.value)
        .scalar()
        or 0
    )
    revenue = int(
        db.query(func.coalesce(func.sum(PaymentTransaction.amount), 0))
        .filter(PaymentTransaction.status == PaymentStatus.SUCCESS.value)
        .scalar()
        or 0
    )
    return {
        "users": users,
        "stores": stores,
        "vouchers": vouchers,
        "coins_credited": int(coins_credited or 0),
        "coins_spent": int(coins_spent or 0),
        "payments_success": payments_success,
        "revenue": revenue,
    }


@router.get("/admin/users")
async def admin_list_users(limit: int = 50, offset: int = 0, db: Session = Depends(get_db)) -> list[dict]:
    limit = max(1, min(int(limit or 50), 200))
    offset = max(0, int(offset or 0))
    rows = db.query(Profile).order_by(Profile.created_at.desc()).offset(offset).limit(limit).all()
    user_ids = [p.id for p in rows if p and p.id]

    balances: dict[str, int] = {}
    if user_ids:
        sums = (
            db.query(
                CoinTransaction.user_id,
                func.coalesce(func.sum(CoinTransaction.credit_amount), 0),
                func.coalesce(func.sum(CoinTransaction.debit_amount), 0),
            )
            .filter(
                CoinTransaction.user_id.in_(user_ids),
                CoinTransaction.status == CoinTransactionStatus.SUCCESS.value,
            )
            .group_by(CoinTransaction.user_id)
            .all()
        )
        for uid, credit, debit in sums:
            balances[str(uid)] = int(credit or 0) - int(debit or 0)

    return [
        {
            "id": p.id,
            "email": p.email or "",
            "role": p.role or "user",
            "coin_balance": balances.get(str(p.id), 0),
        }
        for p in rows
    ]


@router.post("/admin/users/{user_id}/coins/adjust")
async def admin_adjust_coins(
    user_id: str,
    body: CoinAdjustRequest,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> dict:
    user_id = (user_id or "").strip()
    if not user_id:
        raise ValidationFailed("Invalid user_id")
    if db.query(Profile.id).filter(Profile.id == user_id).first() is None:
        raise NotFound("User not found")

    balance = adjust_coins(db, user_id, body.delta, body.reason)
    logger.info("admin.coins.adjust admin=%s user=%s delta=%s", admin.id, user_id, body.delta)
    return {"ok": True, "user_id": user_id, "balance": balance}


@router.get("/admin/payments", response_model=PaymentListResponse)
async def admin_list_payments(
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    limit = max(1, min(int(limit or 50), 200))
    offset = max(0, int(offset or 0))
    q = db.query(PaymentTransaction)
    if status:
        q = q.filter(PaymentTransaction.status == status.strip().lower())
    total = int(q.count())
    rows = q.order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc()).offset(offset).limit(limit).all()
    return PaymentListResponse(
        items=[PaymentResponse.model_validate(r) for r in rows],
        total=total,
        limit=limit,
        offset=offset,
    )
