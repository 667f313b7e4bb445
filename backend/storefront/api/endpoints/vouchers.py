from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.core.database import get_db
from storefront.core.security import CurrentUser, get_current_user
from storefront.models.voucher import Voucher
from storefront.schemas.store import StoreCreateRequest, StoreResponse
from storefront.schemas.voucher import (
    VoucherListResponse,
    VoucherPayload,
    VoucherQuoteResponse,
    VoucherRedeemRequest,
    VoucherResponse,
    VoucherValidateRequest,
)
from storefront.services import vouchers as voucher_service
from storefront.services.stores import create_store, get_owned_store, get_store
from storefront.services.vouchers import VoucherQuote


router = APIRouter()


def _voucher_out(v: Voucher) -> VoucherResponse:
    return VoucherResponse(
        id=v.id,
        store_id=v.store_id,
        code=v.code,
        description=v.description,
        quota=int(v.quota or 0),
        quota_used=int(v.quota_used or 0),
        remaining_quota=max(0, int(v.quota or 0) - int(v.quota_used or 0)),
        start_date=v.start_date,
        end_date=v.end_date,
        status=v.status,
        discount_kind=v.discount_kind,
        discount_type=v.discount_type,
        discount_value=float(v.discount_value or 0),
        min_purchase=(float(v.min_purchase) if v.min_purchase is not None else None),
        max_discount=(float(v.max_discount) if v.max_discount is not None else None),
        created_at=v.created_at,
    )


def _quote_out(quote: VoucherQuote) -> VoucherQuoteResponse:
    snapshot: dict[str, Any] = {
        k: (float(v) if isinstance(v, Decimal) else v) for k, v in quote.voucher.items()
    }
    return VoucherQuoteResponse(
        discount=float(quote.discount),
        kind=quote.kind,
        type=quote.discount_type,
        voucher=snapshot,
    )


@router.post("/stores", response_model=StoreResponse, status_code=201)
async def store_create(
    body: StoreCreateRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    store = create_store(db, current_user, body.name, body.subdomain, body.custom_domain)
    return StoreResponse.model_validate(store)


@router.post("/stores/{store_id}/vouchers/validate", response_model=VoucherQuoteResponse)
async def voucher_validate(store_id: str, body: VoucherValidateRequest, db: Session = Depends(get_db)):
    get_store(db, store_id)
    quote = voucher_service.validate_voucher(db, store_id, body.code, body.subtotal)
    return _quote_out(quote)


@router.post("/stores/{store_id}/vouchers/redeem", response_model=VoucherQuoteResponse)
async def voucher_redeem(
    store_id: str,
    body: VoucherRedeemRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    get_owned_store(db, store_id, current_user)
    quote = voucher_service.redeem_voucher(db, body.voucher_id, store_id, body.subtotal)
    return _quote_out(quote)


@router.get("/stores/{store_id}/vouchers", response_model=VoucherListResponse)
async def voucher_list(
    store_id: str,
    search: str | None = None,
    limit: int = 10,
    offset: int = 0,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    get_owned_store(db, store_id, current_user)
    limit = max(1, min(int(limit or 10), 100))
    offset = max(0, int(offset or 0))
    rows, total = voucher_service.list_vouchers(db, store_id, search=search, limit=limit, offset=offset)
    return VoucherListResponse(items=[_voucher_out(v) for v in rows], total=total, limit=limit, offset=offset)


@router.post("/stores/{store_id}/vouchers", response_model=VoucherResponse, status_code=201)
async def voucher_create(
    store_id: str,
    body: VoucherPayload,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    get_owned_store(db, store_id, current_user)
    voucher = voucher_service.create_voucher(db, store_id, body.model_dump())
    return _voucher_out(voucher)


@router.get("/stores/{store_id}/vouchers/{voucher_id}", response_model=VoucherResponse)
async def voucher_show(
    store_id: str,
    voucher_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    get_owned_store(db, store_id, current_user)
    return _voucher_out(voucher_service.get_voucher(db, store_id, voucher_id))


@router.put("/stores/{store_id}/vouchers/{voucher_id}", response_model=VoucherResponse)
async def voucher_update(
    store_id: str,
    voucher_id: str,
    body: VoucherPayload,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    get_owned_store(db, store_id, current_user)
    voucher = voucher_service.update_voucher(db, store_id, voucher_id, body.model_dump())
    return _voucher_out(voucher)


@router.delete("/stores/{store_id}/vouchers/{voucher_id}")
async def voucher_delete(
    store_id: str,
    voucher_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    get_owned_store(db, store_id, current_user)
    voucher_service.delete_voucher(db, store_id, voucher_id)
    return {"ok": True}
