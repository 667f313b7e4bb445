from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from storefront.core.database import get_db
from storefront.core.errors import ValidationFailed
from storefront.core.security import CurrentUser, get_current_user
from storefront.core.settings import settings
from storefront.schemas.payment import (
    CallbackResponse,
    PaymentCreateRequest,
    PaymentCreateResponse,
    PaymentListResponse,
    PaymentResponse,
    PaymentStatusResponse,
)
from storefront.services.payments import (
    check_status,
    create_payment,
    handle_callback,
    list_payment_methods,
    list_user_payments,
)


router = APIRouter()


def _candidate_ips(request: Request) -> list[str]:
    ips: list[str] = []
    client = getattr(request, "client", None)
    host = getattr(client, "host", None) if client else None
    if host:
        ips.append(str(host).strip())
    xff = request.headers.get("x-forwarded-for") or ""
    ips.extend(ip.strip() for ip in xff.split(",") if ip.strip())
    return ips


async def _callback_payload(request: Request) -> dict:
    content_type = (request.headers.get("content-type") or "").lower()
    if "application/json" in content_type:
        try:
            payload = await request.json()
        except ValueError:
            raise ValidationFailed("Invalid JSON")
        if not isinstance(payload, dict):
            raise ValidationFailed("Invalid JSON")
        return payload
    form = await request.form()
    return {k: v for k, v in form.items() if isinstance(v, str)}


@router.post("/payment/duitku/callback", response_model=CallbackResponse, name="duitku_callback")
async def duitku_callback(request: Request, db: Session = Depends(get_db)):
    payload = await _callback_payload(request)
    result = handle_callback(db, payload, client_ips=_candidate_ips(request))
    message = "Callback already processed" if result.already_processed else "Callback processed successfully"
    return CallbackResponse(success=True, message=message, already_processed=result.already_processed)


@router.post("/payment/duitku/create", response_model=PaymentCreateResponse)
async def duitku_create(
    body: PaymentCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    callback_url = settings.duitku_callback_url or str(request.url_for("duitku_callback"))
    data = create_payment(
        db,
        current_user,
        coin_amount=body.coin_amount,
        callback_url=callback_url,
        payment_method=body.payment_method,
        idempotency_key=body.idempotency_key,
    )
    return PaymentCreateResponse(**data)


@router.get("/payment/duitku/status/{merchant_order_id}", response_model=PaymentStatusResponse)
async def duitku_status(
    merchant_order_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    txn, api_status = check_status(db, current_user, merchant_order_id)
    return PaymentStatusResponse(payment=PaymentResponse.model_validate(txn), api_status_code=api_status)


@router.get("/payment/duitku/methods")
async def duitku_methods(amount: int = 10000, current_user: CurrentUser = Depends(get_current_user)) -> dict:
    return {"items": list_payment_methods(amount)}


@router.get("/payment/duitku/transactions", response_model=PaymentListResponse)
async def duitku_transactions(
    limit: int = 20,
    offset: int = 0,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    limit = max(1, min(int(limit or 20), 100))
    offset = max(0, int(offset or 0))
    rows, total = list_user_payments(db, current_user.id, limit=limit, offset=offset)
    return PaymentListResponse(
        items=[PaymentResponse.model_validate(r) for r in rows],
        total=total,
        limit=limit,
        offset=offset,
    )
