from __future__ import annotations

import hmac
import logging
import secrets
import string
import time
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.core.errors import (
    AmountMismatch,
    Forbidden,
    NotFound,
    SignatureMismatch,
    StorefrontError,
    TooManyPending,
    ValidationFailed,
)
from storefront.core.security import CurrentUser
from storefront.core.settings import settings
from storefront.models.payment_transaction import TERMINAL_PAYMENT_STATUSES, PaymentStatus, PaymentTransaction
from storefront.services.cache import TTLCache, scoped_key
from storefront.services.coin_ledger import credit_coins, utcnow
from storefront.services.duitku import DuitkuClient, DuitkuError, callback_signature

logger = logging.getLogger(__name__)

RESULT_CODE_SUCCESS = "00"
STATUS_CODE_SUCCESS = "00"
STATUS_CODE_CANCELED = "02"
MERCHANT_ORDER_PREFIX = "AIDUTP"

_IDEMPOTENCY_CACHE = TTLCache(max_items=20000, ttl_s=3600)


@dataclass(frozen=True)
class CallbackPayload:
    merchant_code: str
    amount: str
    merchant_order_id: str
    result_code: str
    reference: str
    signature: str
    payment_code: str | None = None
    settlement_date: str | None = None
    publisher_order_id: str | None = None
    issuer_code: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CallbackPayload":
        def pick(*keys: str) -> str:
            for key in keys:
                value = data.get(key)
                if value is not None and str(value).strip():
                    return str(value).strip()
            return ""

        return cls(
            merchant_code=pick("merchantCode", "merchant_code"),
            amount=pick("amount"),
            merchant_order_id=pick("merchantOrderId", "merchant_order_id"),
            result_code=pick("resultCode", "result_code"),
            reference=pick("reference"),
            signature=pick("signature"),
            payment_code=pick("paymentCode", "payment_code") or None,
            settlement_date=pick("settlementDate", "settlement_date") or None,
            publisher_order_id=pick("publisherOrderId", "publisher_order_id") or None,
            issuer_code=pick("issuerCode", "issuer_code") or None,
        )


@dataclass(frozen=True)
class CallbackResult:
    merchant_order_id: str
    status: str
    already_processed: bool
    credited: bool


def ledger_reference(merchant_order_id: str) -> str:
    return f"duitku:{merchant_order_id}"


def _api_key() -> str:
    if not settings.duitku_api_key:
        raise StorefrontError("DUITKU_API_KEY is not configured")
    return settings.duitku_api_key


def _parse_amount(raw: str) -> int:
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise ValidationFailed("Invalid amount")
    if value != value.to_integral_value():
        raise AmountMismatch()
    return int(value)


def _is_allowed_ip(client_ips: Iterable[str | None]) -> bool:
    if settings.duitku_sandbox:
        return True
    allowed = settings.duitku_ip_whitelist or set()
    return any(ip and ip.strip() in allowed for ip in client_ips)


def _lock_payment(db: Session, merchant_order_id: str) -> PaymentTransaction | None:
    return (
        db.query(PaymentTransaction)
        .filter(PaymentTransaction.merchant_order_id == merchant_order_id)
        .with_for_update()
        .populate_existing()
        .first()
    )


def _mark_settled(db: Session, txn_id: int, values: dict) -> None:
    # the conditional UPDATE takes the row lock itself; no ledger write here
    try:
        (
            db.query(PaymentTransaction)
            .filter(PaymentTransaction.id == txn_id, PaymentTransaction.status == PaymentStatus.PENDING.value)
            .update(values, synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise


def _settle_locked(db: Session, txn: PaymentTransaction, new_status: str, updates: dict[str, Any]) -> bool:
    """Move a locked pending row to ``new_status`` and commit.

    The status write and the ledger credit commit together. Returns False
    when another request settled the row first, or when the ledger already
    holds this order's credit; in that case the row still leaves pending.
    """
    merchant_order_id = txn.merchant_order_id
    txn_id = txn.id
    values = {PaymentTransaction.status: new_status}
    for key, value in updates.items():
        values[getattr(PaymentTransaction, key)] = value
    try:
        updated = (
            db.query(PaymentTransaction)
            .filter(PaymentTransaction.id == txn_id, PaymentTransaction.status == PaymentStatus.PENDING.value)
            .update(values, synchronize_session=False)
        )
        if updated != 1:
            db.rollback()
            return False
        if new_status == PaymentStatus.SUCCESS.value:
            credit_coins(
                db,
                user_id=txn.user_id,
                amount=int(txn.coin_amount),
                description=f"Top Up via Duitku - {merchant_order_id}",
                reference=ledger_reference(merchant_order_id),
                commit=False,
            )
        db.commit()
    except IntegrityError:
        # the ledger reference is unique, so a concurrent settle already credited
        db.rollback()
        logger.warning("payments.settle.duplicate_credit order=%s", merchant_order_id)
        _mark_settled(db, txn_id, values)
        return False
    except Exception:
        db.rollback()
        raise

    db.refresh(txn)
    logger.info(
        "payments.settle.applied order=%s status=%s coins=%s",
        merchant_order_id,
        new_status,
        txn.coin_amount,
    )
    return True


def handle_callback(
    db: Session,
    payload: Mapping[str, Any],
    client_ips: Iterable[str | None] | None = None,
) -> CallbackResult:
    if client_ips is not None:
        ips = list(client_ips)
        if not _is_allowed_ip(ips):
            logger.warning("security.duitku_callback.ip_rejected ips=%s", ",".join(str(ip) for ip in ips))
            raise Forbidden("Unauthorized")

    data = CallbackPayload.from_mapping(payload)
    missing = [
        name
        for name, value in (
            ("merchantCode", data.merchant_code),
            ("amount", data.amount),
            ("merchantOrderId", data.merchant_order_id),
            ("signature", data.signature),
        )
        if not value
    ]
    if missing:
        logger.info("payments.callback.bad_parameter missing=%s", ",".join(missing))
        raise ValidationFailed("Bad Parameter", missing=missing)

    expected = callback_signature(data.merchant_code, data.amount, data.merchant_order_id, _api_key())
    if not hmac.compare_digest(expected, data.signature.lower()):
        logger.warning(
            "security.duitku_callback.bad_signature order=%s merchant=%s",
            data.merchant_order_id,
            data.merchant_code,
        )
        raise SignatureMismatch()

    try:
        txn = _lock_payment(db, data.merchant_order_id)
        if txn is None:
            logger.info("payments.callback.not_found order=%s", data.merchant_order_id)
            raise NotFound("Transaction not found")
        if _parse_amount(data.amount) != int(txn.amount):
            logger.warning(
                "payments.callback.amount_mismatch order=%s expected=%s received=%s",
                data.merchant_order_id,
                txn.amount,
                data.amount,
            )
            raise AmountMismatch()
    except Exception:
        db.rollback()
        raise

    if txn.status in TERMINAL_PAYMENT_STATUSES:
        order_id, status = txn.merchant_order_id, txn.status
        db.rollback()
        logger.info("payments.callback.already_processed order=%s status=%s", order_id, status)
        return CallbackResult(order_id, status, already_processed=True, credited=False)

    new_status = PaymentStatus.SUCCESS.value if data.result_code == RESULT_CODE_SUCCESS else PaymentStatus.FAILED.value
    applied = _settle_locked(
        db,
        txn,
        new_status,
        {
            "result_code": data.result_code or None,
            "payment_code": data.payment_code,
            "callback_reference": data.reference or None,
            "settlement_date": data.settlement_date,
            "publisher_order_id": data.publisher_order_id,
            "issuer_code": data.issuer_code,
        },
    )
    if not applied:
        db.refresh(txn)
        return CallbackResult(txn.merchant_order_id, txn.status, already_processed=True, credited=False)
    return CallbackResult(
        txn.merchant_order_id,
        txn.status,
        already_processed=False,
        credited=(new_status == PaymentStatus.SUCCESS.value),
    )


def generate_merchant_order_id() -> str:
    alphabet = string.ascii_letters + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(8))
    return f"{MERCHANT_ORDER_PREFIX}{int(time.time())}{suffix}"


def _payment_response(txn: PaymentTransaction) -> dict[str, Any]:
    return {
        "transaction_id": txn.id,
        "merchant_order_id": txn.merchant_order_id,
        "reference": txn.reference,
        "payment_url": txn.payment_url,
        "va_number": txn.va_number,
        "qr_string": txn.qr_string,
        "amount": int(txn.amount),
        "coin_amount": int(txn.coin_amount),
    }


def create_payment(
    db: Session,
    user: CurrentUser,
    coin_amount: int,
    callback_url: str,
    payment_method: str | None = None,
    idempotency_key: str | None = None,
    client: DuitkuClient | None = None,
) -> dict[str, Any]:
    coin_amount = int(coin_amount or 0)
    if coin_amount < 1 or coin_amount > settings.coin_max_per_payment:
        raise ValidationFailed(f"coin_amount must be between 1 and {settings.coin_max_per_payment}")

    method = (payment_method or "SP").strip().upper() or "SP"
    cache_key = None
    key = (idempotency_key or "").strip()
    if key:
        # a reused key with a different request body is a new request
        cache_key = scoped_key("payment_create", user.id, f"{key}\x00{coin_amount}\x00{method}")
        cached = _IDEMPOTENCY_CACHE.get(cache_key)
        if cached is not None:
            logger.info("payments.create.idempotent_replay user=%s", user.id)
            return cached

    since = utcnow() - timedelta(hours=1)
    pending = (
        db.query(PaymentTransaction)
        .filter(
            PaymentTransaction.user_id == user.id,
            PaymentTransaction.status == PaymentStatus.PENDING.value,
            PaymentTransaction.created_at > since,
        )
        .count()
    )
    if pending >= settings.payment_max_pending_per_hour:
        raise TooManyPending("Too many pending transactions. Complete or wait for the previous ones.")

    client = client or DuitkuClient.from_settings()
    merchant_order_id = generate_merchant_order_id()
    amount = coin_amount * int(settings.coin_price)
    email = user.email or ""
    result = client.inquiry(
        merchant_order_id=merchant_order_id,
        amount=amount,
        coin_amount=coin_amount,
        payment_method=method,
        email=email,
        customer_name=(email.split("@", 1)[0] or "User"),
        callback_url=callback_url,
        return_url=settings.duitku_return_url,
    )
    if str(result.get("statusCode") or "") != STATUS_CODE_SUCCESS:
        raise DuitkuError(str(result.get("statusMessage") or "Transaction failed"))

    txn = PaymentTransaction(
        user_id=user.id,
        merchant_code=client.merchant_code,
        merchant_order_id=merchant_order_id,
        reference=result.get("reference"),
        payment_method=method,
        coin_amount=coin_amount,
        amount=amount,
        status=PaymentStatus.PENDING.value,
        payment_url=result.get("paymentUrl"),
        va_number=result.get("vaNumber"),
        qr_string=result.get("qrString"),
    )
    db.add(txn)
    db.commit()
    db.refresh(txn)
    logger.info("payments.create user=%s order=%s coins=%s amount=%s", user.id, merchant_order_id, coin_amount, amount)

    response = _payment_response(txn)
    if cache_key is not None:
        _IDEMPOTENCY_CACHE.set(cache_key, response)
    return response


def check_status(
    db: Session,
    user: CurrentUser,
    merchant_order_id: str,
    client: DuitkuClient | None = None,
) -> tuple[PaymentTransaction, str | None]:
    txn = (
        db.query(PaymentTransaction)
        .filter(PaymentTransaction.merchant_order_id == merchant_order_id, PaymentTransaction.user_id == user.id)
        .first()
    )
    if txn is None:
        raise NotFound("Transaction not found")
    if txn.status == PaymentStatus.SUCCESS.value:
        return txn, STATUS_CODE_SUCCESS
    if txn.status in TERMINAL_PAYMENT_STATUSES:
        return txn, txn.result_code

    client = client or DuitkuClient.from_settings()
    result = client.transaction_status(merchant_order_id)
    api_status = str(result.get("statusCode") or "") or None

    new_status = None
    if api_status == STATUS_CODE_SUCCESS:
        new_status = PaymentStatus.SUCCESS.value
    elif api_status == STATUS_CODE_CANCELED:
        new_status = PaymentStatus.EXPIRED.value

    if new_status is not None:
        try:
            locked = _lock_payment(db, merchant_order_id)
        except Exception:
            db.rollback()
            raise
        if locked is not None and locked.status == PaymentStatus.PENDING.value:
            _settle_locked(db, locked, new_status, {"result_code": api_status})
        else:
            db.rollback()
        db.refresh(txn)
    return txn, api_status


def list_payment_methods(amount: int, client: DuitkuClient | None = None) -> list[dict[str, Any]]:
    amount = int(amount or 0)
    if amount <= 0:
        raise ValidationFailed("amount must be positive")
    client = client or DuitkuClient.from_settings()
    return client.payment_methods(amount)


def list_user_payments(db: Session, user_id: str, limit: int = 20, offset: int = 0) -> tuple[list[PaymentTransaction], int]:
    limit = max(1, min(int(limit or 20), 100))
    offset = max(0, int(offset or 0))
    q = db.query(PaymentTransaction).filter(PaymentTransaction.user_id == user_id)
    total = int(q.count())
    rows = q.order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc()).offset(offset).limit(limit).all()
    return rows, total
