from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.core.errors import BelowMinimumPurchase, NotFound, ValidationFailed, VoucherInvalid
from storefront.models.voucher import DiscountKind, DiscountType, Voucher, VoucherStatus

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

# Fields a store owner may write; quota_used only moves through redeem_voucher.
WRITABLE_FIELDS = (
    "code",
    "description",
    "quota",
    "start_date",
    "end_date",
    "status",
    "discount_kind",
    "discount_type",
    "discount_value",
    "min_purchase",
    "max_discount",
)


@dataclass(frozen=True)
class VoucherQuote:
    discount: Decimal
    kind: str
    discount_type: str
    voucher: dict[str, Any]


def _money(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _is_set(value: Any) -> bool:
    return value is not None and _money(value) > 0


def voucher_snapshot(voucher: Voucher) -> dict[str, Any]:
    return {
        "id": voucher.id,
        "code": voucher.code,
        "discount_kind": voucher.discount_kind,
        "discount_type": voucher.discount_type,
        "discount_value": _money(voucher.discount_value),
        "min_purchase": (_money(voucher.min_purchase) if voucher.min_purchase is not None else None),
        "max_discount": (_money(voucher.max_discount) if voucher.max_discount is not None else None),
    }


def is_voucher_valid(voucher: Voucher, today: date | None = None) -> bool:
    return invalid_reason(voucher, today) is None


def invalid_reason(voucher: Voucher, today: date | None = None) -> str | None:
    today = today or date.today()
    if voucher.status != VoucherStatus.ACTIVE.value:
        return "Voucher is not active"
    if voucher.start_date > today:
        return f"Voucher is not valid until {voucher.start_date.strftime('%d/%m/%Y')}"
    if voucher.end_date < today:
        return f"Voucher expired on {voucher.end_date.strftime('%d/%m/%Y')}"
    if int(voucher.quota_used or 0) >= int(voucher.quota or 0):
        return "Voucher quota has been used up"
    return None


def calculate_discount(voucher: Voucher, subtotal: Decimal | int | float) -> Decimal:
    value = _money(voucher.discount_value)
    if voucher.discount_kind == DiscountKind.SHIPPING.value:
        discount = value
    elif voucher.discount_type == DiscountType.PERCENT.value:
        discount = _money(subtotal) * value / HUNDRED
        if _is_set(voucher.max_discount) and discount > _money(voucher.max_discount):
            discount = _money(voucher.max_discount)
    else:
        discount = value
    return discount.quantize(CENT, rounding=ROUND_HALF_UP)


def _check_minimum_purchase(voucher: Voucher, subtotal: Decimal) -> None:
    if _is_set(voucher.min_purchase) and subtotal < _money(voucher.min_purchase):
        minimum = _money(voucher.min_purchase)
        raise BelowMinimumPurchase(f"Minimum purchase is {minimum:,.0f}")


def _normalize_code(code: str | None) -> str:
    normalized = (code or "").strip().upper()
    if not normalized:
        raise ValidationFailed("Voucher code is required")
    return normalized


def find_voucher_by_code(db: Session, store_id: str, code: str) -> Voucher | None:
    return (
        db.query(Voucher)
        .filter(Voucher.store_id == store_id, func.upper(Voucher.code) == _normalize_code(code))
        .first()
    )


def validate_voucher(
    db: Session,
    store_id: str,
    code: str,
    subtotal: Decimal | int | float,
    today: date | None = None,
) -> VoucherQuote:
    subtotal = _money(subtotal)
    if subtotal < 0:
        raise ValidationFailed("subtotal must be >= 0")

    voucher = find_voucher_by_code(db, store_id, code)
    if voucher is None:
        raise NotFound("Voucher code not found")

    reason = invalid_reason(voucher, today)
    if reason is not None:
        logger.info("vouchers.validate.rejected store=%s code=%s reason=%s", store_id, voucher.code, reason)
        raise VoucherInvalid(reason)
    _check_minimum_purchase(voucher, subtotal)

    return VoucherQuote(
        discount=calculate_discount(voucher, subtotal),
        kind=voucher.discount_kind,
        discount_type=voucher.discount_type,
        voucher=voucher_snapshot(voucher),
    )


def redeem_voucher(
    db: Session,
    voucher_id: str,
    store_id: str,
    subtotal: Decimal | int | float,
    today: date | None = None,
) -> VoucherQuote:
    """Re-validate at checkout and consume one unit of quota atomically."""
    subtotal = _money(subtotal)
    try:
        voucher = (
            db.query(Voucher)
            .filter(Voucher.id == voucher_id, Voucher.store_id == store_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if voucher is None:
            raise NotFound("Voucher not found")
        reason = invalid_reason(voucher, today)
        if reason is not None:
            raise VoucherInvalid(reason)
        _check_minimum_purchase(voucher, subtotal)
        discount = calculate_discount(voucher, subtotal)

        updated = (
            db.query(Voucher)
            .filter(Voucher.id == voucher.id, Voucher.quota_used < Voucher.quota)
            .update({Voucher.quota_used: Voucher.quota_used + 1}, synchronize_session=False)
        )
        if updated != 1:
            raise VoucherInvalid("Voucher quota has been used up")
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(voucher)
    logger.info("vouchers.redeem store=%s code=%s quota_used=%s", store_id, voucher.code, voucher.quota_used)
    return VoucherQuote(
        discount=discount,
        kind=voucher.discount_kind,
        discount_type=voucher.discount_type,
        voucher=voucher_snapshot(voucher),
    )


def list_vouchers(
    db: Session,
    store_id: str,
    search: str | None = None,
    limit: int = 10,
    offset: int = 0,
) -> tuple[list[Voucher], int]:
    limit = max(1, min(int(limit or 10), 100))
    offset = max(0, int(offset or 0))
    q = db.query(Voucher).filter(Voucher.store_id == store_id)
    term = (search or "").strip()
    if term:
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        q = q.filter(
            or_(
                Voucher.code.like(pattern, escape="\\"),
                Voucher.description.like(pattern, escape="\\"),
                Voucher.discount_kind.like(pattern, escape="\\"),
            )
        )
    total = int(q.count())
    rows = q.order_by(Voucher.created_at.desc(), Voucher.code.asc()).offset(offset).limit(limit).all()
    return rows, total


def get_voucher(db: Session, store_id: str, voucher_id: str) -> Voucher:
    voucher = db.query(Voucher).filter(Voucher.id == voucher_id, Voucher.store_id == store_id).first()
    if voucher is None:
        raise NotFound("Voucher not found")
    return voucher


def _check_voucher_rules(db: Session, store_id: str, data: dict[str, Any], exclude_id: str | None = None) -> None:
    if data["end_date"] <= data["start_date"]:
        raise ValidationFailed("end_date must be after start_date")
    if data["discount_type"] == DiscountType.PERCENT.value and _money(data["discount_value"]) > HUNDRED:
        raise ValidationFailed("Percentage discount cannot exceed 100%")
    q = db.query(Voucher.id).filter(Voucher.store_id == store_id, func.upper(Voucher.code) == _normalize_code(data["code"]))
    if exclude_id is not None:
        q = q.filter(Voucher.id != exclude_id)
    if q.first() is not None:
        raise ValidationFailed("Voucher code is already used in this store")


def _commit_voucher(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        # uq_vouchers_store_code, hit by a concurrent write of the same code
        db.rollback()
        raise ValidationFailed("Voucher code is already used in this store")


def create_voucher(db: Session, store_id: str, data: dict[str, Any]) -> Voucher:
    data = {k: data[k] for k in WRITABLE_FIELDS if k in data}
    data["code"] = (data.get("code") or "").strip()
    _check_voucher_rules(db, store_id, data)
    voucher = Voucher(store_id=store_id, quota_used=0, **data)
    db.add(voucher)
    _commit_voucher(db)
    db.refresh(voucher)
    logger.info("vouchers.create store=%s code=%s", store_id, voucher.code)
    return voucher


def update_voucher(db: Session, store_id: str, voucher_id: str, data: dict[str, Any]) -> Voucher:
    voucher = get_voucher(db, store_id, voucher_id)
    data = {k: data[k] for k in WRITABLE_FIELDS if k in data}
    data["code"] = (data.get("code") or "").strip()
    _check_voucher_rules(db, store_id, data, exclude_id=voucher.id)
    if "quota" in data and int(data["quota"]) < int(voucher.quota_used or 0):
        raise ValidationFailed("quota cannot be lower than the quota already used")
    for key, value in data.items():
        setattr(voucher, key, value)
    _commit_voucher(db)
    db.refresh(voucher)
    return voucher


def delete_voucher(db: Session, store_id: str, voucher_id: str) -> None:
    voucher = get_voucher(db, store_id, voucher_id)
    db.delete(voucher)
    db.commit()
    logger.info("vouchers.delete store=%s code=%s", store_id, voucher.code)
