from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Iterable

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.core.errors import InsufficientFunds, ValidationFailed
from storefront.models.coin_account import CoinAccount
from storefront.models.coin_transaction import CoinTransaction, CoinTransactionStatus

logger = logging.getLogger(__name__)


SideEffects = Callable[[CoinTransaction], Iterable[Any]]


@dataclass(frozen=True)
class CoinSummary:
    balance: int
    total_credit: int
    total_debit: int


@dataclass(frozen=True)
class SpendResult:
    transaction: CoinTransaction
    balance: int


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _range_start(value: date | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _range_end(value: date | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.max)


def _user_rows(db: Session, user_id: str, start: date | datetime | None, end: date | datetime | None):
    q = db.query(CoinTransaction).filter(CoinTransaction.user_id == user_id)
    lo = _range_start(start)
    hi = _range_end(end)
    if lo is not None:
        q = q.filter(CoinTransaction.created_at >= lo)
    if hi is not None:
        q = q.filter(CoinTransaction.created_at <= hi)
    return q


def get_summary(
    db: Session,
    user_id: str,
    start: date | datetime | None = None,
    end: date | datetime | None = None,
) -> CoinSummary:
    # One aggregate statement, so credits and debits come from the same snapshot.
    q = db.query(
        func.coalesce(func.sum(CoinTransaction.credit_amount), 0),
        func.coalesce(func.sum(CoinTransaction.debit_amount), 0),
    ).filter(
        CoinTransaction.user_id == user_id,
        CoinTransaction.status == CoinTransactionStatus.SUCCESS.value,
    )
    lo = _range_start(start)
    hi = _range_end(end)
    if lo is not None:
        q = q.filter(CoinTransaction.created_at >= lo)
    if hi is not None:
        q = q.filter(CoinTransaction.created_at <= hi)
    credit, debit = q.one()
    credit = int(credit or 0)
    debit = int(debit or 0)
    return CoinSummary(balance=credit - debit, total_credit=credit, total_debit=debit)


def get_balance(
    db: Session,
    user_id: str,
    start: date | datetime | None = None,
    end: date | datetime | None = None,
) -> int:
    return get_summary(db, user_id, start=start, end=end).balance


def list_transactions(
    db: Session,
    user_id: str,
    start: date | datetime | None = None,
    end: date | datetime | None = None,
    search: str | None = None,
    limit: int = 10,
    offset: int = 0,
) -> tuple[list[CoinTransaction], int]:
    limit = max(1, min(int(limit or 10), 100))
    offset = max(0, int(offset or 0))
    q = _user_rows(db, user_id, start, end)
    term = (search or "").strip()
    if term:
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        q = q.filter(CoinTransaction.description.like(f"%{escaped}%", escape="\\"))
    total = int(q.count())
    rows = q.order_by(CoinTransaction.created_at.desc(), CoinTransaction.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def export_transactions_csv(
    db: Session,
    user_id: str,
    start: date | datetime | None = None,
    end: date | datetime | None = None,
) -> str:
    rows = _user_rows(db, user_id, start, end).order_by(CoinTransaction.created_at.desc(), CoinTransaction.id.desc()).all()
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(["No", "Date", "Description", "Credit", "Debit", "Status"])
    for no, row in enumerate(rows, start=1):
        created = row.created_at.strftime("%d/%m/%Y %H:%M") if row.created_at else ""
        writer.writerow([no, created, row.description, int(row.credit_amount or 0), int(row.debit_amount or 0), row.status])
    return buf.getvalue()


def get_or_create_coin_account(db: Session, user_id: str) -> CoinAccount:
    acct = db.query(CoinAccount).filter(CoinAccount.user_id == user_id).first()
    if acct is None:
        acct = CoinAccount(user_id=user_id)
        db.add(acct)
        try:
            db.commit()
        except IntegrityError:
            # created by a concurrent request
            db.rollback()
            return db.query(CoinAccount).filter(CoinAccount.user_id == user_id).one()
        db.refresh(acct)
    return acct


def _lock_coin_account(db: Session, user_id: str) -> CoinAccount:
    get_or_create_coin_account(db, user_id)
    return db.query(CoinAccount).filter(CoinAccount.user_id == user_id).with_for_update().one()


def credit_coins(
    db: Session,
    user_id: str,
    amount: int,
    description: str,
    reference: str | None = None,
    commit: bool = True,
) -> CoinTransaction:
    amount = int(amount)
    if amount <= 0:
        raise ValidationFailed("amount must be positive")
    entry = CoinTransaction(
        user_id=user_id,
        description=description,
        credit_amount=amount,
        debit_amount=0,
        status=CoinTransactionStatus.SUCCESS.value,
        reference=reference,
    )
    db.add(entry)
    if not commit:
        db.flush()
        return entry
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(entry)
    logger.info("coins.credit user=%s amount=%s reference=%s", user_id, amount, reference)
    return entry


def spend_coins(
    db: Session,
    user_id: str,
    amount: int,
    description: str,
    side_effects: SideEffects | None = None,
) -> SpendResult:
    """Debit ``amount`` coins and persist ``side_effects`` in the same transaction.

    ``side_effects`` receives the flushed debit row and returns the ORM
    objects recording what the coins paid for. Either the debit and every
    side-effect row are committed together or nothing is written.
    """
    amount = int(amount)
    if amount <= 0:
        raise ValidationFailed("amount must be positive")

    try:
        _lock_coin_account(db, user_id)
        balance = get_balance(db, user_id)
        if balance < amount:
            raise InsufficientFunds(balance=balance, required=amount)

        entry = CoinTransaction(
            user_id=user_id,
            description=description,
            credit_amount=0,
            debit_amount=amount,
            status=CoinTransactionStatus.SUCCESS.value,
        )
        db.add(entry)
        db.flush()
        if side_effects is not None:
            db.add_all(list(side_effects(entry)))
        new_balance = balance - amount
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(entry)
    logger.info("coins.spend user=%s amount=%s balance=%s", user_id, amount, new_balance)
    return SpendResult(transaction=entry, balance=new_balance)


def adjust_coins(db: Session, user_id: str, delta: int, reason: str | None = None) -> int:
    delta = int(delta or 0)
    if delta == 0:
        raise ValidationFailed("delta must be non-zero")
    description = "Admin adjustment"
    reason = (reason or "").strip()
    if reason:
        description = f"Admin adjustment - {reason}"
    if delta > 0:
        credit_coins(db, user_id, delta, description)
        return get_balance(db, user_id)
    return spend_coins(db, user_id, -delta, description).balance
