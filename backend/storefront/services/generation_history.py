from __future__ import annotations

from sqlalchemy.orm import Session

from storefront.core.errors import NotFound, ValidationFailed
from storefront.core.settings import settings
from storefront.models.coin_transaction import CoinTransaction
from storefront.models.generation_history import GenerationHistory
from storefront.services.coin_ledger import get_balance, spend_coins


def check_coin(db: Session, user_id: str, required: int | None = None) -> dict:
    required = int(required if required is not None else settings.ai_generation_coin_cost)
    current = get_balance(db, user_id)
    return {"current_coin": current, "required_coin": required, "has_enough": current >= required}


def record_generation(
    db: Session,
    user_id: str,
    description: str,
    result_url: str | None = None,
    coin_used: int | None = None,
) -> tuple[GenerationHistory, int]:
    description = (description or "").strip()
    if not description:
        raise ValidationFailed("description is required")
    coin_used = int(coin_used if coin_used is not None else settings.ai_generation_coin_cost)

    recorded: list[GenerationHistory] = []

    def _history(debit: CoinTransaction) -> list[GenerationHistory]:
        row = GenerationHistory(
            user_id=user_id,
            description=description,
            result_url=result_url,
            coin_used=coin_used,
            coin_transaction_id=debit.id,
        )
        recorded.append(row)
        return [row]

    result = spend_coins(db, user_id, coin_used, description, side_effects=_history)
    history = recorded[0]
    db.refresh(history)
    return history, result.balance


def list_history(db: Session, user_id: str, limit: int = 10, offset: int = 0) -> tuple[list[GenerationHistory], int]:
    limit = max(1, min(int(limit or 10), 100))
    offset = max(0, int(offset or 0))
    q = db.query(GenerationHistory).filter(GenerationHistory.user_id == user_id)
    total = int(q.count())
    rows = q.order_by(GenerationHistory.created_at.desc(), GenerationHistory.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def delete_history(db: Session, user_id: str, history_id: int) -> None:
    # the ledger debit stays; only the history entry goes
    row = (
        db.query(GenerationHistory)
        .filter(GenerationHistory.id == history_id, GenerationHistory.user_id == user_id)
        .first()
    )
    if row is None:
        raise NotFound("History not found")
    db.delete(row)
    db.commit()
