from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from storefront.core.database import Base


class CoinAccount(Base):
    """Per-user lock row taken before every spend. The ledger holds the balance."""

    __tablename__ = "coin_accounts"

    user_id = Column(String, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
