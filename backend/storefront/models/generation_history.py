from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from storefront.core.database import Base


class GenerationHistory(Base):
    __tablename__ = "generation_histories"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    description = Column(String, nullable=False)
    result_url = Column(String, nullable=True)
    coin_used = Column(Integer, nullable=False)
    coin_transaction_id = Column(Integer, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
