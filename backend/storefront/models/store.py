from uuid import uuid4

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from storefront.core.database import Base


class Store(Base):
    __tablename__ = "stores"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid4()))
    owner_id = Column(String, index=True, nullable=False)
    name = Column(String, nullable=False)
    subdomain = Column(String, unique=True, index=True, nullable=False)
    custom_domain = Column(String, unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
