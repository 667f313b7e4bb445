from __future__ import annotations

import logging
import re

from sqlalchemy.orm import Session

from storefront.core.errors import Forbidden, NotFound, ValidationFailed
from storefront.core.security import CurrentUser
from storefront.models.store import Store

logger = logging.getLogger(__name__)

_SUBDOMAIN_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")


def normalize_subdomain(raw: str | None) -> str:
    value = (raw or "").strip().lower()
    if not _SUBDOMAIN_RE.match(value):
        raise ValidationFailed("Invalid subdomain")
    return value


def create_store(
    db: Session,
    owner: CurrentUser,
    name: str,
    subdomain: str,
    custom_domain: str | None = None,
) -> Store:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Store name is required")
    subdomain = normalize_subdomain(subdomain)
    if db.query(Store.id).filter(Store.subdomain == subdomain).first() is not None:
        raise ValidationFailed("Subdomain is already taken")
    domain = (custom_domain or "").strip().lower() or None
    if domain and db.query(Store.id).filter(Store.custom_domain == domain).first() is not None:
        raise ValidationFailed("Custom domain is already taken")

    store = Store(owner_id=owner.id, name=name, subdomain=subdomain, custom_domain=domain)
    db.add(store)
    db.commit()
    db.refresh(store)
    logger.info("stores.create owner=%s subdomain=%s", owner.id, subdomain)
    return store


def get_store(db: Session, store_id: str) -> Store:
    store = db.query(Store).filter(Store.id == store_id).first()
    if store is None:
        raise NotFound("Store not found")
    return store


def get_owned_store(db: Session, store_id: str, user: CurrentUser) -> Store:
    store = get_store(db, store_id)
    if store.owner_id != user.id and (user.role or "").lower() != "admin":
        raise Forbidden("Unauthorized access to this store")
    return store
