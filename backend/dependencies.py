"""
Shared FastAPI dependencies.

Provider identity comes from the X-Provider-Name / X-Provider-Id request
headers set by the fronting auth layer, falling back to the configured
default provider. It is passed explicitly into every review and message
write.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from config import DEFAULT_PROVIDER_ID, DEFAULT_PROVIDER_NAME
from database import get_db
from storage import EntityStore


@dataclass(frozen=True)
class ProviderIdentity:
    provider_id: str
    name: str


def get_current_provider(
    x_provider_id: Optional[str] = Header(None),
    x_provider_name: Optional[str] = Header(None),
) -> ProviderIdentity:
    return ProviderIdentity(
        provider_id=(x_provider_id or "").strip() or DEFAULT_PROVIDER_ID,
        name=(x_provider_name or "").strip() or DEFAULT_PROVIDER_NAME,
    )


def get_store(db: Session = Depends(get_db)) -> EntityStore:
    return EntityStore(db)
