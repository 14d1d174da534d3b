"""Operational endpoints: health, invariant healing, session reset."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.services.health_service import check_and_heal_inspections, get_system_health
from app.services.phone import normalize_phone
from app.services.session_store import SessionStore

router = APIRouter(prefix="/admin", tags=["admin"])


class VersionResponse(BaseModel):
    version: str


class SessionResetResponse(BaseModel):
    phone: str
    deleted: bool


def get_admin_session_store() -> SessionStore:
    return SessionStore()


def _require_admin_token(provided: Optional[str]) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")
    if not provided or provided != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


@router.get("/health")
async def system_health(db: Session = Depends(get_db)):
    """Get system health status."""
    return await get_system_health(db)


@router.post("/heal")
async def heal_system(
    db: Session = Depends(get_db),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    """Check and heal invariant violations."""
    _require_admin_token(x_admin_token)
    return check_and_heal_inspections(db)


@router.delete("/sessions/{phone}", response_model=SessionResetResponse)
async def reset_session(
    phone: str,
    store: SessionStore = Depends(get_admin_session_store),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
) -> SessionResetResponse:
    """Forget an inspector's thread so the next message starts a fresh conversation."""
    _require_admin_token(x_admin_token)
    normalized = normalize_phone(phone)
    if not normalized:
        raise HTTPException(status_code=400, detail="Invalid phone number")
    return SessionResetResponse(phone=normalized, deleted=await store.delete(normalized))


@router.get("/version", response_model=VersionResponse)
async def get_version():
    return VersionResponse(version=settings.app_version)
