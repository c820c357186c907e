"""FastAPI dependency injection — auth guards, record store and service wiring."""
import os
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from opsdesk.db import get_db
from opsdesk.models.orm_models import User, Role
from opsdesk.services.kpi_service import KPIService
from opsdesk.services.record_store import RecordStore
from opsdesk.services.report_service import DailyReportService
from opsdesk.services.sales_hook import SalesLeadDemoHook
from opsdesk.services.sql_record_store import SqlRecordStore
from opsdesk.services.task_service import TaskService

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "changethis_use_a_real_secret_in_production_64chars")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Roles allowed to read and act on other people's records
SUPERVISOR_ROLES = ("Admin", "Manager")

security = HTTPBearer(auto_error=False)


@dataclass
class Actor:
    """The authenticated caller, flattened for route handlers."""
    user_id: str
    role: str
    tenant_id: Optional[str] = None
    designation: Optional[str] = None
    full_name: str = ""

    @property
    def is_supervisor(self) -> bool:
        return self.role in SUPERVISOR_ROLES


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = jwt.decode(credentials.credentials, SECRET_KEY, algorithms=[ALGORITHM])
        user_id: str = payload.get("sub")
        if not user_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    return user


async def _role_name(db: AsyncSession, role_id: Optional[int]) -> Optional[str]:
    if not role_id:
        return None
    result = await db.execute(select(Role).where(Role.id == role_id))
    role = result.scalar_one_or_none()
    return role.name if role else None


async def get_current_actor(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    return Actor(
        user_id=current_user.id,
        role=await _role_name(db, current_user.role_id) or "Member",
        tenant_id=current_user.tenant_id,
        designation=current_user.designation,
        full_name=current_user.full_name or "",
    )


def resolve_subject(actor: Actor, user_id: Optional[str]) -> str:
    """
    Whose records a request addresses. Members may only address themselves;
    supervisors may name any user. Reads are additionally scoped to the
    caller's tenant, so naming someone outside it yields nothing.
    """
    if not user_id or user_id == actor.user_id:
        return actor.user_id
    if not actor.is_supervisor:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to access another user's records",
        )
    return user_id


def get_tenant_id(actor: Actor = Depends(get_current_actor)) -> str:
    """The caller's tenant; every read is filtered to it."""
    if not actor.tenant_id:
        raise HTTPException(status_code=400, detail="User has no tenant assigned")
    return actor.tenant_id


# ── Record store + services ──────────────────────────────────────────────────

def get_record_store(db: AsyncSession = Depends(get_db)) -> RecordStore:
    return SqlRecordStore(db)


def get_report_service(store: RecordStore = Depends(get_record_store)) -> DailyReportService:
    return DailyReportService(store, demo_hook=SalesLeadDemoHook(store))


def get_task_service(store: RecordStore = Depends(get_record_store)) -> TaskService:
    return TaskService(store)


def get_kpi_service(store: RecordStore = Depends(get_record_store)) -> KPIService:
    return KPIService(store)
