# rollcall/backend/api/dependencies.py
from functools import lru_cache

from fastapi import Request, Depends
import redis.asyncio as redis
import asyncpg

from ..config.config import settings
from ..db.redis_client import RedisClient
from ..db.db_client import AsyncPostgresClient
from ..modules.attendance_aggregator import OnLeavePolicy
from ..modules.clock import Clock
from ..services.attendance_service import AttendanceService
from ..services.audit import AuditTrail
from ..services.batch_service import BatchService
from ..services.device_binding import DeviceBindingStore
from ..services.leave_service import LeaveOverlayResolver, LeaveService
from ..services.organization_service import OrganizationService
from ..services.report_service import ReportService
from ..services.session_service import SessionService


def get_redis_pool(request: Request) -> redis.ConnectionPool:
    """
    Provides the Redis connection pool created at application startup.
    """
    return request.app.state.redis_pool

def get_postgres_pool(request: Request) -> asyncpg.Pool:
    """
    Provides the PostgreSQL connection pool created at application startup.
    """
    return request.app.state.postgres_pool


def get_redis_client(redis_pool: redis.ConnectionPool = Depends(get_redis_pool)) -> RedisClient:
    return RedisClient(pool=redis_pool)

def get_db_client(postgres_pool: asyncpg.Pool = Depends(get_postgres_pool)) -> AsyncPostgresClient:
    return AsyncPostgresClient(pool=postgres_pool)

@lru_cache
def get_clock() -> Clock:
    return Clock(settings.ORGANIZATION_TIMEZONE)


def get_organization_service(db_client: AsyncPostgresClient = Depends(get_db_client)) -> OrganizationService:
    return OrganizationService(db_client=db_client, default_late_grace_minutes=settings.DEFAULT_LATE_GRACE_MINUTES)

def get_audit_trail(db_client: AsyncPostgresClient = Depends(get_db_client)) -> AuditTrail:
    return AuditTrail(db_client=db_client)

def get_device_store(
    db_client: AsyncPostgresClient = Depends(get_db_client),
    audit: AuditTrail = Depends(get_audit_trail)
) -> DeviceBindingStore:
    return DeviceBindingStore(db_client=db_client, audit=audit)


def get_attendance_service(
    db_client: AsyncPostgresClient = Depends(get_db_client),
    device_store: DeviceBindingStore = Depends(get_device_store),
    organization_service: OrganizationService = Depends(get_organization_service),
    audit: AuditTrail = Depends(get_audit_trail),
    clock: Clock = Depends(get_clock)
) -> AttendanceService:
    """
    Builds a fresh AttendanceService for each request.
    The clients wrap the pools shared across the application.
    """
    return AttendanceService(
        db_client=db_client,
        device_store=device_store,
        leave_resolver=LeaveOverlayResolver(db_client=db_client),
        organization_service=organization_service,
        clock=clock,
        lookahead_minutes=settings.SCAN_LOOKAHEAD_MINUTES,
        audit=audit,
    )

def get_leave_service(
    db_client: AsyncPostgresClient = Depends(get_db_client),
    audit: AuditTrail = Depends(get_audit_trail)
) -> LeaveService:
    return LeaveService(db_client=db_client, audit=audit)

def get_report_service(
    db_client: AsyncPostgresClient = Depends(get_db_client),
    clock: Clock = Depends(get_clock)
) -> ReportService:
    return ReportService(db_client=db_client, clock=clock, policy=OnLeavePolicy(settings.ON_LEAVE_POLICY))

def get_session_service(
    db_client: AsyncPostgresClient = Depends(get_db_client),
    organization_service: OrganizationService = Depends(get_organization_service),
    audit: AuditTrail = Depends(get_audit_trail),
    clock: Clock = Depends(get_clock)
) -> SessionService:
    return SessionService(db_client=db_client, organization_service=organization_service, clock=clock, audit=audit)

def get_batch_service(db_client: AsyncPostgresClient = Depends(get_db_client)) -> BatchService:
    return BatchService(db_client=db_client)
