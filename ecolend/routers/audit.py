from fastapi import APIRouter, Depends, Query

from ecolend.deps import get_analytics_service, require_permission
from ecolend.domain.identity import Permission, User
from ecolend.schemas import AuditLogListResponse
from ecolend.services.analytics import AnalyticsService

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("", response_model=AuditLogListResponse)
def list_audit_logs(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _user: User = Depends(require_permission(Permission.MANAGE_COMPLIANCE)),
    service: AnalyticsService = Depends(get_analytics_service),
):
    items = service.list_audit_logs(limit=limit, offset=offset)
    return {"items": items, "limit": limit, "offset": offset}
