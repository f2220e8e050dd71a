from typing import Any, Optional, Protocol

from sqlmodel import Session, select

from ecolend.domain.analytics import AuditLog
from ecolend.domain.base import new_id, utcnow
from ecolend.domain.identity import UserId
from ecolend.models import AuditLogRow


class AuditLogRepository(Protocol):
    """Append-only: there is deliberately no update or delete."""

    def create(
        self,
        action: str,
        entity_type: str,
        performed_by_user_id: UserId,
        entity_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> AuditLog: ...

    def list(self, limit: int = 50, offset: int = 0) -> list[AuditLog]: ...


def _to_entity(row: AuditLogRow) -> AuditLog:
    return AuditLog.create(
        id=row.id,
        action=row.action,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        performed_by_user_id=UserId(row.performed_by_user_id),
        created_at=row.created_at,
        metadata=row.details,
    )


class SqlAuditLogRepository:
    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        action: str,
        entity_type: str,
        performed_by_user_id: UserId,
        entity_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> AuditLog:
        log = AuditLog.create(
            id=new_id(),
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            performed_by_user_id=performed_by_user_id,
            created_at=utcnow(),
            metadata=metadata,
        )
        self.session.add(
            AuditLogRow(
                id=log.id,
                action=log.action,
                entity_type=log.entity_type,
                entity_id=log.entity_id,
                performed_by_user_id=log.performed_by_user_id,
                created_at=log.created_at,
                details=log.metadata,
            )
        )
        self.session.flush()
        return log

    def list(self, limit: int = 50, offset: int = 0) -> list[AuditLog]:
        stmt = (
            select(AuditLogRow)
            .order_by(AuditLogRow.created_at.desc(), AuditLogRow.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return [_to_entity(r) for r in self.session.exec(stmt).all()]
