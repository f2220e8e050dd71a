import math
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import field_validator

from ecolend.domain.base import Entity, require_text
from ecolend.domain.identity import UserId


class ESGMetricType(str, Enum):
    REUSE = "REUSE"
    WASTE_REDUCTION = "WASTE_REDUCTION"
    INCIDENT_RATE = "INCIDENT_RATE"


class MetricUnit(str, Enum):
    COUNT = "COUNT"
    PERCENTAGE = "PERCENTAGE"


class ESGMetric(Entity):
    """Derived, read-only projection of loan history.

    Never stored and never edited: always recomputed from loans.
    """

    id: str
    type: ESGMetricType
    value: int | float
    period: str
    unit: MetricUnit

    @field_validator("value")
    @classmethod
    def _not_nan(cls, v):
        if math.isnan(v):
            raise ValueError("ESGMetric value must be a number")
        return v

    @field_validator("id", "period")
    @classmethod
    def _required(cls, v: str) -> str:
        return require_text(v, "ESGMetric id and period are required")

    @classmethod
    def of(cls, period: str, type: ESGMetricType, value: float, unit: MetricUnit) -> "ESGMetric":
        return cls.create(id=f"{period}-{type.value}", type=type, value=value, period=period, unit=unit)


# audit actions
LOAN_CREATED = "LOAN_CREATED"
LOAN_RETURNED = "LOAN_RETURNED"
LOAN_DAMAGED = "LOAN_DAMAGED"
EQUIPMENT_CREATED = "EQUIPMENT_CREATED"
EQUIPMENT_UPDATED = "EQUIPMENT_UPDATED"
EQUIPMENT_DELETED = "EQUIPMENT_DELETED"
USER_CREATED = "USER_CREATED"
USER_ACTIVATED = "USER_ACTIVATED"
USER_DEACTIVATED = "USER_DEACTIVATED"
ROLE_ASSIGNED = "ROLE_ASSIGNED"
SUPPLIER_CREATED = "SUPPLIER_CREATED"
CONTRACT_CREATED = "CONTRACT_CREATED"
EXPENSE_RECORDED = "EXPENSE_RECORDED"
INVOICE_CREATED = "INVOICE_CREATED"
INVOICE_PAID = "INVOICE_PAID"


class AuditLog(Entity):
    """Immutable record of a critical action. There is no update or delete path."""

    id: str
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    performed_by_user_id: UserId
    created_at: datetime
    metadata: Optional[dict[str, Any]] = None

    @field_validator("id", "action", "entity_type", "performed_by_user_id", mode="before")
    @classmethod
    def _required(cls, v, info):
        return require_text(v, f"AuditLog {info.field_name} is required")
