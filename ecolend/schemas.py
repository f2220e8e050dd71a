from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from ecolend.domain.analytics import ESGMetricType, MetricUnit
from ecolend.domain.equipment import EquipmentStatus
from ecolend.domain.finance import (
    ContractStatus,
    InvoiceStatus,
    SupplierServiceType,
    SupplierStatus,
)
from ecolend.domain.identity import Permission, RoleName, UserKind
from ecolend.domain.loan import LoanStatus
from ecolend.services.esg import Granularity


# --- auth / users ---

class UserCreate(BaseModel):
    email: str
    display_name: str
    password: str = Field(..., min_length=1, max_length=128)


class AdminUserCreate(BaseModel):
    email: str
    display_name: str
    kind: UserKind = "employee"
    password: Optional[str] = Field(None, min_length=1, max_length=128)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserRead(BaseModel):
    id: str
    email: str
    display_name: str
    kind: UserKind
    is_active: bool


class RoleRead(BaseModel):
    name: RoleName
    permissions: list[Permission]


class RoleAssign(BaseModel):
    role: RoleName


class MeRead(BaseModel):
    user: UserRead
    roles: list[RoleRead]
    permissions: list[Permission]


# --- equipment ---

class EquipmentCreate(BaseModel):
    name: str
    category: str
    certification: Optional[str] = None
    status: EquipmentStatus = EquipmentStatus.AVAILABLE
    total_quantity: int = 0


class EquipmentUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    certification: Optional[str] = None
    status: Optional[EquipmentStatus] = None
    total_quantity: Optional[int] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"status": "MAINTENANCE"},
                {"total_quantity": 12, "certification": "CE EN 397"},
            ]
        }
    }


class EquipmentRead(BaseModel):
    id: str
    name: str
    category: str
    certification: Optional[str] = None
    status: EquipmentStatus
    total_quantity: int
    quantity_in_use: int
    quantity_available: int
    created_at: datetime
    updated_at: datetime


# --- loans ---

class LoanCreate(BaseModel):
    equipment_id: str
    quantity: int = Field(1, description="借出件数（>0）")


class LoanDamageReport(BaseModel):
    damage_comment: str


class LoanRead(BaseModel):
    id: str
    user_id: str
    equipment_id: str
    quantity: int
    status: LoanStatus
    created_at: datetime
    returned_at: Optional[datetime] = None
    damage_comment: Optional[str] = None


# --- analytics ---

class MetricRead(BaseModel):
    id: str
    type: ESGMetricType
    value: float
    period: str
    unit: MetricUnit


class MetricListResponse(BaseModel):
    items: list[MetricRead]
    granularity: Granularity
    start: datetime
    end: datetime


class AuditLogRead(BaseModel):
    id: str
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    performed_by_user_id: str
    created_at: datetime
    metadata: Optional[dict[str, Any]] = None


class AuditLogListResponse(BaseModel):
    items: list[AuditLogRead]
    limit: int
    offset: int


# --- finance ---

class SupplierCreate(BaseModel):
    name: str
    service_type: SupplierServiceType = SupplierServiceType.EQUIPMENT
    contact_info: Optional[str] = None
    certifications: Optional[str] = None


class SupplierRead(BaseModel):
    id: str
    name: str
    service_type: SupplierServiceType
    contact_info: Optional[str] = None
    certifications: Optional[str] = None
    status: SupplierStatus
    created_at: datetime
    updated_at: datetime


class ContractCreate(BaseModel):
    supplier_id: str
    title: str
    start_date: date
    end_date: date
    value: float
    currency: str = "EUR"
    description: Optional[str] = None
    project_id: Optional[str] = None


class ContractRead(BaseModel):
    id: str
    supplier_id: str
    project_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    start_date: date
    end_date: date
    value: float
    currency: str
    status: ContractStatus
    created_at: datetime
    updated_at: datetime


class ExpenseCreate(BaseModel):
    supplier_id: str
    category: str
    amount: float
    currency: str = "EUR"
    incurred_at: date
    description: Optional[str] = None
    project_id: Optional[str] = None


class ExpenseRead(BaseModel):
    id: str
    project_id: Optional[str] = None
    supplier_id: str
    category: str
    amount: float
    currency: str
    incurred_at: date
    description: Optional[str] = None
    created_at: datetime


class InvoiceCreate(BaseModel):
    contract_id: str
    amount: float
    currency: str = "EUR"
    due_date: date
    document_url: str


class InvoiceRead(BaseModel):
    id: str
    supplier_id: str
    contract_id: str
    amount: float
    currency: str
    due_date: date
    status: InvoiceStatus
    document_url: str
    created_at: datetime


class FinancialOverviewRead(BaseModel):
    contracts_total_by_currency: dict[str, float]
    expenses_total_by_currency: dict[str, float]
    open_invoices_total_by_currency: dict[str, float]
