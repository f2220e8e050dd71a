from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from ecolend.domain.base import utcnow


class UserRow(SQLModel, table=True):
    __tablename__ = "user"

    id: str = Field(primary_key=True)
    email: str = Field(index=True, unique=True)
    display_name: str
    kind: str = Field(default="employee")
    is_active: bool = Field(default=True)
    password_hash: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class UserRoleRow(SQLModel, table=True):
    # 角色单独一张表，绝不挂在 user 上
    __tablename__ = "user_role"

    user_id: str = Field(foreign_key="user.id", primary_key=True)
    role_name: str = Field(primary_key=True)
    assigned_at: datetime = Field(default_factory=utcnow)


class EquipmentRow(SQLModel, table=True):
    __tablename__ = "equipment"

    id: str = Field(primary_key=True)
    name: str = Field(index=True)
    category: str = Field(index=True)
    certification: Optional[str] = None
    status: str = Field(default="AVAILABLE", index=True)
    total_quantity: int = Field(default=0)
    quantity_in_use: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class LoanRow(SQLModel, table=True):
    __tablename__ = "loan"

    id: str = Field(primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    equipment_id: str = Field(foreign_key="equipment.id", index=True)
    quantity: int
    status: str = Field(default="ACTIVE", index=True)  # ACTIVE / RETURNED / DAMAGED
    created_at: datetime = Field(default_factory=utcnow, index=True)
    returned_at: Optional[datetime] = None
    damage_comment: Optional[str] = None


class AuditLogRow(SQLModel, table=True):
    __tablename__ = "audit_log"

    id: str = Field(primary_key=True)
    action: str = Field(index=True)
    entity_type: str = Field(index=True)
    entity_id: Optional[str] = None
    performed_by_user_id: str = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    # "metadata" 是 SQLAlchemy 保留名，属性换个名字，列名不变
    details: Optional[dict[str, Any]] = Field(default=None, sa_column=Column("metadata", JSON))


class SupplierRow(SQLModel, table=True):
    __tablename__ = "supplier"

    id: str = Field(primary_key=True)
    name: str = Field(index=True)
    service_type: str = Field(default="EQUIPMENT")
    contact_info: Optional[str] = None
    certifications: Optional[str] = None
    status: str = Field(default="ACTIVE")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ContractRow(SQLModel, table=True):
    __tablename__ = "contract"

    id: str = Field(primary_key=True)
    supplier_id: str = Field(foreign_key="supplier.id", index=True)
    project_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    start_date: date
    end_date: date
    value: float
    currency: str
    status: str = Field(default="ACTIVE")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ExpenseRow(SQLModel, table=True):
    __tablename__ = "expense"

    id: str = Field(primary_key=True)
    project_id: Optional[str] = None
    supplier_id: str = Field(foreign_key="supplier.id", index=True)
    category: str
    amount: float
    currency: str
    incurred_at: date
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)


class InvoiceRow(SQLModel, table=True):
    __tablename__ = "invoice"

    id: str = Field(primary_key=True)
    supplier_id: str = Field(foreign_key="supplier.id", index=True)
    contract_id: str = Field(foreign_key="contract.id", index=True)
    amount: float
    currency: str
    due_date: date
    status: str = Field(default="PENDING", index=True)
    document_url: str
    created_at: datetime = Field(default_factory=utcnow, index=True)
