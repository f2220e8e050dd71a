from datetime import date, datetime
from enum import Enum
from typing import NewType, Optional

from pydantic import field_validator, model_validator

from ecolend.domain.base import Entity, optional_text, require_text, utcnow

SupplierId = NewType("SupplierId", str)
ContractId = NewType("ContractId", str)
ExpenseId = NewType("ExpenseId", str)
InvoiceId = NewType("InvoiceId", str)


class SupplierServiceType(str, Enum):
    EQUIPMENT = "EQUIPMENT"
    MAINTENANCE = "MAINTENANCE"
    WASTE_DISPOSAL = "WASTE_DISPOSAL"
    CONSULTING = "CONSULTING"


class SupplierStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class ContractStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    TERMINATED = "TERMINATED"


class InvoiceStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


def _currency(v):
    return require_text(v, "Currency is required.").upper()


def _past(day: date) -> bool:
    # 当天 23:59:59 之前都不算过期
    if isinstance(day, datetime):
        day = day.date()
    return day < utcnow().date()


class Supplier(Entity):
    id: SupplierId
    name: str
    service_type: SupplierServiceType = SupplierServiceType.EQUIPMENT
    contact_info: Optional[str] = None
    certifications: Optional[str] = None
    status: SupplierStatus = SupplierStatus.ACTIVE
    created_at: datetime
    updated_at: datetime

    @field_validator("name", mode="before")
    @classmethod
    def _check_name(cls, v):
        return require_text(v, "Supplier name is required.")

    @field_validator("contact_info", "certifications", mode="before")
    @classmethod
    def _trim(cls, v):
        return optional_text(v)


class Contract(Entity):
    """Supplier contract. Status is re-derived from the end date on every build."""

    id: ContractId
    supplier_id: SupplierId
    project_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    start_date: date
    end_date: date
    value: float
    currency: str
    status: ContractStatus = ContractStatus.ACTIVE
    created_at: datetime
    updated_at: datetime

    @field_validator("title", mode="before")
    @classmethod
    def _check_title(cls, v):
        return require_text(v, "Contract title is required.")

    @field_validator("description", mode="before")
    @classmethod
    def _trim(cls, v):
        return optional_text(v)

    @field_validator("currency", mode="before")
    @classmethod
    def _check_currency(cls, v):
        return _currency(v)

    @model_validator(mode="before")
    @classmethod
    def _normalize_status(cls, data):
        if isinstance(data, dict) and data.get("status") != ContractStatus.TERMINATED:
            end = data.get("end_date")
            if isinstance(end, str):
                end = date.fromisoformat(end)
            if isinstance(end, date):
                data = {**data, "status": ContractStatus.EXPIRED if _past(end) else ContractStatus.ACTIVE}
        return data

    @model_validator(mode="after")
    def _check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("Contract end date cannot be before start date.")
        if self.value < 0:
            raise ValueError("Contract value cannot be negative.")
        return self


class Expense(Entity):
    id: ExpenseId
    project_id: Optional[str] = None
    supplier_id: SupplierId
    category: str
    amount: float
    currency: str
    incurred_at: date
    description: Optional[str] = None
    created_at: datetime

    @field_validator("category", mode="before")
    @classmethod
    def _check_category(cls, v):
        return require_text(v, "Expense category is required.")

    @field_validator("currency", mode="before")
    @classmethod
    def _check_currency(cls, v):
        return _currency(v)

    @field_validator("description", mode="before")
    @classmethod
    def _trim(cls, v):
        return optional_text(v)

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Expense amount cannot be negative.")
        return v


class Invoice(Entity):
    """Supplier invoice; unpaid invoices turn OVERDUE after the due date."""

    id: InvoiceId
    supplier_id: SupplierId
    contract_id: ContractId
    amount: float
    currency: str
    due_date: date
    status: InvoiceStatus = InvoiceStatus.PENDING
    document_url: str
    created_at: datetime

    @field_validator("currency", mode="before")
    @classmethod
    def _check_currency(cls, v):
        return _currency(v)

    @field_validator("document_url", mode="before")
    @classmethod
    def _check_document(cls, v):
        return require_text(v, "Invoice document URL is required.")

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Invoice amount cannot be negative.")
        return v

    @model_validator(mode="before")
    @classmethod
    def _normalize_status(cls, data):
        if isinstance(data, dict) and data.get("status") != InvoiceStatus.PAID:
            due = data.get("due_date")
            if isinstance(due, str):
                due = date.fromisoformat(due)
            if isinstance(due, date):
                data = {**data, "status": InvoiceStatus.OVERDUE if _past(due) else InvoiceStatus.PENDING}
        return data

    @property
    def is_open(self) -> bool:
        return self.status != InvoiceStatus.PAID

    def mark_as_paid(self) -> "Invoice":
        return self._replace(status=InvoiceStatus.PAID)
