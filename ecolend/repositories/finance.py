from typing import Optional, Protocol

from sqlmodel import Session, select

from ecolend.domain.base import row_values
from ecolend.domain.finance import (
    Contract,
    ContractId,
    Expense,
    ExpenseId,
    Invoice,
    InvoiceId,
    InvoiceStatus,
    Supplier,
    SupplierId,
)
from ecolend.models import ContractRow, ExpenseRow, InvoiceRow, SupplierRow


class SupplierRepository(Protocol):
    def create(self, supplier: Supplier) -> Supplier: ...

    def find_by_id(self, supplier_id: SupplierId) -> Optional[Supplier]: ...

    def find_all(self) -> list[Supplier]: ...


class ContractRepository(Protocol):
    def create(self, contract: Contract) -> Contract: ...

    def find_by_id(self, contract_id: ContractId) -> Optional[Contract]: ...

    def find_by_supplier(self, supplier_id: SupplierId) -> list[Contract]: ...

    def find_all(self) -> list[Contract]: ...


class ExpenseRepository(Protocol):
    def create(self, expense: Expense) -> Expense: ...

    def find_by_id(self, expense_id: ExpenseId) -> Optional[Expense]: ...

    def find_recent(self, limit: int) -> list[Expense]: ...


class InvoiceRepository(Protocol):
    def create(self, invoice: Invoice) -> Invoice: ...

    def find_by_id(self, invoice_id: InvoiceId) -> Optional[Invoice]: ...

    def find_by_contract(self, contract_id: ContractId) -> list[Invoice]: ...

    def find_recent_open(self, limit: int) -> list[Invoice]: ...

    def save(self, invoice: Invoice) -> Invoice: ...


class _SqlRepository:
    """Row <-> entity plumbing shared by the finance tables."""

    row_type: type
    entity_type: type

    def __init__(self, session: Session):
        self.session = session

    def _to_entity(self, row):
        return self.entity_type.create(**row.model_dump())

    def _all(self, stmt) -> list:
        return [self._to_entity(r) for r in self.session.exec(stmt).all()]

    def create(self, entity):
        self.session.add(self.row_type(**row_values(entity)))
        self.session.flush()
        return entity

    def find_by_id(self, entity_id: str):
        row = self.session.get(self.row_type, entity_id)
        return self._to_entity(row) if row else None


class SqlSupplierRepository(_SqlRepository):
    row_type = SupplierRow
    entity_type = Supplier

    def find_all(self) -> list[Supplier]:
        return self._all(select(SupplierRow).order_by(SupplierRow.name.asc()))


class SqlContractRepository(_SqlRepository):
    row_type = ContractRow
    entity_type = Contract

    def find_by_supplier(self, supplier_id: SupplierId) -> list[Contract]:
        return self._all(
            select(ContractRow).where(ContractRow.supplier_id == supplier_id).order_by(ContractRow.start_date.desc())
        )

    def find_all(self) -> list[Contract]:
        return self._all(select(ContractRow).order_by(ContractRow.start_date.desc()))


class SqlExpenseRepository(_SqlRepository):
    row_type = ExpenseRow
    entity_type = Expense

    def find_recent(self, limit: int) -> list[Expense]:
        return self._all(
            select(ExpenseRow).order_by(ExpenseRow.incurred_at.desc(), ExpenseRow.created_at.desc()).limit(limit)
        )


class SqlInvoiceRepository(_SqlRepository):
    row_type = InvoiceRow
    entity_type = Invoice

    def find_by_contract(self, contract_id: ContractId) -> list[Invoice]:
        return self._all(
            select(InvoiceRow).where(InvoiceRow.contract_id == contract_id).order_by(InvoiceRow.due_date.asc())
        )

    def find_recent_open(self, limit: int) -> list[Invoice]:
        return self._all(
            select(InvoiceRow)
            .where(InvoiceRow.status != InvoiceStatus.PAID.value)
            .order_by(InvoiceRow.created_at.desc())
            .limit(limit)
        )

    def save(self, invoice: Invoice) -> Invoice:
        row = self.session.get(InvoiceRow, invoice.id)
        if row is None:
            return self.create(invoice)
        for k, v in row_values(invoice, exclude=("id",)).items():
            setattr(row, k, v)
        self.session.add(row)
        self.session.flush()
        return invoice
