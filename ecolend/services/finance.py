from collections import defaultdict
from datetime import date
from typing import NamedTuple, Optional

import structlog

from ecolend.domain import analytics as audit_actions
from ecolend.domain.base import new_id, utcnow
from ecolend.domain.finance import (
    Contract,
    ContractId,
    ContractStatus,
    Expense,
    ExpenseId,
    Invoice,
    InvoiceId,
    Supplier,
    SupplierId,
    SupplierServiceType,
)
from ecolend.domain.identity import UserId
from ecolend.error import BusinessRuleViolation, NotFound
from ecolend.repositories.audit import AuditLogRepository
from ecolend.repositories.finance import (
    ContractRepository,
    ExpenseRepository,
    InvoiceRepository,
    SupplierRepository,
)

log = structlog.get_logger(__name__)

OVERVIEW_WINDOW = 10


class FinancialOverview(NamedTuple):
    contracts_total_by_currency: dict[str, float]
    expenses_total_by_currency: dict[str, float]
    open_invoices_total_by_currency: dict[str, float]


def _totals(pairs) -> dict[str, float]:
    totals: dict[str, float] = defaultdict(float)
    for currency, amount in pairs:
        totals[currency] += amount
    return dict(totals)


class FinanceService:
    """Suppliers, contracts, expenses and invoices; plain validated CRUD plus an overview."""

    def __init__(
        self,
        suppliers: SupplierRepository,
        contracts: ContractRepository,
        expenses: ExpenseRepository,
        invoices: InvoiceRepository,
        audit: AuditLogRepository,
    ):
        self.suppliers = suppliers
        self.contracts = contracts
        self.expenses = expenses
        self.invoices = invoices
        self.audit = audit

    def _supplier(self, supplier_id: SupplierId) -> Supplier:
        supplier = self.suppliers.find_by_id(supplier_id)
        if supplier is None:
            raise NotFound("Supplier not found")
        return supplier

    def _contract(self, contract_id: ContractId) -> Contract:
        contract = self.contracts.find_by_id(contract_id)
        if contract is None:
            raise NotFound("Contract not found")
        return contract

    def _record(self, action: str, entity_type: str, entity_id: str, performed_by: UserId, **metadata):
        self.audit.create(
            action,
            entity_type,
            performed_by_user_id=performed_by,
            entity_id=entity_id,
            metadata=metadata or None,
        )
        log.info(action.lower(), entity_id=entity_id, **metadata)

    def list_suppliers(self) -> list[Supplier]:
        return self.suppliers.find_all()

    def create_supplier(
        self,
        name: str,
        performed_by: UserId,
        service_type: SupplierServiceType = SupplierServiceType.EQUIPMENT,
        contact_info: Optional[str] = None,
        certifications: Optional[str] = None,
    ) -> Supplier:
        now = utcnow()
        supplier = Supplier.create(
            id=SupplierId(new_id()),
            name=name,
            service_type=service_type,
            contact_info=contact_info,
            certifications=certifications,
            created_at=now,
            updated_at=now,
        )
        self.suppliers.create(supplier)
        self._record(audit_actions.SUPPLIER_CREATED, "supplier", supplier.id, performed_by, name=supplier.name)
        return supplier

    def list_contracts(self, supplier_id: Optional[SupplierId] = None) -> list[Contract]:
        if supplier_id:
            return self.contracts.find_by_supplier(supplier_id)
        return self.contracts.find_all()

    def create_contract(
        self,
        supplier_id: SupplierId,
        title: str,
        start_date: date,
        end_date: date,
        value: float,
        currency: str,
        performed_by: UserId,
        description: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> Contract:
        self._supplier(supplier_id)
        now = utcnow()
        contract = Contract.create(
            id=ContractId(new_id()),
            supplier_id=supplier_id,
            project_id=project_id,
            title=title,
            description=description,
            start_date=start_date,
            end_date=end_date,
            value=value,
            currency=currency,
            status=ContractStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )
        self.contracts.create(contract)
        self._record(audit_actions.CONTRACT_CREATED, "contract", contract.id, performed_by, value=contract.value)
        return contract

    def record_expense(
        self,
        supplier_id: SupplierId,
        category: str,
        amount: float,
        currency: str,
        incurred_at: date,
        performed_by: UserId,
        description: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> Expense:
        self._supplier(supplier_id)
        expense = Expense.create(
            id=ExpenseId(new_id()),
            project_id=project_id,
            supplier_id=supplier_id,
            category=category,
            amount=amount,
            currency=currency,
            incurred_at=incurred_at,
            description=description,
            created_at=utcnow(),
        )
        self.expenses.create(expense)
        self._record(audit_actions.EXPENSE_RECORDED, "expense", expense.id, performed_by, amount=expense.amount)
        return expense

    def list_recent_expenses(self, limit: int = OVERVIEW_WINDOW) -> list[Expense]:
        return self.expenses.find_recent(limit)

    def create_invoice(
        self,
        contract_id: ContractId,
        amount: float,
        currency: str,
        due_date: date,
        document_url: str,
        performed_by: UserId,
    ) -> Invoice:
        contract = self._contract(contract_id)
        invoice = Invoice.create(
            id=InvoiceId(new_id()),
            supplier_id=contract.supplier_id,
            contract_id=contract.id,
            amount=amount,
            currency=currency,
            due_date=due_date,
            document_url=document_url,
            created_at=utcnow(),
        )
        self.invoices.create(invoice)
        self._record(audit_actions.INVOICE_CREATED, "invoice", invoice.id, performed_by, amount=invoice.amount)
        return invoice

    def list_invoices(self, contract_id: ContractId) -> list[Invoice]:
        self._contract(contract_id)
        return self.invoices.find_by_contract(contract_id)

    def mark_invoice_paid(self, invoice_id: InvoiceId, performed_by: UserId) -> Invoice:
        invoice = self.invoices.find_by_id(invoice_id)
        if invoice is None:
            raise NotFound("Invoice not found")
        if not invoice.is_open:
            raise BusinessRuleViolation("Invoice is already paid", code="INVOICE_PAID")
        paid = self.invoices.save(invoice.mark_as_paid())
        self._record(audit_actions.INVOICE_PAID, "invoice", invoice_id, performed_by)
        return paid

    def financial_overview(self) -> FinancialOverview:
        contracts = self.contracts.find_all()
        expenses = self.expenses.find_recent(OVERVIEW_WINDOW)
        invoices = self.invoices.find_recent_open(OVERVIEW_WINDOW)
        return FinancialOverview(
            contracts_total_by_currency=_totals((c.currency, c.value) for c in contracts),
            expenses_total_by_currency=_totals((e.currency, e.amount) for e in expenses),
            open_invoices_total_by_currency=_totals((i.currency, i.amount) for i in invoices if i.is_open),
        )
