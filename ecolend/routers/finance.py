from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from ecolend.db import get_session
from ecolend.deps import get_finance_service, require_permission
from ecolend.domain.identity import Permission, User
from ecolend.schemas import (
    ContractCreate,
    ContractRead,
    ExpenseCreate,
    ExpenseRead,
    FinancialOverviewRead,
    InvoiceCreate,
    InvoiceRead,
    SupplierCreate,
    SupplierRead,
)
from ecolend.services.finance import FinanceService

router = APIRouter(prefix="/finance", tags=["finance"])

view_data = require_permission(Permission.VIEW_DATA)
edit_data = require_permission(Permission.EDIT_DATA)


@router.get("/suppliers", response_model=list[SupplierRead])
def list_suppliers(
    _user: User = Depends(view_data),
    service: FinanceService = Depends(get_finance_service),
):
    return service.list_suppliers()


@router.post("/suppliers", response_model=SupplierRead)
def create_supplier(
    data: SupplierCreate,
    session: Session = Depends(get_session),
    user: User = Depends(edit_data),
    service: FinanceService = Depends(get_finance_service),
):
    supplier = service.create_supplier(performed_by=user.id, **data.model_dump())
    session.commit()
    return supplier


@router.get("/contracts", response_model=list[ContractRead])
def list_contracts(
    supplier_id: Optional[str] = Query(None, description="按供应商过滤（可选）"),
    _user: User = Depends(view_data),
    service: FinanceService = Depends(get_finance_service),
):
    return service.list_contracts(supplier_id)


@router.post("/contracts", response_model=ContractRead)
def create_contract(
    data: ContractCreate,
    session: Session = Depends(get_session),
    user: User = Depends(edit_data),
    service: FinanceService = Depends(get_finance_service),
):
    contract = service.create_contract(performed_by=user.id, **data.model_dump())
    session.commit()
    return contract


@router.get("/contracts/{contract_id}/invoices", response_model=list[InvoiceRead])
def list_contract_invoices(
    contract_id: str,
    _user: User = Depends(view_data),
    service: FinanceService = Depends(get_finance_service),
):
    return service.list_invoices(contract_id)


@router.get("/expenses", response_model=list[ExpenseRead])
def list_recent_expenses(
    limit: int = Query(10, ge=1, le=200),
    _user: User = Depends(view_data),
    service: FinanceService = Depends(get_finance_service),
):
    return service.list_recent_expenses(limit)


@router.post("/expenses", response_model=ExpenseRead)
def record_expense(
    data: ExpenseCreate,
    session: Session = Depends(get_session),
    user: User = Depends(edit_data),
    service: FinanceService = Depends(get_finance_service),
):
    expense = service.record_expense(performed_by=user.id, **data.model_dump())
    session.commit()
    return expense


@router.post("/invoices", response_model=InvoiceRead)
def create_invoice(
    data: InvoiceCreate,
    session: Session = Depends(get_session),
    user: User = Depends(edit_data),
    service: FinanceService = Depends(get_finance_service),
):
    invoice = service.create_invoice(performed_by=user.id, **data.model_dump())
    session.commit()
    return invoice


@router.post("/invoices/{invoice_id}/pay", response_model=InvoiceRead)
def pay_invoice(
    invoice_id: str,
    session: Session = Depends(get_session),
    user: User = Depends(edit_data),
    service: FinanceService = Depends(get_finance_service),
):
    invoice = service.mark_invoice_paid(invoice_id, user.id)
    session.commit()
    return invoice


@router.get("/overview", response_model=FinancialOverviewRead)
def financial_overview(
    _user: User = Depends(view_data),
    service: FinanceService = Depends(get_finance_service),
):
    return service.financial_overview()._asdict()
