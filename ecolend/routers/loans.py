from fastapi import APIRouter, Depends
from sqlmodel import Session

from ecolend.db import get_session
from ecolend.deps import current_roles, get_loan_service, require_permission, require_user
from ecolend.domain.identity import Permission, Role, User, has_permission
from ecolend.error import PermissionDenied
from ecolend.schemas import LoanCreate, LoanDamageReport, LoanRead
from ecolend.services.loans import LoanService

router = APIRouter(prefix="/loans", tags=["loans"])


def _manages_operations(roles: list[Role]) -> bool:
    return has_permission(roles, Permission.MANAGE_OPERATIONS)


@router.post("", response_model=LoanRead)
def create_loan(
    data: LoanCreate,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
    service: LoanService = Depends(get_loan_service),
):
    loan = service.create_loan(user.id, data.equipment_id, data.quantity)
    session.commit()
    return loan


@router.get("/me", response_model=list[LoanRead])
def list_my_loans(
    user: User = Depends(require_user),
    service: LoanService = Depends(get_loan_service),
):
    return service.list_loans_by_user(user.id)


@router.get("/active", response_model=list[LoanRead])
def list_active_loans(
    _user: User = Depends(require_permission(Permission.MANAGE_OPERATIONS)),
    service: LoanService = Depends(get_loan_service),
):
    return service.list_active_loans()


@router.get("/{loan_id}", response_model=LoanRead)
def get_loan(
    loan_id: str,
    user: User = Depends(require_user),
    roles: list[Role] = Depends(current_roles),
    service: LoanService = Depends(get_loan_service),
):
    loan = service.get_loan(loan_id)
    if loan.user_id != user.id and not _manages_operations(roles):
        raise PermissionDenied("Not your loan")
    return loan


@router.post("/{loan_id}/return", response_model=LoanRead)
def return_loan(
    loan_id: str,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
    roles: list[Role] = Depends(current_roles),
    service: LoanService = Depends(get_loan_service),
):
    loan = service.return_loan(loan_id, user.id, on_behalf=_manages_operations(roles))
    session.commit()
    return loan


@router.post("/{loan_id}/damage", response_model=LoanRead)
def report_damage(
    loan_id: str,
    body: LoanDamageReport,
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
    roles: list[Role] = Depends(current_roles),
    service: LoanService = Depends(get_loan_service),
):
    loan = service.mark_loan_as_damaged(
        loan_id, body.damage_comment, user.id, on_behalf=_manages_operations(roles)
    )
    session.commit()
    return loan
