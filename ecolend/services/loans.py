import structlog

from ecolend.domain import analytics as audit_actions
from ecolend.domain.equipment import Equipment, EquipmentId
from ecolend.domain.identity import UserId
from ecolend.domain.loan import Loan, LoanId
from ecolend.error import BusinessRuleViolation, NotFound, PermissionDenied, ValidationFailed
from ecolend.repositories.audit import AuditLogRepository
from ecolend.repositories.equipment import EquipmentRepository
from ecolend.repositories.loans import LoanRepository

log = structlog.get_logger(__name__)


def ensure_loanable(equipment: Equipment, quantity: int) -> None:
    """Reject a checkout the current equipment state cannot serve."""
    if equipment.is_discarded:
        raise BusinessRuleViolation("Cannot loan discarded equipment", code="EQUIPMENT_DISCARDED")
    if equipment.quantity_available < quantity:
        raise _insufficient(quantity, equipment.quantity_available)


def _insufficient(quantity: int, available: int) -> BusinessRuleViolation:
    return BusinessRuleViolation(
        f"Insufficient equipment available. Requested: {quantity}, Available: {available}",
        code="INSUFFICIENT_QUANTITY",
    )


class LoanService:
    """Check-out / return / damage orchestration.

    Loan status and equipment quantity_in_use move together inside the
    caller's transaction; nothing here commits.
    """

    def __init__(
        self,
        loans: LoanRepository,
        equipment: EquipmentRepository,
        audit: AuditLogRepository,
    ):
        self.loans = loans
        self.equipment = equipment
        self.audit = audit

    def _get_equipment(self, equipment_id: EquipmentId) -> Equipment:
        equipment = self.equipment.find_by_id(equipment_id)
        if equipment is None:
            raise NotFound("Equipment not found")
        return equipment

    def get_loan(self, loan_id: LoanId) -> Loan:
        loan = self.loans.find_by_id(loan_id)
        if loan is None:
            raise NotFound("Loan not found")
        return loan

    def create_loan(self, user_id: UserId, equipment_id: EquipmentId, quantity: int) -> Loan:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationFailed("Loan quantity must be a positive integer.")

        equipment = self._get_equipment(equipment_id)
        ensure_loanable(equipment, quantity)

        loan = Loan.open(user_id, equipment_id, quantity)

        # 先查一遍给友好提示；真正的可用量校验在 reserve 的条件 UPDATE 里
        if not self.equipment.reserve(equipment_id, quantity):
            latest = self._get_equipment(equipment_id)
            ensure_loanable(latest, quantity)
            raise _insufficient(quantity, latest.quantity_available)

        self.loans.create(loan)
        self.audit.create(
            audit_actions.LOAN_CREATED,
            "loan",
            performed_by_user_id=user_id,
            entity_id=loan.id,
            metadata={"equipment_id": equipment_id, "quantity": quantity},
        )
        log.info("loan_created", loan_id=loan.id, equipment_id=equipment_id, quantity=quantity)
        return loan

    def _loan_for_closing(self, loan_id: LoanId, performed_by: UserId, on_behalf: bool) -> Loan:
        loan = self.get_loan(loan_id)
        if loan.user_id != performed_by and not on_behalf:
            raise PermissionDenied("Only the borrower or an operations manager can close this loan")
        if not loan.is_active():
            log.warning("loan_not_active", loan_id=loan_id, status=loan.status.value)
            raise BusinessRuleViolation("Loan is not active", code="LOAN_NOT_ACTIVE")
        return loan

    def _close(self, closed: Loan, performed_by: UserId, action: str, metadata: dict) -> Loan:
        # 状态迁移和库存释放在同一个事务里，并发归还只会有一个成功
        if not self.loans.close(closed):
            raise BusinessRuleViolation("Loan is not active", code="LOAN_NOT_ACTIVE")
        if not self.equipment.release(closed.equipment_id, closed.quantity):
            raise BusinessRuleViolation(
                "Equipment quantity in use is lower than the loan quantity",
                code="QUANTITY_MISMATCH",
            )
        self.audit.create(
            action,
            "loan",
            performed_by_user_id=performed_by,
            entity_id=closed.id,
            metadata={"equipment_id": closed.equipment_id, "quantity": closed.quantity, **metadata},
        )
        return closed

    def return_loan(self, loan_id: LoanId, performed_by: UserId, on_behalf: bool = False) -> Loan:
        loan = self._loan_for_closing(loan_id, performed_by, on_behalf)
        returned = self._close(loan.mark_as_returned(), performed_by, audit_actions.LOAN_RETURNED, {})
        log.info("loan_returned", loan_id=loan_id, quantity=loan.quantity)
        return returned

    def mark_loan_as_damaged(
        self,
        loan_id: LoanId,
        damage_comment: str,
        performed_by: UserId,
        on_behalf: bool = False,
    ) -> Loan:
        loan = self._loan_for_closing(loan_id, performed_by, on_behalf)
        damaged = loan.mark_as_damaged(damage_comment)
        damaged = self._close(
            damaged,
            performed_by,
            audit_actions.LOAN_DAMAGED,
            {"damage_comment": damaged.damage_comment},
        )
        log.info("loan_damaged", loan_id=loan_id, quantity=loan.quantity)
        return damaged

    def list_loans_by_user(self, user_id: UserId) -> list[Loan]:
        return self.loans.find_by_user(user_id)

    def list_active_loans(self) -> list[Loan]:
        return self.loans.find_active()
