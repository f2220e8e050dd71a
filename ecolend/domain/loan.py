from datetime import datetime
from enum import Enum
from typing import NewType, Optional

from pydantic import StrictInt, model_validator

from ecolend.domain.base import Entity, new_id, optional_text, utcnow
from ecolend.domain.equipment import EquipmentId
from ecolend.domain.identity import UserId
from ecolend.error import BusinessRuleViolation, ValidationFailed

LoanId = NewType("LoanId", str)


class LoanStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"
    DAMAGED = "DAMAGED"


TERMINAL_STATUSES = (LoanStatus.RETURNED, LoanStatus.DAMAGED)


class Loan(Entity):
    """N units of one equipment item borrowed by one user.

    ACTIVE -> RETURNED | DAMAGED, exactly once; terminal states never reopen.
    """

    id: LoanId
    user_id: UserId
    equipment_id: EquipmentId
    quantity: StrictInt
    status: LoanStatus = LoanStatus.ACTIVE
    created_at: datetime
    returned_at: Optional[datetime] = None
    damage_comment: Optional[str] = None

    @model_validator(mode="after")
    def _check_state(self):
        if self.quantity <= 0:
            raise ValueError("Loan quantity must be positive.")
        if self.status == LoanStatus.DAMAGED and not (self.damage_comment or "").strip():
            raise ValueError("Damage comment is required when status is DAMAGED.")
        if self.status in TERMINAL_STATUSES and self.returned_at is None:
            raise ValueError("Returned loans must have a returnedAt timestamp.")
        if self.status == LoanStatus.ACTIVE and self.returned_at is not None:
            raise ValueError("Active loans cannot have a returnedAt timestamp.")
        return self

    @classmethod
    def open(cls, user_id: UserId, equipment_id: EquipmentId, quantity: int) -> "Loan":
        return cls.create(
            id=LoanId(new_id()),
            user_id=user_id,
            equipment_id=equipment_id,
            quantity=quantity,
            status=LoanStatus.ACTIVE,
            created_at=utcnow(),
        )

    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    def _ensure_active(self) -> None:
        if not self.is_active():
            raise BusinessRuleViolation("Loan is not active", code="LOAN_NOT_ACTIVE")

    def mark_as_returned(self) -> "Loan":
        self._ensure_active()
        return self._replace(status=LoanStatus.RETURNED, returned_at=utcnow())

    def mark_as_damaged(self, damage_comment: str | None) -> "Loan":
        comment = optional_text(damage_comment)
        if comment is None:
            raise ValidationFailed("Damage comment is required.")
        self._ensure_active()
        return self._replace(
            status=LoanStatus.DAMAGED,
            returned_at=utcnow(),
            damage_comment=comment,
        )
