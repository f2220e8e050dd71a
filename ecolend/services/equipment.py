from typing import Optional

import structlog

from ecolend.domain import analytics as audit_actions
from ecolend.domain.base import new_id, utcnow
from ecolend.domain.equipment import Equipment, EquipmentId, EquipmentStatus
from ecolend.domain.identity import UserId
from ecolend.error import BusinessRuleViolation, NotFound
from ecolend.repositories.audit import AuditLogRepository
from ecolend.repositories.equipment import EquipmentRepository
from ecolend.repositories.loans import LoanRepository

log = structlog.get_logger(__name__)


def _below_in_use(in_use: int) -> BusinessRuleViolation:
    return BusinessRuleViolation(
        f"Total quantity cannot be lower than quantity in use ({in_use})",
        code="QUANTITY_IN_USE",
    )


class EquipmentService:
    def __init__(
        self,
        equipment: EquipmentRepository,
        loans: LoanRepository,
        audit: AuditLogRepository,
    ):
        self.equipment = equipment
        self.loans = loans
        self.audit = audit

    def create_equipment(
        self,
        name: str,
        category: str,
        total_quantity: int,
        performed_by: UserId,
        status: EquipmentStatus = EquipmentStatus.AVAILABLE,
        certification: Optional[str] = None,
    ) -> Equipment:
        now = utcnow()
        equipment = Equipment.create(
            id=EquipmentId(new_id()),
            name=name,
            category=category,
            certification=certification,
            status=status,
            total_quantity=total_quantity,
            quantity_in_use=0,
            created_at=now,
            updated_at=now,
        )
        self.equipment.create(equipment)
        self.audit.create(
            audit_actions.EQUIPMENT_CREATED,
            "equipment",
            performed_by_user_id=performed_by,
            entity_id=equipment.id,
            metadata={"name": equipment.name, "total_quantity": equipment.total_quantity},
        )
        log.info("equipment_created", equipment_id=equipment.id, total_quantity=total_quantity)
        return equipment

    def get_equipment(self, equipment_id: EquipmentId) -> Equipment:
        equipment = self.equipment.find_by_id(equipment_id)
        if equipment is None:
            raise NotFound("Equipment not found")
        return equipment

    def list_equipment(self, q: Optional[str] = None) -> list[Equipment]:
        q = (q or "").strip() or None
        return self.equipment.find_all(q)

    def update_equipment(self, equipment_id: EquipmentId, performed_by: UserId, **changes) -> Equipment:
        # None = 没传，不改（certification 想清空就传空串）
        changes = {k: v for k, v in changes.items() if v is not None}
        current = self.get_equipment(equipment_id)
        total = changes.get("total_quantity")
        if isinstance(total, int) and 0 <= total < current.quantity_in_use:
            raise _below_in_use(current.quantity_in_use)
        updated = current.update(**changes)

        # 条件 UPDATE 兜底并发借出
        saved = self.equipment.save(updated)
        if saved is None:
            raise _below_in_use(self.get_equipment(equipment_id).quantity_in_use)

        self.audit.create(
            audit_actions.EQUIPMENT_UPDATED,
            "equipment",
            performed_by_user_id=performed_by,
            entity_id=equipment_id,
            metadata={k: (v.value if isinstance(v, EquipmentStatus) else v) for k, v in changes.items()},
        )
        log.info("equipment_updated", equipment_id=equipment_id, fields=sorted(changes))
        return saved

    def delete_equipment(self, equipment_id: EquipmentId, performed_by: UserId) -> None:
        equipment = self.get_equipment(equipment_id)
        history = self.loans.find_by_equipment(equipment_id)
        if any(loan.is_active() for loan in history):
            raise BusinessRuleViolation("Equipment has active loans", code="EQUIPMENT_IN_USE")
        if history:
            # 有借用历史的设备删掉会让 ESG 数据失真，只能标记 DISCARDED
            raise BusinessRuleViolation(
                "Equipment has loan history; mark it DISCARDED instead",
                code="EQUIPMENT_HAS_HISTORY",
            )

        self.equipment.delete(equipment_id)
        self.audit.create(
            audit_actions.EQUIPMENT_DELETED,
            "equipment",
            performed_by_user_id=performed_by,
            entity_id=equipment_id,
            metadata={"name": equipment.name},
        )
        log.info("equipment_deleted", equipment_id=equipment_id)
