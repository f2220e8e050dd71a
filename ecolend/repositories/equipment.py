from typing import Optional, Protocol

from sqlalchemy import or_, update
from sqlmodel import Session, select

from ecolend.domain.base import row_values
from ecolend.domain.equipment import Equipment, EquipmentId, EquipmentStatus
from ecolend.models import EquipmentRow


class EquipmentRepository(Protocol):
    def create(self, equipment: Equipment) -> Equipment: ...

    def find_by_id(self, equipment_id: EquipmentId) -> Optional[Equipment]: ...

    def find_all(self, q: str | None = None) -> list[Equipment]: ...

    def save(self, equipment: Equipment) -> Optional[Equipment]: ...

    def delete(self, equipment_id: EquipmentId) -> None: ...

    def reserve(self, equipment_id: EquipmentId, quantity: int) -> bool: ...

    def release(self, equipment_id: EquipmentId, quantity: int) -> bool: ...


def _to_entity(row: EquipmentRow) -> Equipment:
    # 从库里读出来也要重新校验
    return Equipment.create(
        id=EquipmentId(row.id),
        name=row.name,
        category=row.category,
        certification=row.certification,
        status=row.status,
        total_quantity=row.total_quantity,
        quantity_in_use=row.quantity_in_use,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlEquipmentRepository:
    """Equipment persistence. Flushes, never commits."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, equipment: Equipment) -> Equipment:
        self.session.add(EquipmentRow(**row_values(equipment)))
        self.session.flush()
        return equipment

    def find_by_id(self, equipment_id: EquipmentId) -> Optional[Equipment]:
        row = self.session.get(EquipmentRow, equipment_id)
        return _to_entity(row) if row else None

    def find_all(self, q: str | None = None) -> list[Equipment]:
        stmt = select(EquipmentRow)
        if q:
            stmt = stmt.where(or_(EquipmentRow.name.contains(q), EquipmentRow.category.contains(q)))
        rows = self.session.exec(stmt.order_by(EquipmentRow.name.asc(), EquipmentRow.id.asc())).all()
        return [_to_entity(r) for r in rows]

    def save(self, equipment: Equipment) -> Optional[Equipment]:
        """Write descriptive fields and the total.

        quantity_in_use is owned by reserve/release; the total is only
        accepted while it still covers the units currently out.
        """
        values = row_values(equipment, exclude=("id", "quantity_in_use", "created_at"))
        stmt = (
            update(EquipmentRow)
            .where(EquipmentRow.id == equipment.id)
            .where(EquipmentRow.quantity_in_use <= equipment.total_quantity)
            .values(**values)
        )
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            return None
        self.session.flush()
        return self.find_by_id(equipment.id)

    def delete(self, equipment_id: EquipmentId) -> None:
        row = self.session.get(EquipmentRow, equipment_id)
        if row:
            self.session.delete(row)
            self.session.flush()

    def reserve(self, equipment_id: EquipmentId, quantity: int) -> bool:
        # ✅ 条件更新：可用量校验放在同一条 UPDATE 里，并发借出也不会超卖
        stmt = (
            update(EquipmentRow)
            .where(EquipmentRow.id == equipment_id)
            .where(EquipmentRow.status != EquipmentStatus.DISCARDED.value)
            .where(EquipmentRow.quantity_in_use + quantity <= EquipmentRow.total_quantity)
            .values(quantity_in_use=EquipmentRow.quantity_in_use + quantity)
        )
        return self.session.execute(stmt).rowcount == 1

    def release(self, equipment_id: EquipmentId, quantity: int) -> bool:
        stmt = (
            update(EquipmentRow)
            .where(EquipmentRow.id == equipment_id)
            .where(EquipmentRow.quantity_in_use >= quantity)
            .values(quantity_in_use=EquipmentRow.quantity_in_use - quantity)
        )
        return self.session.execute(stmt).rowcount == 1
