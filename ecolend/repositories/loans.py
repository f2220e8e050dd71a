from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import update
from sqlmodel import Session, select

from ecolend.domain.base import as_utc, row_values
from ecolend.domain.equipment import EquipmentId
from ecolend.domain.identity import UserId
from ecolend.domain.loan import Loan, LoanId, LoanStatus
from ecolend.models import LoanRow
from ecolend.services.esg import LoanRecord


class LoanRepository(Protocol):
    def create(self, loan: Loan) -> Loan: ...

    def find_by_id(self, loan_id: LoanId) -> Optional[Loan]: ...

    def find_by_user(self, user_id: UserId) -> list[Loan]: ...

    def find_active(self) -> list[Loan]: ...

    def find_by_equipment(self, equipment_id: EquipmentId) -> list[Loan]: ...

    def save(self, loan: Loan) -> Loan: ...

    def close(self, loan: Loan) -> bool: ...


class LoanRecordSource(Protocol):
    def records_between(self, start: datetime, end: datetime) -> list[LoanRecord]: ...


def _to_entity(row: LoanRow) -> Loan:
    return Loan.create(
        id=LoanId(row.id),
        user_id=UserId(row.user_id),
        equipment_id=EquipmentId(row.equipment_id),
        quantity=row.quantity,
        status=row.status,
        created_at=row.created_at,
        returned_at=row.returned_at,
        damage_comment=row.damage_comment,
    )


class SqlLoanRepository:
    def __init__(self, session: Session):
        self.session = session

    def create(self, loan: Loan) -> Loan:
        self.session.add(LoanRow(**row_values(loan)))
        self.session.flush()
        return loan

    def find_by_id(self, loan_id: LoanId) -> Optional[Loan]:
        row = self.session.get(LoanRow, loan_id)
        return _to_entity(row) if row else None

    def _find(self, *conds) -> list[Loan]:
        stmt = select(LoanRow).where(*conds).order_by(LoanRow.created_at.desc(), LoanRow.id.desc())
        return [_to_entity(r) for r in self.session.exec(stmt).all()]

    def find_by_user(self, user_id: UserId) -> list[Loan]:
        return self._find(LoanRow.user_id == user_id)

    def find_active(self) -> list[Loan]:
        return self._find(LoanRow.status == LoanStatus.ACTIVE.value)

    def find_by_equipment(self, equipment_id: EquipmentId) -> list[Loan]:
        return self._find(LoanRow.equipment_id == equipment_id)

    def save(self, loan: Loan) -> Loan:
        """Upsert every field as-is; lifecycle transitions go through ``close``."""
        row = self.session.get(LoanRow, loan.id)
        if row is None:
            return self.create(loan)
        for k, v in row_values(loan, exclude=("id",)).items():
            setattr(row, k, v)
        self.session.add(row)
        self.session.flush()
        return loan

    def close(self, loan: Loan) -> bool:
        """Persist a terminal transition only if the stored loan is still ACTIVE."""
        stmt = (
            update(LoanRow)
            .where(LoanRow.id == loan.id)
            .where(LoanRow.status == LoanStatus.ACTIVE.value)
            .values(
                status=loan.status.value,
                returned_at=loan.returned_at,
                damage_comment=loan.damage_comment,
            )
        )
        return self.session.execute(stmt).rowcount == 1


class SqlLoanRecordSource:
    def __init__(self, session: Session):
        self.session = session

    def records_between(self, start: datetime, end: datetime) -> list[LoanRecord]:
        # 闭区间 [start, end]，按时间排好，桶的顺序就是时间顺序
        stmt = (
            select(LoanRow.created_at, LoanRow.status, LoanRow.quantity)
            .where(LoanRow.created_at >= as_utc(start))
            .where(LoanRow.created_at <= as_utc(end))
            .order_by(LoanRow.created_at.asc(), LoanRow.id.asc())
        )
        return [
            LoanRecord(created_at, LoanStatus(status), quantity)
            for created_at, status, quantity in self.session.exec(stmt).all()
        ]
