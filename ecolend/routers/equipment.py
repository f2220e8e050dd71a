from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from ecolend.db import get_session
from ecolend.deps import get_equipment_service, require_permission, require_user
from ecolend.domain.identity import Permission, User
from ecolend.schemas import EquipmentCreate, EquipmentRead, EquipmentUpdate
from ecolend.services.equipment import EquipmentService

router = APIRouter(prefix="/equipment", tags=["equipment"])

manage_system = require_permission(Permission.MANAGE_SYSTEM)


@router.post("", response_model=EquipmentRead)
def create_equipment(
    data: EquipmentCreate,
    session: Session = Depends(get_session),
    user: User = Depends(manage_system),
    service: EquipmentService = Depends(get_equipment_service),
):
    equipment = service.create_equipment(
        name=data.name,
        category=data.category,
        certification=data.certification,
        status=data.status,
        total_quantity=data.total_quantity,
        performed_by=user.id,
    )
    session.commit()
    return equipment


@router.get("", response_model=list[EquipmentRead])
def list_equipment(
    q: Optional[str] = Query(None, description="按名称/类别过滤（可选）"),
    _user: User = Depends(require_user),
    service: EquipmentService = Depends(get_equipment_service),
):
    return service.list_equipment(q)


@router.get("/{equipment_id}", response_model=EquipmentRead)
def get_equipment(
    equipment_id: str,
    _user: User = Depends(require_user),
    service: EquipmentService = Depends(get_equipment_service),
):
    return service.get_equipment(equipment_id)


@router.patch("/{equipment_id}", response_model=EquipmentRead)
def update_equipment(
    equipment_id: str,
    body: EquipmentUpdate,
    session: Session = Depends(get_session),
    user: User = Depends(manage_system),
    service: EquipmentService = Depends(get_equipment_service),
):
    equipment = service.update_equipment(equipment_id, user.id, **body.model_dump(exclude_unset=True))
    session.commit()
    return equipment


@router.delete("/{equipment_id}")
def delete_equipment(
    equipment_id: str,
    session: Session = Depends(get_session),
    user: User = Depends(manage_system),
    service: EquipmentService = Depends(get_equipment_service),
):
    service.delete_equipment(equipment_id, user.id)
    session.commit()
    return {"ok": True}
