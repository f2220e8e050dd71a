from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from ecolend.db import get_session
from ecolend.deps import get_identity_service, require_permission
from ecolend.domain.identity import Permission, User
from ecolend.error import Conflict
from ecolend.schemas import AdminUserCreate, RoleAssign, RoleRead, UserRead
from ecolend.security import hash_password
from ecolend.services.identity import IdentityService

router = APIRouter(prefix="/users", tags=["users"])

manage_users = require_permission(Permission.MANAGE_USERS)


@router.get("", response_model=list[UserRead])
def list_users(
    _user: User = Depends(manage_users),
    identity: IdentityService = Depends(get_identity_service),
):
    return identity.list_users()


@router.post("", response_model=UserRead)
def create_user(
    data: AdminUserCreate,
    session: Session = Depends(get_session),
    admin: User = Depends(manage_users),
    identity: IdentityService = Depends(get_identity_service),
):
    user = identity.create_user(
        email=data.email,
        display_name=data.display_name,
        kind=data.kind,
        performed_by=admin.id,
        password_hash=hash_password(data.password) if data.password else None,
    )
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("A user with this email already exists", code="EMAIL_EXISTS")
    return user


@router.post("/{user_id}/activate", response_model=UserRead)
def activate_user(
    user_id: str,
    session: Session = Depends(get_session),
    admin: User = Depends(manage_users),
    identity: IdentityService = Depends(get_identity_service),
):
    user = identity.activate_user(user_id, admin.id)
    session.commit()
    return user


@router.post("/{user_id}/deactivate", response_model=UserRead)
def deactivate_user(
    user_id: str,
    session: Session = Depends(get_session),
    admin: User = Depends(manage_users),
    identity: IdentityService = Depends(get_identity_service),
):
    user = identity.deactivate_user(user_id, admin.id)
    session.commit()
    return user


@router.get("/{user_id}/roles", response_model=list[RoleRead])
def list_roles(
    user_id: str,
    _user: User = Depends(manage_users),
    identity: IdentityService = Depends(get_identity_service),
):
    identity.get_user(user_id)
    return identity.roles_for_user(user_id)


@router.post("/{user_id}/roles", response_model=list[RoleRead])
def assign_role(
    user_id: str,
    body: RoleAssign,
    session: Session = Depends(get_session),
    admin: User = Depends(manage_users),
    identity: IdentityService = Depends(get_identity_service),
):
    roles = identity.assign_role(user_id, body.role, admin.id)
    session.commit()
    return roles
