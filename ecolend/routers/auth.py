from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from ecolend.db import get_session
from ecolend.deps import current_roles, get_identity_service, require_user
from ecolend.domain.identity import Permission, Role, User, has_permission
from ecolend.error import Conflict, _auth_401
from ecolend.repositories.users import SqlUserRepository
from ecolend.schemas import MeRead, Token, UserCreate, UserRead
from ecolend.security import create_access_token, hash_password, verify_password
from ecolend.services.identity import IdentityService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserRead)
def register(
    data: UserCreate,
    session: Session = Depends(get_session),
    identity: IdentityService = Depends(get_identity_service),
):
    user = identity.register(data.email, data.display_name, hash_password(data.password))

    # 并发下 unique 冲突，兜底一次
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("A user with this email already exists", code="EMAIL_EXISTS")

    return user


@router.post("/login", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(get_session),
):
    users = SqlUserRepository(session)
    user = users.find_by_email(form_data.username)
    password_hash = users.password_hash_for(user.id) if user else None
    if (not password_hash) or (not verify_password(form_data.password, password_hash)):
        raise _auth_401("INVALID_CREDENTIALS", "Invalid email or password")
    if not user.is_active:
        raise _auth_401("USER_INACTIVE", "User is deactivated")

    token = create_access_token(user.id)
    return {"access_token": token, "token_type": "bearer"}


@router.get("/me", response_model=MeRead)
def me(
    user: User = Depends(require_user),
    roles: list[Role] = Depends(current_roles),
):
    return {
        "user": user,
        "roles": roles,
        "permissions": [p for p in Permission if has_permission(roles, p)],
    }
