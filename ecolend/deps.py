from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlmodel import Session

from ecolend.db import get_session
from ecolend.domain.identity import Permission, Role, User, UserId, has_permission
from ecolend.error import PermissionDenied, _auth_401
from ecolend.repositories.audit import SqlAuditLogRepository
from ecolend.repositories.equipment import SqlEquipmentRepository
from ecolend.repositories.finance import (
    SqlContractRepository,
    SqlExpenseRepository,
    SqlInvoiceRepository,
    SqlSupplierRepository,
)
from ecolend.repositories.loans import SqlLoanRecordSource, SqlLoanRepository
from ecolend.repositories.users import SqlUserRepository
from ecolend.security import decode_token
from ecolend.services.analytics import AnalyticsService
from ecolend.services.equipment import EquipmentService
from ecolend.services.finance import FinanceService
from ecolend.services.identity import IdentityService
from ecolend.services.loans import LoanService

# ✅ auto_error=False，没带 token 的错误格式由我们接管
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


# --- 组装：每个请求一套 repository + service，共用同一个 session ---

def get_identity_service(session: Session = Depends(get_session)) -> IdentityService:
    return IdentityService(SqlUserRepository(session), SqlAuditLogRepository(session))


def get_equipment_service(session: Session = Depends(get_session)) -> EquipmentService:
    return EquipmentService(
        SqlEquipmentRepository(session),
        SqlLoanRepository(session),
        SqlAuditLogRepository(session),
    )


def get_loan_service(session: Session = Depends(get_session)) -> LoanService:
    return LoanService(
        SqlLoanRepository(session),
        SqlEquipmentRepository(session),
        SqlAuditLogRepository(session),
    )


def get_analytics_service(session: Session = Depends(get_session)) -> AnalyticsService:
    return AnalyticsService(SqlLoanRecordSource(session), SqlAuditLogRepository(session))


def get_finance_service(session: Session = Depends(get_session)) -> FinanceService:
    return FinanceService(
        SqlSupplierRepository(session),
        SqlContractRepository(session),
        SqlExpenseRepository(session),
        SqlInvoiceRepository(session),
        SqlAuditLogRepository(session),
    )


# --- 鉴权 ---

def require_user(
    token: str | None = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> User:
    # 1) 没带 token
    if not token:
        raise _auth_401("NOT_AUTHENTICATED", "Not authenticated, please log in")

    # 2) token 无效 / 过期 / secret_key 不一致
    try:
        user_id = decode_token(token)
    except (JWTError, ValueError):
        raise _auth_401("INVALID_TOKEN", "Token is invalid or expired, please log in again")

    # 3) token 没问题，但用户不存在或已停用
    user = SqlUserRepository(session).find_by_id(UserId(user_id))
    if not user:
        raise _auth_401("USER_NOT_FOUND", "User does not exist")
    if not user.is_active:
        raise _auth_401("USER_INACTIVE", "User is deactivated")

    return user


def current_roles(
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> list[Role]:
    return SqlUserRepository(session).roles_for_user(user.id)


def require_permission(permission: Permission):
    """Dependency factory: the current user, if one of their roles grants ``permission``."""

    def dependency(
        user: User = Depends(require_user),
        roles: list[Role] = Depends(current_roles),
    ) -> User:
        if not has_permission(roles, permission):
            raise PermissionDenied(f"Missing permission: {permission.value}")
        return user

    return dependency
