from typing import Optional

import structlog

from ecolend.domain import analytics as audit_actions
from ecolend.domain.base import new_id
from ecolend.domain.identity import Role, RoleName, User, UserId, UserKind
from ecolend.error import Conflict, NotFound
from ecolend.repositories.audit import AuditLogRepository
from ecolend.repositories.users import UserRepository

log = structlog.get_logger(__name__)


class IdentityService:
    def __init__(self, users: UserRepository, audit: AuditLogRepository):
        self.users = users
        self.audit = audit

    def get_user(self, user_id: UserId) -> User:
        user = self.users.find_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def _new_user(self, email: str, display_name: str, kind: UserKind, password_hash: Optional[str]) -> User:
        user = User.create(
            id=UserId(new_id()),
            email=email,
            display_name=display_name,
            kind=kind,
            is_active=True,
        )
        if self.users.find_by_email(user.email):
            raise Conflict("A user with this email already exists", code="EMAIL_EXISTS")
        return self.users.create(user, password_hash=password_hash)

    def register(self, email: str, display_name: str, password_hash: str) -> User:
        """Self-service sign-up.

        The very first account bootstraps the system as an admin holding
        the ADMIN role; everyone after that starts as an employee with no
        roles.
        """
        first = self.users.count() == 0
        user = self._new_user(email, display_name, "admin" if first else "employee", password_hash)
        if first:
            self.users.assign_role(user.id, Role.for_name(RoleName.ADMIN))
        self.audit.create(
            audit_actions.USER_CREATED,
            "user",
            performed_by_user_id=user.id,
            entity_id=user.id,
            metadata={"kind": user.kind, "self_registered": True},
        )
        log.info("user_registered", user_id=user.id, kind=user.kind)
        return user

    def create_user(
        self,
        email: str,
        display_name: str,
        kind: UserKind,
        performed_by: UserId,
        password_hash: Optional[str] = None,
    ) -> User:
        user = self._new_user(email, display_name, kind, password_hash)
        self.audit.create(
            audit_actions.USER_CREATED,
            "user",
            performed_by_user_id=performed_by,
            entity_id=user.id,
            metadata={"kind": user.kind},
        )
        log.info("user_created", user_id=user.id, kind=kind)
        return user

    def list_users(self) -> list[User]:
        return self.users.find_all()

    def activate_user(self, user_id: UserId, performed_by: UserId) -> User:
        user = self.get_user(user_id)
        if user.is_active:
            return user
        user = self.users.save(user.activate())
        self.audit.create(
            audit_actions.USER_ACTIVATED, "user", performed_by_user_id=performed_by, entity_id=user_id
        )
        log.info("user_activated", user_id=user_id)
        return user

    def deactivate_user(self, user_id: UserId, performed_by: UserId) -> User:
        user = self.get_user(user_id)
        if not user.is_active:
            return user
        user = self.users.save(user.deactivate())
        self.audit.create(
            audit_actions.USER_DEACTIVATED, "user", performed_by_user_id=performed_by, entity_id=user_id
        )
        log.info("user_deactivated", user_id=user_id)
        return user

    def assign_role(self, user_id: UserId, role_name: RoleName | str, performed_by: UserId) -> list[Role]:
        self.get_user(user_id)
        role = Role.for_name(role_name)
        self.users.assign_role(user_id, role)
        self.audit.create(
            audit_actions.ROLE_ASSIGNED,
            "user",
            performed_by_user_id=performed_by,
            entity_id=user_id,
            metadata={"role": role.name.value},
        )
        log.info("role_assigned", user_id=user_id, role=role.name.value)
        return self.users.roles_for_user(user_id)

    def roles_for_user(self, user_id: UserId) -> list[Role]:
        return self.users.roles_for_user(user_id)
