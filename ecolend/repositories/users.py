from typing import Optional, Protocol

from sqlalchemy import func
from sqlmodel import Session, select

from ecolend.domain.identity import Role, User, UserId
from ecolend.models import UserRoleRow, UserRow


class UserRepository(Protocol):
    def create(self, user: User, password_hash: Optional[str] = None) -> User: ...

    def find_by_id(self, user_id: UserId) -> Optional[User]: ...

    def find_by_email(self, email: str) -> Optional[User]: ...

    def find_all(self) -> list[User]: ...

    def count(self) -> int: ...

    def save(self, user: User) -> User: ...

    def password_hash_for(self, user_id: UserId) -> Optional[str]: ...

    def assign_role(self, user_id: UserId, role: Role) -> None: ...

    def roles_for_user(self, user_id: UserId) -> list[Role]: ...


def _to_entity(row: UserRow) -> User:
    return User.create(
        id=UserId(row.id),
        email=row.email,
        display_name=row.display_name,
        kind=row.kind,
        is_active=row.is_active,
    )


class SqlUserRepository:
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: User, password_hash: Optional[str] = None) -> User:
        self.session.add(
            UserRow(
                id=user.id,
                email=user.email,
                display_name=user.display_name,
                kind=user.kind,
                is_active=user.is_active,
                password_hash=password_hash,
            )
        )
        self.session.flush()
        return user

    def find_by_id(self, user_id: UserId) -> Optional[User]:
        row = self.session.get(UserRow, user_id)
        return _to_entity(row) if row else None

    def find_by_email(self, email: str) -> Optional[User]:
        email = (email or "").strip().lower()
        row = self.session.exec(select(UserRow).where(UserRow.email == email)).first()
        return _to_entity(row) if row else None

    def find_all(self) -> list[User]:
        rows = self.session.exec(select(UserRow).order_by(UserRow.created_at.asc(), UserRow.email.asc())).all()
        return [_to_entity(r) for r in rows]

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(UserRow)).one()

    def save(self, user: User) -> User:
        # 只写身份字段；密码和角色各走各的
        row = self.session.get(UserRow, user.id)
        if row is None:
            return self.create(user)
        row.email = user.email
        row.display_name = user.display_name
        row.kind = user.kind
        row.is_active = user.is_active
        self.session.add(row)
        self.session.flush()
        return user

    def password_hash_for(self, user_id: UserId) -> Optional[str]:
        row = self.session.get(UserRow, user_id)
        return row.password_hash if row else None

    def assign_role(self, user_id: UserId, role: Role) -> None:
        existing = self.session.get(UserRoleRow, (user_id, role.name.value))
        if existing:
            return
        self.session.add(UserRoleRow(user_id=user_id, role_name=role.name.value))
        self.session.flush()

    def roles_for_user(self, user_id: UserId) -> list[Role]:
        stmt = select(UserRoleRow.role_name).where(UserRoleRow.user_id == user_id).order_by(UserRoleRow.role_name)
        return [Role.for_name(name) for name in self.session.exec(stmt).all()]
