from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from ecolend.error import ValidationFailed

E = TypeVar("E", bound="Entity")


def utcnow() -> datetime:
    # 统一口径：带时区的 UTC，写库不能是 naive
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


def _describe(exc: ValidationError) -> str:
    err = exc.errors()[0]
    cause = (err.get("ctx") or {}).get("error")
    if isinstance(cause, Exception):
        return str(cause)
    loc = ".".join(str(p) for p in err.get("loc", ()))
    return f"{loc}: {err['msg']}" if loc else err["msg"]


class Entity(BaseModel):
    """Immutable, self-validating domain record.

    Always build through ``create`` so invariant failures come out as
    ``ValidationFailed`` instead of pydantic's own error type.
    """

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _utc_datetimes(cls, data):
        # SQLite 读回来的是 naive，一律当 UTC 补上时区
        if isinstance(data, dict):
            return {k: as_utc(v) if isinstance(v, datetime) else v for k, v in data.items()}
        return data

    @classmethod
    def create(cls: type[E], **props: Any) -> E:
        try:
            return cls(**props)
        except ValidationError as exc:
            raise ValidationFailed(_describe(exc)) from exc

    def _replace(self: E, **changes: Any) -> E:
        return type(self).create(**{**dict(self), **changes})


def require_text(value: str | None, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(message)
    return value.strip()


def optional_text(value: str | None) -> str | None:
    if not isinstance(value, str):
        return value
    value = value.strip()
    return value or None


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def row_values(entity: BaseModel, *, exclude: tuple[str, ...] = ()) -> dict[str, Any]:
    # Enum -> str，其余原样写库
    return {
        k: (v.value if isinstance(v, Enum) else v)
        for k, v in entity
        if k not in exclude
    }
