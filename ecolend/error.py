from fastapi import HTTPException


class LedgerError(Exception):
    """Base for every error the ledger raises on purpose.

    ``code`` and ``message`` end up in the API error body
    ``{"detail": {"code": ..., "message": ...}}``.
    """

    status_code = 400
    code = "LEDGER_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationFailed(LedgerError):
    """Entity invariant violated by the input; nothing was committed."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFound(LedgerError):
    status_code = 404
    code = "NOT_FOUND"


class BusinessRuleViolation(LedgerError):
    """Input is well-formed but the current state forbids the operation."""

    status_code = 409
    code = "BUSINESS_RULE"


class Conflict(LedgerError):
    status_code = 409
    code = "CONFLICT"


class PermissionDenied(LedgerError):
    status_code = 403
    code = "FORBIDDEN"


class ConfigurationError(LedgerError):
    status_code = 500
    code = "CONFIGURATION_ERROR"


def _auth_401(code: str, message: str) -> HTTPException:
    # ✅ 保留 WWW-Authenticate，符合 Bearer 规范
    return HTTPException(
        status_code=401,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )
