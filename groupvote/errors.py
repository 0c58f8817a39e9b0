from __future__ import annotations

from sqlalchemy.exc import IntegrityError


class DomainError(Exception):
    """
    Base for errors raised by the group/poll services.

    Services never raise HTTPException; main.py maps these onto the
    {"detail": ...} envelope using status_code.
    """

    status_code: int = 500
    default_detail: str = "Internal error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFoundError(DomainError):
    status_code = 404
    default_detail = "Not found"


class ConflictError(DomainError):
    status_code = 409
    default_detail = "Conflict"


class ForbiddenError(DomainError):
    status_code = 403
    default_detail = "Forbidden"


class BadRequestError(DomainError):
    status_code = 400
    default_detail = "Bad request"


class InternalError(DomainError):
    status_code = 500
    default_detail = "Internal error"


_PG_UNIQUE_VIOLATION = "23505"


def is_unique_violation(exc: IntegrityError, column: str) -> bool:
    """
    True if the store rejected a write because of a unique constraint on `column`.

    IntegrityError also covers NOT NULL and foreign key failures, so the
    driver error is inspected:
    - SQLite: "UNIQUE constraint failed: groups.invite_code"
    - Postgres: SQLSTATE 23505 with the constraint/index name in the message
    """
    orig = getattr(exc, "orig", None)
    message = str(orig if orig is not None else exc).lower()
    column = column.lower()

    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode is not None:
        return pgcode == _PG_UNIQUE_VIOLATION and column in message

    return "unique constraint failed" in message and column in message
