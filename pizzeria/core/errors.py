"""
Pizzeria POS — Domain errors

Every failed operation raises one of these before anything is committed,
so the request's session is rolled back and prior state is untouched.
The FastAPI handler turns them into typed JSON bodies the front end uses
for its messages.
"""
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class PosError(Exception):
    kind = "PosError"
    status_code = 400

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "detail": self.detail, **self.context}


class InvalidTransition(PosError):
    """Illegal or stale state-machine move. Always reports both ends."""

    kind = "InvalidTransition"
    status_code = 409

    def __init__(self, from_status: str, to_status: str, stale: bool = False, reason: str | None = None):
        from_status = getattr(from_status, "value", from_status)
        to_status = getattr(to_status, "value", to_status)
        if reason is None:
            reason = (
                f"Status changed concurrently; it is now {from_status}."
                if stale else f"Cannot move from {from_status} to {to_status}."
            )
        super().__init__(reason, from_status=from_status, to_status=to_status, stale=stale)
        self.from_status = from_status
        self.to_status = to_status
        self.stale = stale


class TableUnavailable(PosError):
    kind = "TableUnavailable"
    status_code = 409

    def __init__(self, table_id: str, table_status: str, reason: str | None = None):
        table_status = getattr(table_status, "value", table_status)
        super().__init__(
            reason or f"Table is {table_status} and cannot take a new dine-in order.",
            table_id=table_id,
            table_status=table_status,
        )
        self.table_status = table_status


class NotFound(PosError):
    kind = "NotFound"
    status_code = 404

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} '{resource_id}' not found.", resource=resource, id=resource_id)


class Unauthorized(PosError):
    kind = "Unauthorized"
    status_code = 403

    def __init__(self, role: str | None, action: str):
        role = getattr(role, "value", role)
        super().__init__(f"Role {role or 'ANONYMOUS'} may not {action}.", role=role, action=action)


class ValidationError(PosError):
    kind = "ValidationError"
    status_code = 422


async def pos_error_handler(request: Request, exc: PosError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
