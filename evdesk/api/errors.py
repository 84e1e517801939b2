from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from evdesk.tickets.errors import Conflict, IllegalTransition, NotFound, PermissionDenied, ValidationError, WorkflowError

_STATUS_CODES: dict[type[WorkflowError], int] = {
    PermissionDenied: 403,
    IllegalTransition: 409,
    ValidationError: 422,
    NotFound: 404,
    Conflict: 409,
}


def status_code_for(exc: WorkflowError) -> int:
    """Map a workflow rejection onto the HTTP status returned to the caller."""

    for error_type, code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return code
    return 400


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    return JSONResponse(status_code=status_code_for(exc), content=exc.to_payload())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WorkflowError, workflow_error_handler)
