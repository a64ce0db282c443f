from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status


class BattleError(Exception):
    """Base for every failure a battle operation reports to its caller.

    `message` is safe to show to players, `detail` is diagnostic only.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(BattleError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(BattleError):
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(BattleError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(BattleError):
    status_code = status.HTTP_409_CONFLICT


class ResourceExhaustedError(BattleError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class InternalError(BattleError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


async def battle_error_handler(request: Request, exc: BattleError):
    body = {"message": exc.message}
    if exc.detail:
        body["error"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=body)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Invalid request.", "errors": errors},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Server error", "error": str(exc)},
    )
