from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class ApiError(Exception):
    """Error that maps directly onto an HTTP response."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ApiError):
    status_code = 400


class AuthorizationError(ApiError):
    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


class UnexpectedError(ApiError):
    status_code = 500


def require(value, message: str):
    """Return value, or raise ValidationError if it is missing or empty."""
    if value is None or value == "":
        raise ValidationError(message)
    return value


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI's request validation failures as 400 {"error": message}."""
    errors = exc.errors()
    loc = tuple(errors[0].get("loc", ())) if errors else ()
    if loc and loc[0] == "body":
        message = "Request body must be a JSON object"
    elif len(loc) > 1:
        message = f"Invalid parameter: {loc[-1]}"
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})
