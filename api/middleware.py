"""
Middleware and response helpers for the REST API.

Handlers raise the exceptions in utils.exceptions; error_middleware turns
them into ``{"success": false, "message": ...}`` with the matching status.
"""

import json
from typing import Any, Dict, Optional

import pydantic
from aiohttp import web
from aiohttp.web import Request, Response

from utils.exceptions import (
    AuthenticationError,
    DatabaseError,
    ForbiddenError,
    FixHubError,
    InvalidStateError,
    NotFoundError,
    PaymentError,
    ValidationError,
)
from utils.logging_config import setup_logging

logger = setup_logging(
    name=__name__, log_level="INFO", log_file="server.log", log_dir="logs"
)

MAX_REQUEST_BODY_SIZE = 1024 * 1024  # 1MB

# Most specific first
_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (AuthenticationError, 401),
    (ForbiddenError, 403),
    (InvalidStateError, 400),
    (ValidationError, 400),
    (PaymentError, 400),
    (DatabaseError, 500),
)


def to_jsonable(value: Any) -> Any:
    """Convert pydantic models (and containers of them) for json.dumps."""
    if isinstance(value, pydantic.BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def json_success(
    data: Any = None,
    message: Optional[str] = None,
    status: int = 200,
    **extra: Any,
) -> Response:
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = to_jsonable(data)
    if message:
        body["message"] = message
    body.update(to_jsonable(extra))
    return web.json_response(body, status=status)


def json_error(message: str, status: int) -> Response:
    return web.json_response({"success": False, "message": message}, status=status)


async def read_json(request: Request) -> Dict[str, Any]:
    """
    Read a JSON object body.

    Raises:
        ValidationError: If the body is too large, not JSON, or not an object
    """
    if request.content_length and request.content_length > MAX_REQUEST_BODY_SIZE:
        raise ValidationError("Request body too large.")
    raw = await request.read()
    if len(raw) > MAX_REQUEST_BODY_SIZE:
        raise ValidationError("Request body too large.")
    if not raw:
        return {}
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ValidationError("Request body must be valid JSON.") from e
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")
    return payload


def _validation_message(error: pydantic.ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "Invalid input")
    return f"{location}: {message}" if location else message


@web.middleware
async def error_middleware(request: Request, handler):
    """Map raised exceptions to JSON error responses."""
    try:
        return await handler(request)
    except web.HTTPException as e:
        if e.status < 400:
            raise
        return json_error(e.reason, e.status)
    except pydantic.ValidationError as e:
        return json_error(_validation_message(e), 400)
    except FixHubError as e:
        for error_type, status in _STATUS_BY_ERROR:
            if isinstance(e, error_type):
                break
        else:
            status = 500

        if status >= 500:
            logger.error(f"{request.method} {request.path} failed: {e}", exc_info=True)
            return json_error("Server Error", status)

        logger.info(f"{request.method} {request.path} -> {status}: {e}")
        return json_error(str(e), status)
    except Exception as e:
        logger.error(
            f"Unexpected error on {request.method} {request.path}: {e}", exc_info=True
        )
        return json_error("Server Error", 500)


@web.middleware
async def security_headers_middleware(request: Request, handler):
    """
    Add security headers to all responses.

    - Prevents MIME type sniffing
    - Prevents clickjacking
    - Enforces HTTPS
    """
    response = await handler(request)

    # Websocket responses have already sent their headers
    if response.prepared:
        return response

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Strict-Transport-Security"] = (
        "max-age=31536000; includeSubDomains"
    )

    return response
