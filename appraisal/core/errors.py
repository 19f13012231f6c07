import logging
import math
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

logger = logging.getLogger(__name__)

def _json_safe(value: Any) -> Any:
    # Error entries echo the offending input; NaN/Infinity cannot go out as JSON.
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_safe(v) for v in value]
    return value

def _error_response(errors: Any) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": _json_safe(jsonable_encoder(errors))})

async def schema_violation_handler(request: Request, exc: ValidationError):
    """
    Structural validation failures raised by the engine's boundary parsers
    (search request, grounded report input). Caller bug: abort with 422.
    """
    logger.warning("schema violation on %s: %d error(s)", request.url.path, exc.error_count())
    return _error_response(exc.errors(include_url=False))

async def request_violation_handler(request: Request, exc: RequestValidationError):
    logger.info("rejected request body on %s: %d error(s)", request.url.path, len(exc.errors()))
    return _error_response(exc.errors())

def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationError, schema_violation_handler)
    app.add_exception_handler(RequestValidationError, request_violation_handler)
