"""
Request parsing and error responses shared by the mock servers.
"""

from typing import Any, Dict
import json
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import GRCMockError, InvalidBodyError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def configure_logging(level: str = "INFO", debug: bool = False) -> None:
    if debug:
        level = "DEBUG"
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def add_cors(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def install_error_handlers(app: FastAPI) -> None:
    """Render every error as a plain-text body with its status code."""

    @app.exception_handler(GRCMockError)
    async def grc_error_handler(request: Request, exc: GRCMockError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return PlainTextResponse(str(exc), status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return PlainTextResponse("Invalid request body", status_code=400)


async def read_json_object(request: Request) -> Dict[str, Any]:
    """Decode a JSON object body or raise InvalidBodyError."""
    try:
        body = await request.json()
    except ValueError:
        raise InvalidBodyError("Invalid request body") from None
    if not isinstance(body, dict):
        raise InvalidBodyError("Request body must be a JSON object")
    return body


async def read_body(request: Request) -> Dict[str, Any]:
    """
    Read a Slack-style body: JSON, or form-encoded as Slack also accepts.

    Form values that look like JSON lists or objects (blocks, attachments)
    are decoded.
    """
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        return await read_json_object(request)

    form = await request.form()
    body: Dict[str, Any] = {}
    for key, value in form.items():
        if isinstance(value, str) and value[:1] in ("[", "{"):
            try:
                value = json.loads(value)
            except ValueError:
                pass  # keep the raw string
        body[key] = value
    return body
