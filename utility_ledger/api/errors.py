"""API error handling and response helpers."""

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from utility_ledger.errors import LedgerError

logger = logging.getLogger(__name__)


def error_response(error: LedgerError) -> Dict[str, Any]:
    """Create a standardized error response."""
    body = {
        "code": error.code,
        "message": error.message,
    }
    body.update(error.details())
    return {"error": body}


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Translate a LedgerError into its HTTP status and JSON body."""
    logger.warning(f"{request.method} {request.url.path} rejected: {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=error_response(exc))


def register_error_handlers(app: FastAPI) -> None:
    """Install ledger error translation on an application."""
    app.add_exception_handler(LedgerError, ledger_error_handler)


__all__ = ["error_response", "ledger_error_handler", "register_error_handlers"]
