import logging
from typing import List

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("API")


class UnknownTableError(KeyError):
    """Raised when a record is checked against a table that has no schema."""

    def __init__(self, table_name: str):
        super().__init__(table_name)
        self.table_name = table_name

    def __str__(self):
        return f"No validation schema found for table: {self.table_name}"


class PayloadValidationError(Exception):
    """Request body failed schema validation; carries the user-facing messages."""

    def __init__(self, errors: List[str]):
        super().__init__(f"{len(errors)} validation error(s)")
        self.errors = list(errors)


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(PayloadValidationError)
    async def payload_validation_handler(request: Request, exc: PayloadValidationError):
        logger.warning(f"Rejected {request.method} {request.url.path}: {len(exc.errors)} validation error(s)")
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Validation failed", "errors": exc.errors},
        )

    @app.exception_handler(UnknownTableError)
    async def unknown_table_handler(request: Request, exc: UnknownTableError):
        logger.error(f"Validation misconfigured for {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Internal validation error"},
        )
