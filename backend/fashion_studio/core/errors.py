from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


@dataclass(eq=False)
class AppError(Exception):
    error_code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    http_status: int = 400

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error_code": self.error_code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"


class NotFoundError(AppError):
    def __init__(self, error_code: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(error_code, message, details, http_status=404)


class ConflictError(AppError):
    def __init__(self, error_code: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(error_code, message, details, http_status=409)


class ForbiddenError(AppError):
    def __init__(self, error_code: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(error_code, message, details, http_status=403)


class ValidationFailed(AppError):
    def __init__(self, error_code: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(error_code, message, details, http_status=422)


class InsufficientCreditsError(AppError):
    def __init__(self, credits: int, required: int) -> None:
        super().__init__(
            "INSUFFICIENT_CREDITS",
            "Insufficient credits",
            {"credits": credits, "required": required},
            http_status=402,
        )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.http_status, content={"detail": exc.to_dict()})
