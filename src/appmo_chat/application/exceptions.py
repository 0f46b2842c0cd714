from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    status_code = 400

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class ValidationError(AppError):
    status_code = 422
