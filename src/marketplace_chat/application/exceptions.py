from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    retryable: bool = False

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class ForbiddenError(AppError):
    pass


class ConflictError(AppError):
    pass


class ValidationError(AppError):
    pass


class IdentityMissingError(AppError):
    """No authenticated participant; the caller must log in first."""


class StoreUnavailableError(AppError):
    """Transport or backing-store failure."""

    retryable = True


class SendTimeoutError(AppError):
    """A send was not confirmed inside its window. Retried only by the user."""

    retryable = True
