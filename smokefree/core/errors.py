from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer failures.

    Each subclass carries the HTTP status and the stable error code the API
    layer reports, so services never import FastAPI:
    - validation_error (400)
    - unauthorized / invalid_credentials / token_expired (401)
    - payment_required (402)
    - forbidden / account_not_activated (403)
    - not_found (404)
    - conflict (409)
    - rate_limited (429)
    - server_error (500)
    """

    status_code: int = 400
    error_code: str = "validation_error"
    default_message: str = "Invalid request"

    def __init__(self, message: Optional[str] = None, *, detail: Optional[dict] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.detail = detail or {}


class ValidationError(ServiceError):
    pass


class IdentifierTaken(ServiceError):
    status_code = 409
    error_code = "identifier_taken"
    default_message = "Email or phone number is already registered"


class InvalidCredentials(ServiceError):
    """Unknown identifier and wrong password share this error on purpose."""

    status_code = 401
    error_code = "invalid_credentials"
    default_message = "Invalid credentials"


class RateLimited(ServiceError):
    status_code = 429
    error_code = "rate_limited"
    default_message = "Too many failed login attempts, try again later"


class AccountNotActivated(ServiceError):
    status_code = 403
    error_code = "account_not_activated"
    default_message = "Account has not been activated yet"


class AccountNotFound(ServiceError):
    status_code = 404
    error_code = "not_found"
    default_message = "Account not found"


class TokenInvalid(ServiceError):
    status_code = 401
    error_code = "token_invalid"
    default_message = "Invalid access token"


class TokenExpired(ServiceError):
    status_code = 401
    error_code = "token_expired"
    default_message = "Access token has expired"


class RefreshInvalid(ServiceError):
    status_code = 401
    error_code = "refresh_invalid"
    default_message = "Invalid or expired refresh token"


class TokenInvalidOrExpired(ServiceError):
    status_code = 400
    error_code = "activation_token_invalid"
    default_message = "Invalid or expired activation token"


class AlreadyActivated(ServiceError):
    status_code = 409
    error_code = "already_activated"
    default_message = "Account already activated"


class PlanNotFound(ServiceError):
    status_code = 404
    error_code = "plan_not_found"
    default_message = "Subscription plan not found"


class NoActiveSubscription(ServiceError):
    status_code = 404
    error_code = "no_active_subscription"
    default_message = "No active subscription found"


class PaymentFailed(ServiceError):
    status_code = 402
    error_code = "payment_failed"
    default_message = "Payment could not be completed"


class Forbidden(ServiceError):
    status_code = 403
    error_code = "forbidden"
    default_message = "You do not have access to this feature"


class StorageError(ServiceError):
    status_code = 500
    error_code = "server_error"
    default_message = "Server error, please try again later"


__all__ = [
    "ServiceError",
    "ValidationError",
    "IdentifierTaken",
    "InvalidCredentials",
    "RateLimited",
    "AccountNotActivated",
    "AccountNotFound",
    "TokenInvalid",
    "TokenExpired",
    "RefreshInvalid",
    "TokenInvalidOrExpired",
    "AlreadyActivated",
    "PlanNotFound",
    "NoActiveSubscription",
    "PaymentFailed",
    "Forbidden",
    "StorageError",
]
