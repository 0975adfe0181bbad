from typing import Optional

from flask import jsonify


class ConfigurationError(RuntimeError):
    """Raised at startup when required settings are missing or malformed."""


class ServiceError(Exception):
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(ServiceError):
    status_code = 400
    default_message = "Invalid request."


class ConflictError(ServiceError):
    status_code = 400
    default_message = "Resource already exists."


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Not found."


class CredentialsError(ServiceError):
    status_code = 400
    default_message = "Invalid credentials."


class UnauthorizedError(ServiceError):
    status_code = 401
    default_message = "Unauthorized."


class TokenExpiredError(UnauthorizedError):
    default_message = "Token has expired. Please login again."


class TokenInvalidError(UnauthorizedError):
    default_message = "Invalid token. Unauthorized access."


class OtpExpiredError(ServiceError):
    status_code = 400
    default_message = "OTP has expired"


class OtpInvalidError(ServiceError):
    status_code = 400
    default_message = "Invalid OTP"


class DependencyError(ServiceError):
    status_code = 500
    default_message = "A downstream service failed."


def envelope(message: str, data=None, *, success: bool = True) -> dict:
    body = {"message": message, "error": not success, "success": success}
    if data is not None:
        body["data"] = data
    return body


def success_response(message: str, data=None, status_code: int = 200):
    return jsonify(envelope(message, data)), status_code


def error_response(message: str, status_code: int):
    return jsonify(envelope(message, success=False)), status_code
