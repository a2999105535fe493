from flask import jsonify


def jerror(status: int, code: str, message: str, details=None):
    payload = {"code": code, "message": message}
    if details:
        payload["details"] = details
    return jsonify(payload), status


class ServiceError(Exception):
    """Base for errors that reach the caller with a human-readable message."""

    status = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(ServiceError):
    status = 404
    code = "NOT_FOUND"


class InvalidState(ServiceError):
    status = 400
    code = "INVALID_STATE"


class ValidationFailed(ServiceError):
    status = 422
    code = "VALIDATION_ERROR"


class Forbidden(ServiceError):
    status = 403
    code = "FORBIDDEN"


class Conflict(ServiceError):
    status = 409
    code = "CONFLICT"


class Unavailable(ServiceError):
    status = 503
    code = "UNAVAILABLE"
