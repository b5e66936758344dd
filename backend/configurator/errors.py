# Overview: Error taxonomy shared by services; routes translate these into HTTP status codes.

"""
Service Errors

Services raise these; route handlers catch them and answer with
{"error": message} and the matching status code.

ACCESS POLICY: a record that exists but is outside the caller's access
scope (another user's customer or quotation) raises NotFoundError, never
ForbiddenError. ForbiddenError is reserved for the role gate.
"""


class ServiceError(Exception):
    """Base class for expected, client-facing failures."""
    status_code = 400


class NotFoundError(ServiceError):
    """Entity absent, inactive, or outside the caller's access scope."""
    status_code = 404


class BadRequestError(ServiceError):
    """Invalid state transition or invalid reference in the request."""
    status_code = 400


class ConflictError(BadRequestError):
    """Duplicate catalog entry (placement, option, dependency); a BadRequest answered with 409."""
    status_code = 409


class UnauthorizedError(ServiceError):
    """Missing, invalid or expired credentials, or an inactive account."""
    status_code = 401


class ForbiddenError(ServiceError):
    """Authenticated but lacking a required role."""
    status_code = 403

    def __init__(self, required_roles, message: str = "Forbidden"):
        super().__init__(message)
        self.required_roles = list(required_roles)

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "required_roles": self.required_roles,
            "message": "Insufficient role",
        }
