"""Error kinds shared by the services and the result objects they return.

Services raise these internally and convert them at their public boundary
with :func:`failure`, so views only ever see ``{"success": ..., ...}`` dicts.
"""


class ServiceError(Exception):
    kind = "error"
    status = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(ServiceError):
    kind = "validation"
    status = 400
    default_message = "Invalid input"

    def __init__(self, message=None, errors=None):
        super().__init__(message or (errors[0] if errors else None))
        self.errors = list(errors or [self.message])


class AuthError(ServiceError):
    kind = "auth"
    status = 401
    default_message = "Authentication failed"


class AccessDenied(ServiceError):
    kind = "access_denied"
    status = 403
    default_message = "Access denied"


class NotFound(ServiceError):
    kind = "not_found"
    status = 404
    default_message = "Document not found"


class ShareUnavailable(ServiceError):
    kind = "share_unavailable"
    status = 404
    default_message = "This shared document is not available"


class NotShared(ShareUnavailable):
    default_message = "Document is not shared"


class LinkExpired(ShareUnavailable):
    default_message = "Sharing link has expired"


class StoreUnavailable(ServiceError):
    kind = "store_unavailable"
    status = 503
    default_message = "Document store is unavailable"


class NetworkError(ServiceError):
    kind = "network"
    status = 502
    default_message = "Network error. Please try again."


def failure(error, **defaults):
    """Build the failed-result dict for ``error``.

    ``defaults`` carries the empty payload the caller should render instead
    of data (``documents=[]``, zeroed stats, ...).
    """
    result = {"success": False, "error": str(error), "kind": getattr(error, "kind", ServiceError.kind)}
    if isinstance(error, ValidationError):
        result["errors"] = error.errors
    result.update(defaults)
    return result


def status_for(result):
    """HTTP status for a failed result; 200 for successes."""
    if result.get("success"):
        return 200
    for cls in (ValidationError, AuthError, AccessDenied, NotFound, ShareUnavailable,
                StoreUnavailable, NetworkError):
        if result.get("kind") == cls.kind:
            return cls.status
    return ServiceError.status
