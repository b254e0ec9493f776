"""
Typed errors for the dispatch core.

Each error maps to an HTTP status code. Routers let them propagate and the
exception handlers in ``main.py`` render them as ``{"success": false,
"error": ...}`` bodies, so no route handler carries status-code logic.
"""


class DispatchError(Exception):
    """Base class for all dispatch domain errors."""

    status_code: int = 500

    def __init__(self, detail: str = "Internal error"):
        self.detail = detail
        super().__init__(detail)


class ValidationError(DispatchError):
    """Missing or malformed required input (400)."""

    status_code = 400


class AuthorizationError(DispatchError):
    """Actor is not entitled to mutate this request (403)."""

    status_code = 403


class NotFoundError(DispatchError):
    """Unknown request, customer or worker id (404)."""

    status_code = 404


class ConflictError(DispatchError):
    """State machine guard failed, e.g. accept on a non-NEW request (409)."""

    status_code = 409


class UpstreamStoreError(DispatchError):
    """Authoritative store unreachable or a write failed (500)."""

    status_code = 500


class MirrorStoreError(DispatchError):
    """
    Mirror store unreachable or rejected a call.

    Never surfaced to callers: the dual-store facade logs it and carries on.
    """

    status_code = 500
