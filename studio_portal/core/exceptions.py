"""
Portal-wide exception hierarchy.

Services raise these types; the application registers one handler for
``PortalError`` and every subclass is rendered with its own machine code and
HTTP status. Blueprints therefore never translate errors by hand.

Usage:
    from studio_portal.core.exceptions import NotFoundError, PhaseMismatch

    raise NotFoundError(resource="Project", resource_id=42)
    raise PhaseMismatch(project_id=42, submitted="DSGN", current="ONB")

A held phase evaluation ("mandatory requirements not yet satisfied") is a
normal outcome and is never expressed as an exception.
"""


class PortalError(Exception):
    """Base class for errors that map to a structured API response."""

    code = "ERR_INTERNAL"
    status = 500

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(PortalError):
    """Raised when a requested resource does not exist or is out of scope.

    Args:
        resource: Human-readable entity name (e.g. "Project").
        resource_id: The key that was looked up. Included in logs and message.
    """

    code = "ERR_NOT_FOUND"
    status = 404

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(PortalError):
    """Raised when well-formed input violates a business rule."""

    code = "ERR_VALIDATION_INVALID"
    status = 400


class AuthenticationRequired(PortalError):
    code = "ERR_UNAUTHENTICATED"
    status = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class AccessDenied(PortalError):
    """Raised when an authenticated actor may not touch a project or action."""

    code = "ERR_FORBIDDEN"
    status = 403


# ── Workflow taxonomy ─────────────────────────────────────────────────────────


class InvalidPhaseKey(PortalError):
    """Unknown phase key. A programmer error when raised from internal code."""

    code = "ERR_INVALID_PHASE_KEY"
    status = 400

    def __init__(self, key) -> None:
        self.key = key
        super().__init__(
            f"Unknown phase key {key!r}",
            details={"phase_key": str(key)},
        )


class PhaseMismatch(PortalError):
    """A submission targeted a phase the project does not currently occupy.

    Recoverable: the client refreshes its state and resubmits.
    """

    code = "ERR_PHASE_MISMATCH"
    status = 409

    def __init__(self, project_id: int, submitted: str, current: str) -> None:
        self.project_id = project_id
        self.submitted = submitted
        self.current = current
        super().__init__(
            f"Project {project_id} is in phase {current}, not {submitted}. "
            "Refresh the project and submit again.",
            details={"submitted_phase": submitted, "current_phase": current},
        )


class RequirementNotFound(PortalError):
    code = "ERR_REQUIREMENT_NOT_FOUND"
    status = 404

    def __init__(self, requirement_id: str) -> None:
        self.requirement_id = requirement_id
        super().__init__(
            f"Requirement {requirement_id!r} not found",
            details={"requirement_id": requirement_id},
        )


class UnauthorizedToggle(PortalError):
    """A client tried to toggle a requirement kind that only an adapter may complete."""

    code = "ERR_UNAUTHORIZED_TOGGLE"
    status = 403

    def __init__(self, requirement_id: str, kind: str, role: str) -> None:
        self.requirement_id = requirement_id
        self.kind = kind
        self.role = role
        super().__init__(
            f"Requirements of kind '{kind}' cannot be toggled by role '{role}'. "
            "They are completed by their own workflow (form, signature, payment or approval).",
            details={"requirement_id": requirement_id, "kind": kind, "role": role},
        )


class PersistenceFailure(PortalError):
    """Transaction or lock failure after retries were exhausted. Caller should retry."""

    code = "ERR_PERSISTENCE"
    status = 503

    def __init__(self, message: str = "Could not complete the transaction, please retry",
                 details: dict | None = None) -> None:
        super().__init__(message, details={"retryable": True, **(details or {})})


class WebhookVerificationFailure(PortalError):
    """Payment webhook signature missing, malformed, stale or mismatched."""

    code = "ERR_WEBHOOK_SIGNATURE"
    status = 400


class WebhookConfigurationError(PortalError):
    """No webhook verification secret configured. Events are refused, never processed unsigned."""

    code = "ERR_WEBHOOK_NOT_CONFIGURED"
    status = 503
