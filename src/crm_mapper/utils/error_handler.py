"""Error types for the mapping pipeline with user-friendly messages."""
from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Optional

import structlog

if TYPE_CHECKING:
    from crm_mapper.models.validation import Violation

logger = structlog.get_logger(__name__)

# Upper bound on raw response text echoed back to the user
RAW_PREVIEW_CHARS = 500


class MapperError(Exception):
    """Base class for mapping errors with user-friendly messaging."""

    def __init__(self, error_type: str, message: str, details: str = "", is_retryable: bool = False):
        self.error_type = error_type
        self.message = message
        self.details = details
        self.is_retryable = is_retryable
        super().__init__(self.message)

    def get_user_message(self) -> str:
        """Return a user-friendly error message."""
        msg = f"\nError: {self.message}"
        if self.details:
            msg += f"\n   Details: {self.details}"
        if self.is_retryable:
            msg += "\n   Tip: This is usually temporary. Submitting the request again is safe."
        return msg


class ServiceError(MapperError):
    """The generation or transformation service failed or was unreachable."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: str = ""):
        retryable = status_code is None or status_code == 429 or status_code >= 500
        super().__init__(
            error_type="SERVICE_ERROR",
            message=message,
            details=details or (f"HTTP status {status_code}" if status_code else ""),
            is_retryable=retryable,
        )
        self.status_code = status_code


class MalformedResponseError(MapperError):
    """Service response could not be parsed into the expected shape."""

    def __init__(self, reason: str, raw_text: str = ""):
        preview = raw_text[:RAW_PREVIEW_CHARS]
        super().__init__(
            error_type="MALFORMED_RESPONSE",
            message=f"Service response could not be parsed: {reason}",
            details=f"Raw response: {preview!r}" if raw_text else "",
            is_retryable=True,
        )
        self.reason = reason
        self.raw_text = raw_text


class InvariantViolationError(MapperError):
    """Parsed mapping document breaks one or more invariants."""

    def __init__(self, violations: list["Violation"], raw_text: str = ""):
        super().__init__(
            error_type="INVARIANT_VIOLATION",
            message=f"Mapping document failed validation ({len(violations)} problem{'s' if len(violations) != 1 else ''})",
            details="; ".join(str(v) for v in violations),
            is_retryable=True,
        )
        self.violations = violations
        self.raw_text = raw_text

    @property
    def invariants(self) -> set[str]:
        return {v.invariant for v in self.violations}


class EditValidationError(MapperError):
    """A local edit would produce an invalid rule."""

    def __init__(self, violations: list["Violation"]):
        super().__init__(
            error_type="EDIT_VALIDATION",
            message="Edit rejected",
            details="; ".join(str(v) for v in violations),
            is_retryable=False,
        )
        self.violations = violations


def handle_service_exception(error: Exception, service_name: str = "LLM service") -> ServiceError:
    """Convert SDK and transport exceptions to ServiceError."""
    if isinstance(error, ServiceError):
        return error

    status_code = getattr(error, "status_code", None)
    if status_code is None:
        response = getattr(error, "response", None)
        status_code = getattr(response, "status_code", None)

    error_str = str(error)
    if status_code is None:
        # Fall back to sniffing the message when the SDK does not expose a status
        for code in (529, 429, 401, 403):
            if str(code) in error_str:
                status_code = code
                break

    if status_code in (401, 403):
        message = f"{service_name} rejected the credentials - check your API key"
    elif status_code == 429:
        message = f"{service_name} rate limit exceeded"
    elif status_code == 529:
        message = f"{service_name} is currently overloaded"
    else:
        message = f"{service_name} request failed"

    return ServiceError(
        message=message,
        status_code=status_code if isinstance(status_code, int) else None,
        details=error_str[:200],
    )


def exit_with_error(error: MapperError, context: str = "") -> int:
    """Log error and return a failing exit code with a user-friendly message."""
    logger.error(
        "pipeline_failed",
        error_type=error.error_type,
        message=error.message,
        details=error.details,
        context=context,
    )

    print(error.get_user_message(), file=sys.stderr)

    if isinstance(error, InvariantViolationError):
        print("\nProblems:", file=sys.stderr)
        for violation in error.violations:
            print(f"   - {violation}", file=sys.stderr)
    elif isinstance(error, ServiceError) and error.status_code in (401, 403):
        print("\nNext steps:", file=sys.stderr)
        print("   1. Check ANTHROPIC_API_KEY / OPENAI_API_KEY in your environment or .env", file=sys.stderr)
        print("   2. Verify the configured provider and model", file=sys.stderr)
    elif error.is_retryable:
        print("\nNext steps:", file=sys.stderr)
        print("   1. Run the same command again", file=sys.stderr)

    print("", file=sys.stderr)
    return 1
