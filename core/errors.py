# core/errors.py
"""Error taxonomy shared by the provider, rotation and pipeline layers.

Every error carries a stable :class:`ErrorCategory` so callers can react
(re-authenticate, repair a pool, retry later) without parsing provider
payloads. The category message is what users see; ``detail`` is diagnostic
text that is only shown when detailed errors are enabled.
"""

from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    """Stable, user-presentable error categories."""

    CONNECTION_UNSTABLE = "connection_unstable"
    UNAUTHORIZED = "unauthorized"
    INVALID_ENDPOINT = "invalid_endpoint"
    MISCONFIGURED = "misconfigured"
    MALFORMED_OUTPUT = "malformed_output"
    POOL_EMPTY = "pool_empty"
    ANCHORING_FAILED = "anchoring_failed"


CATEGORY_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.CONNECTION_UNSTABLE: "The connection to the narrator is unstable.",
    ErrorCategory.UNAUTHORIZED: "The provider rejected the credential.",
    ErrorCategory.INVALID_ENDPOINT: "The provider endpoint is invalid.",
    ErrorCategory.MISCONFIGURED: "The narrator is not configured correctly.",
    ErrorCategory.MALFORMED_OUTPUT: "The model output could not be understood.",
    ErrorCategory.POOL_EMPTY: "The credential pool has no usable members.",
    ErrorCategory.ANCHORING_FAILED: "World anchoring failed; the connection to the narrator is unstable.",
}


class ArcloomError(Exception):
    """Base class for all errors raised across the generation layer."""

    category: ErrorCategory = ErrorCategory.CONNECTION_UNSTABLE

    def __init__(
        self,
        detail: str | None = None,
        *,
        category: ErrorCategory | None = None,
    ) -> None:
        if category is not None:
            self.category = category
        self.detail = detail
        super().__init__(self.message)

    @property
    def message(self) -> str:
        return CATEGORY_MESSAGES[self.category]

    def describe(self, detailed: bool = False) -> str:
        """Return the user-facing message, with diagnostics when ``detailed``."""
        if detailed and self.detail:
            return f"{self.message} ({self.detail})"
        return self.message


class TransportError(ArcloomError):
    """Network, HTTP or decode failure talking to a provider."""

    category = ErrorCategory.CONNECTION_UNSTABLE


class AuthError(ArcloomError):
    """The provider rejected the credential."""

    category = ErrorCategory.UNAUTHORIZED


class EndpointError(ArcloomError):
    """Bad configuration: unknown endpoint, missing model id, wrong provider."""

    category = ErrorCategory.INVALID_ENDPOINT


class UnknownProviderError(EndpointError):
    """Raised by the factory for a provider tag it cannot serve."""

    category = ErrorCategory.MISCONFIGURED


class RepairFailure(ArcloomError):
    """Model output could not be coerced into JSON after every repair pass."""

    category = ErrorCategory.MALFORMED_OUTPUT

    def __init__(self, preview: str, cause: Exception | None, safe_mode: bool = False):
        self.preview = preview
        self.cause = cause
        self.safe_mode = safe_mode
        if safe_mode:
            detail = "JSON repair failed."
        else:
            detail = f"JSON repair failed after all passes: {cause}. Input preview: {preview!r}"
        super().__init__(detail)


class PoolEmpty(ArcloomError):
    """A rotation pool has no eligible members."""

    category = ErrorCategory.POOL_EMPTY

    def __init__(self, pool_id: str, pool_name: str = "") -> None:
        self.pool_id = pool_id
        self.pool_name = pool_name
        super().__init__(f"Pool '{pool_name or pool_id}' is empty or its keys are gone.")


class PipelineAborted(ArcloomError):
    """A world generation step failed outright."""

    category = ErrorCategory.ANCHORING_FAILED

    def __init__(self, stage: str, cause: Exception | None = None) -> None:
        self.stage = stage
        self.cause = cause
        detail = f"stage '{stage}' failed"
        if isinstance(cause, ArcloomError):
            detail = f"{detail}: {cause.describe(detailed=True)}"
        elif cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail)
