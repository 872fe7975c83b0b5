"""
Error taxonomy for the upscaler.

Everything except SessionLockConflict is scoped to a single attempt on a
single image: the item pipeline catches it, logs the failing stage, and
decides whether to back off and retry.
"""


class UpscalerError(Exception):
    """Base class for all upscaler failures."""


class CapabilityTimeout(UpscalerError):
    """No candidate for a required capability became usable in time."""

    def __init__(self, capability: str, timeout_ms: int):
        self.capability = capability
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Timeout waiting for {capability} ({timeout_ms / 1000:.0f}s)"
        )


class SubmissionRejected(UpscalerError):
    """A file or text submission was attempted but the surface did not take it."""


class EmptyResult(UpscalerError):
    """Retrieval finished but the saved artifact has zero bytes."""


class SessionLockConflict(UpscalerError):
    """The browser profile is held by another running instance. Fatal."""


class MalformedState(UpscalerError):
    """The resume record exists but cannot be parsed."""
