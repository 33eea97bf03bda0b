"""Custom exception types raised by the arcwire core."""

from __future__ import annotations

_BODY_EXCERPT_LIMIT = 300


class AdapterError(RuntimeError):
    """Raised when an adapter cannot fulfil a request."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigurationError(AdapterError):
    """Raised before any network I/O when settings are unusable."""


class ProviderHTTPError(AdapterError):
    """A provider answered with a non-2xx status."""

    def __init__(
        self,
        label: str,
        status_code: int,
        body: str,
        *,
        provider: str | None = None,
        model: str | None = None,
    ) -> None:
        self.label = label
        self.status_code = status_code
        self.body = body[:_BODY_EXCERPT_LIMIT]
        self.provider = provider
        self.model = model
        super().__init__(f"{label} error {status_code}: {self.body}")


class PromptCancelled(AdapterError):
    """Raised by :meth:`PromptResult.raise_if_cancelled` for aborted prompts."""
