from __future__ import annotations

from typing import Optional


class SiteforgeError(Exception):
    """Base class for every error raised by the generation pipeline."""


class ConfigurationError(SiteforgeError):
    """No credentials (or no candidates) configured; never retried."""


class ProviderError(SiteforgeError):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class TransientProviderError(ProviderError):
    """Quota, rate limit or overload signal; rotation moves to the next candidate."""


class FatalProviderError(ProviderError):
    """Any other provider failure; rotation stops immediately."""


class EmptyResponseError(ProviderError):
    """The provider answered without a usable payload (empty text, no image, safety block)."""


class ExtractionError(SiteforgeError):
    """Model output could not be reduced to a JSON object."""

    def __init__(self, message: str, length: int = 0, preview: str = "") -> None:
        super().__init__(message)
        self.length = length
        self.preview = preview

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base} (length={self.length}, preview={self.preview!r})"


class AssetResolutionFailure(SiteforgeError):
    """Image synthesis failed for one asset need; downgraded to a placeholder by the resolver."""


class UnknownProjectError(SiteforgeError):
    """The project id is malformed or has no stored manifest."""
