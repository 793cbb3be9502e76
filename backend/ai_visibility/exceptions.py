"""Error taxonomy for the discovery engine.

Only ``ConfigurationError`` is allowed to reach the caller of the pipeline.
Everything else is recovered inside the component that observed it.
"""

from __future__ import annotations


class ConfigurationError(EnvironmentError):
    """Required credentials or settings are missing. Fatal, raised at startup."""

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(
            "Missing required configuration: " + ", ".join(self.missing)
        )


class UpstreamError(Exception):
    """A search or LM call failed after all permitted attempts."""


class RateLimitedError(UpstreamError):
    """The upstream service answered HTTP 429."""
