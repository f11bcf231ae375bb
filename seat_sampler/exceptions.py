"""
Error taxonomy of the seat sampler.

Per-item errors (classification, credential, probe, resolution) are caught
by the stage that hit them and turned into failure records. Only store
level errors may abort a whole batch.
"""

from typing import Optional


class SeatSamplerError(Exception):
    """Base class for all seat sampler errors."""

    kind = "error"

    def __init__(self, message: str, show_id: Optional[int] = None) -> None:
        self.message = message
        self.show_id = show_id
        super().__init__(message)


class ConfigurationError(SeatSamplerError):
    kind = "configuration"


class ClassificationError(SeatSamplerError):
    """A venue could not be mapped to any provider."""

    kind = "classification"


class CredentialError(SeatSamplerError):
    """A venue credential could not be fetched."""

    kind = "credential"


class ProbeError(SeatSamplerError):
    """A provider failed to observe a showing."""

    kind = "probe"


class ScreenResolutionError(SeatSamplerError):
    """A measurement did not match any screen of its venue."""

    kind = "resolution"


class StoreError(SeatSamplerError):
    kind = "store"
