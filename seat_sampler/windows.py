"""
Sampling window policy.

Maps a provider (and optionally a venue) to the interval around show start
during which probing is meaningful, and widens any window too narrow to be
drained by at least one tick.
"""

import logging
import unicodedata
from datetime import datetime
from datetime import timedelta
from typing import Dict
from typing import Mapping
from typing import Optional
from typing import Tuple

from seat_sampler.models import ProviderWindow
from seat_sampler.settings import Settings

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    """Accent-, case- and whitespace-insensitive form of a venue name."""
    decomposed = unicodedata.normalize("NFD", name or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.lower().split())


def normalize_window(window: ProviderWindow, min_span: int) -> ProviderWindow:
    """Push ``window_end_sec`` outward until the span reaches ``min_span``."""
    if window.window_end_sec < window.window_start_sec + min_span:
        return ProviderWindow(
            window_start_sec=window.window_start_sec,
            window_end_sec=window.window_start_sec + min_span,
        )
    return window


class WindowPolicy:
    """
    Resolve the eligibility window of a showing.

    Precedence: venue override, then the provider's own window, then the
    default window. Every returned window is normalized to ``min_span``.
    """

    def __init__(
        self,
        provider_windows: Mapping[str, ProviderWindow],
        default_window: ProviderWindow,
        min_span: int,
        venue_windows: Optional[Mapping[str, ProviderWindow]] = None,
    ) -> None:
        self.min_span = min_span
        self.default_window = normalize_window(default_window, min_span)
        self._provider_windows: Dict[str, ProviderWindow] = {
            tag: normalize_window(w, min_span) for tag, w in provider_windows.items()
        }
        self._venue_windows: Dict[str, ProviderWindow] = {
            normalize_name(name): normalize_window(w, min_span)
            for name, w in (venue_windows or {}).items()
        }
        for tag, raw in provider_windows.items():
            if raw != self._provider_windows[tag]:
                logger.warning(
                    f"Window for provider {tag} widened to {min_span}s "
                    f"(configured {raw.window_start_sec}..{raw.window_end_sec})"
                )

    @classmethod
    def from_settings(cls, settings: Settings) -> "WindowPolicy":
        return cls(
            provider_windows=settings.provider_windows,
            default_window=settings.default_window,
            min_span=settings.min_window_span,
            venue_windows=settings.venue_windows,
        )

    def window_for(
        self,
        provider: str,
        venue_name: Optional[str] = None,
        override: Optional[ProviderWindow] = None,
    ) -> ProviderWindow:
        """
        Get the normalized window for a provider.

        Args:
            provider: Provider tag
            venue_name: Venue display name, checked against configured overrides
            override: Venue-specific window supplied by the provider itself

        Returns:
            Window with a span of at least ``min_span`` seconds
        """
        if venue_name:
            configured = self._venue_windows.get(normalize_name(venue_name))
            if configured is not None:
                return configured
        if override is not None:
            return normalize_window(override, self.min_span)
        return self._provider_windows.get(provider, self.default_window)

    @staticmethod
    def bounds(window: ProviderWindow, start_at: datetime) -> Tuple[datetime, datetime]:
        """Absolute ``(window_start, window_end)`` for a show starting at ``start_at``."""
        return (
            start_at + timedelta(seconds=window.window_start_sec),
            start_at + timedelta(seconds=window.window_end_sec),
        )
