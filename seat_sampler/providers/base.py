"""
Provider interface and registry.

A provider is the ticketing back-end a venue sells through. Every provider
can classify venue names and probe seats; some additionally fetch per-venue
credentials or probe a candidate capacity. Those optional capabilities are
detected by method presence, so a provider only implements what its
back-end supports:

    async def fetch_credential(self, venue_url: str, api_id: str | None) -> str
    async def probe_capacity_candidate(self, request: CapacityProbeRequest, candidate: int) -> CapacityProbeResult
"""

import importlib
import logging
from abc import ABC
from abc import abstractmethod
from typing import Iterable
from typing import List
from typing import Optional

from seat_sampler.exceptions import ConfigurationError
from seat_sampler.models import ProbeRequest
from seat_sampler.models import ProbeResult
from seat_sampler.models import ProviderWindow
from seat_sampler.windows import normalize_name

logger = logging.getLogger(__name__)


class Provider(ABC):
    """
    Base class for ticketing providers.

    Subclasses set ``tag`` and implement :meth:`probe_seats`. The default
    :meth:`classify` recognizes the venue names given to the constructor.
    """

    tag: str = ""

    def __init__(self, venue_names: Iterable[str] = ()) -> None:
        if not self.tag:
            raise ConfigurationError(f"{type(self).__name__} has no provider tag")
        self._venue_names = {normalize_name(n) for n in venue_names}

    def classify(self, venue_name: str) -> Optional[str]:
        """Return this provider's tag if it serves ``venue_name``."""
        if normalize_name(venue_name) in self._venue_names:
            return self.tag
        return None

    @abstractmethod
    async def probe_seats(self, request: ProbeRequest) -> Optional[ProbeResult]:
        """
        Observe seat availability for one showing.

        Returns:
            The observation, or None when the showing was not found

        Raises:
            Any exception on network or parse errors; the caller records it.
        """

    def window_override(self, venue_name: str) -> Optional[ProviderWindow]:
        """Venue-specific sampling window, if the provider tunes one."""
        return None

    @property
    def requires_credential(self) -> bool:
        return callable(getattr(self, "fetch_credential", None))

    @property
    def supports_capacity_probe(self) -> bool:
        return callable(getattr(self, "probe_capacity_candidate", None))

    async def close(self) -> None:
        """Release network resources held by the provider."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(tag={self.tag!r})"


class ProviderRegistry:
    """
    Ordered set of providers.

    Classification asks each provider in registration order and takes the
    first that claims the venue, so more specific providers go first.
    """

    def __init__(self, providers: Iterable[Provider] = ()) -> None:
        self._providers: List[Provider] = []
        for provider in providers:
            self.register(provider)

    def register(self, provider: Provider) -> None:
        if any(p.tag == provider.tag for p in self._providers):
            raise ConfigurationError(f"Provider tag {provider.tag!r} registered twice")
        self._providers.append(provider)

    def classify(self, venue_name: str) -> Optional[Provider]:
        for provider in self._providers:
            if provider.classify(venue_name):
                return provider
        return None

    def get(self, tag: str) -> Optional[Provider]:
        for provider in self._providers:
            if provider.tag == tag:
                return provider
        return None

    @property
    def tags(self) -> List[str]:
        return [p.tag for p in self._providers]

    async def close(self) -> None:
        for provider in self._providers:
            try:
                await provider.close()
            except Exception as e:
                logger.warning(f"Closing provider {provider.tag} failed: {e}")

    def __len__(self) -> int:
        return len(self._providers)

    def __iter__(self):
        return iter(self._providers)


def load_providers(import_paths: Iterable[str], **factory_kwargs) -> ProviderRegistry:
    """
    Build a registry from ``"module.path:factory"`` strings.

    Each factory is called with ``factory_kwargs`` and must return a
    :class:`Provider`.

    Raises:
        ConfigurationError: if a path cannot be imported or does not yield a provider
    """
    registry = ProviderRegistry()
    for path in import_paths:
        module_name, _, attr = path.partition(":")
        if not module_name or not attr:
            raise ConfigurationError(f"Provider path {path!r} must look like 'module:factory'")
        try:
            factory = getattr(importlib.import_module(module_name), attr)
        except (ImportError, AttributeError) as e:
            raise ConfigurationError(f"Cannot load provider {path!r}: {e}") from e
        provider = factory(**factory_kwargs)
        if not isinstance(provider, Provider):
            raise ConfigurationError(f"{path!r} returned {type(provider).__name__}, not a Provider")
        registry.register(provider)
        logger.info(f"Registered provider {provider.tag} from {path}")
    return registry
