"""
Ticketing provider integration for the seat sampler.

This package contains the provider-facing side of the scheduler:
- The provider interface and its optional capabilities
- The registry used to classify venues to providers
- A shared rate-limited HTTP client for provider implementations
"""

from seat_sampler.providers.base import Provider
from seat_sampler.providers.base import ProviderRegistry
from seat_sampler.providers.base import load_providers
from seat_sampler.providers.http_client import HttpClient
from seat_sampler.providers.http_client import HttpProvider

__all__ = ["Provider", "ProviderRegistry", "load_providers", "HttpClient", "HttpProvider"]
