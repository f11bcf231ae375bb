"""
Per-venue credential cache.

A plain mapping from venue id to the last fetched credential. Freshness is
judged by the caller against the configured TTL; a stale entry is treated
as missing and refetched before use.
"""

from datetime import datetime
from typing import Dict
from typing import Optional

from seat_sampler.models import Credential


class CredentialCache:
    def __init__(self, ttl_seconds: float) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[int, Credential] = {}

    def get(self, venue_id: int) -> Optional[Credential]:
        return self._entries.get(venue_id)

    def put(self, venue_id: int, credential: Credential) -> None:
        self._entries[venue_id] = credential

    def get_fresh(self, venue_id: int, now: datetime) -> Optional[Credential]:
        """Return the cached credential only if it is younger than the TTL."""
        credential = self._entries.get(venue_id)
        if credential is None or not credential.is_fresh(now, self.ttl_seconds):
            return None
        return credential

    def prune(self, now: datetime) -> int:
        """Drop stale entries. Returns the number removed."""
        stale = [
            venue_id for venue_id, credential in self._entries.items()
            if not credential.is_fresh(now, self.ttl_seconds)
        ]
        for venue_id in stale:
            del self._entries[venue_id]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, venue_id: int) -> bool:
        return venue_id in self._entries
