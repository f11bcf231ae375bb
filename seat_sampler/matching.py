"""
Screen matching.

Resolves what a probe observed (an auditorium label or a raw seat count) to
one of the venue's known screens, and derives seats sold from it.
"""

import re
import unicodedata
from typing import Iterable
from typing import List
from typing import Optional
from typing import Tuple

from seat_sampler.models import Screen

_AUDITORIUM_WORDS = re.compile(r"\b(salle|aud|auditorium|screen|vip)\b")
_LEADING_ZEROS = re.compile(r"(^|[^\d])0+(\d)")
_DIGITS = re.compile(r"\d+")


def _strip_accents(s: str) -> str:
    decomposed = unicodedata.normalize("NFD", s)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_auditorium(name: Optional[str]) -> str:
    """
    Reduce an auditorium label to a comparable key.

    ``"Salle 07"``, ``"Aud #7"`` and ``"7"`` all normalize to ``"7"``.
    """
    s = _strip_accents((name or "").lower())
    s = _AUDITORIUM_WORDS.sub("", s)
    s = s.replace("#", "")
    s = re.sub(r"\s+", "", s)
    return _LEADING_ZEROS.sub(r"\1\2", s)


def extract_digits(name: Optional[str]) -> str:
    return "".join(_DIGITS.findall(name or ""))


def match_screen_by_name(screens: Iterable[Screen], auditorium: Optional[str]) -> Tuple[Optional[Screen], str]:
    """
    Find the screen an observed auditorium label refers to.

    Tries an exact name match, then the best normalized or digit-based
    match, then a case-insensitive partial match.

    Returns:
        ``(screen, strategy)``; ``screen`` is None when nothing matched
    """
    raw = (auditorium or "").strip()
    candidates: List[Screen] = list(screens)
    if not raw or not candidates:
        return None, "none"

    for screen in candidates:
        if screen.name == raw:
            return screen, "exact"

    wanted = normalize_auditorium(raw)
    wanted_digits = extract_digits(raw)
    best: Optional[Screen] = None
    best_score = 3.0
    for screen in candidates:
        norm = normalize_auditorium(screen.name)
        score = 3.0  # lower is better
        if norm == wanted:
            score = 0.0
        elif wanted_digits and extract_digits(screen.name) == wanted_digits:
            score = 1.0
        elif norm and wanted and (wanted in norm or norm in wanted):
            score = 1.5
        if best is None or score < best_score or (
            score == best_score and len(screen.name) < len(best.name)
        ):
            best, best_score = screen, score
    if best is not None and best_score <= 1.5:
        return best, "normalized"

    lowered = raw.lower()
    partial = sorted(
        (s for s in candidates if lowered in s.name.lower()),
        key=lambda s: len(s.name),
    )
    if partial:
        return partial[0], "partial"

    return None, "none"


def match_screen_by_seat_count(
    screens: Iterable[Screen],
    capacity: Optional[int],
    tolerance: int = 0,
) -> Tuple[Optional[Screen], bool]:
    """
    Find a screen from an observed raw capacity.

    Returns:
        ``(screen, fuzzy)`` where ``fuzzy`` tells whether the match relied on
        the tolerance
    """
    if capacity is None:
        return None, False
    candidates = sorted(screens, key=lambda s: s.name)
    for screen in candidates:
        if screen.seat_count == capacity:
            return screen, False
    if tolerance <= 0:
        return None, False
    near = [s for s in candidates if abs(s.seat_count - capacity) <= tolerance]
    if not near:
        return None, False
    near.sort(key=lambda s: (abs(s.seat_count - capacity), -s.seat_count, s.name))
    return near[0], True


def map_capacity_to_screen(screens: Iterable[Screen], capacity: int) -> Optional[Screen]:
    """Screen with exactly ``capacity`` seats, else the nearest above, else the nearest below."""
    candidates = sorted(screens, key=lambda s: s.name)
    for screen in candidates:
        if screen.seat_count == capacity:
            return screen
    above = sorted((s for s in candidates if s.seat_count >= capacity), key=lambda s: s.seat_count)
    if above:
        return above[0]
    below = sorted((s for s in candidates if s.seat_count < capacity), key=lambda s: -s.seat_count)
    return below[0] if below else None


def compute_seats_sold(capacity: int, seats_remaining: int) -> int:
    """``capacity - seats_remaining`` clamped to ``[0, capacity]``."""
    capacity = max(0, capacity)
    return max(0, min(capacity, capacity - seats_remaining))
