"""Shuffle collaborator — pure logic, no I/O.

Provides:
- Fisher–Yates shuffle (unbiased) over an injectable RNG
- ``true_random_shuffle`` backed by the OS entropy source
- Queue selection: play-first track plus a capped remainder
"""

from __future__ import annotations

import random
from typing import List, Optional, Sequence, Tuple, TypeVar

from core.models import Track

T = TypeVar("T")

_system_rng = random.SystemRandom()


# ---------------------------------------------------------------------------
# Fisher–Yates Shuffle
# ---------------------------------------------------------------------------

def fisher_yates_shuffle(
    items: List[T],
    rng: Optional[random.Random] = None,
) -> List[T]:
    """In-place unbiased Fisher–Yates (Knuth) shuffle.

    Parameters
    ----------
    items:
        List to shuffle.  Will be **mutated** in place.
    rng:
        Optional ``random.Random`` instance for deterministic testing.

    Returns
    -------
    The same list (shuffled in place) for convenience.
    """
    rng = rng or _system_rng
    n = len(items)
    for i in range(n - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


def true_random_shuffle(items: Sequence[T]) -> List[T]:
    """Return a **new** uniformly-random permutation of *items*."""
    return fisher_yates_shuffle(list(items))


# ---------------------------------------------------------------------------
# Track helpers
# ---------------------------------------------------------------------------

def has_playable_uri(tracks: Optional[Sequence[Track]]) -> bool:
    """True if *tracks* is non-empty and every track carries a URI."""
    return bool(tracks) and all(t.uri for t in tracks)


def select_for_queue(shuffled: Sequence[T], max_size: int) -> Tuple[T, List[T]]:
    """Split a shuffled list into (play_first, to_queue).

    At most *max_size* items are selected in total, always a prefix of the
    permutation so the first track and the queue come from one shuffle.
    """
    if not shuffled:
        raise ValueError("Nothing to select from an empty list")
    selected = list(shuffled[:max_size])
    return selected[0], selected[1:]
