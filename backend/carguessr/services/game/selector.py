import random
from collections import deque
from typing import Iterator, Sequence

from carguessr.errors import NoListingsAvailable
from carguessr.listings import Listing


class SessionHistory:
    """Ids recently served to one session, oldest first.

    Backed by a fixed-size ring buffer so memory per session is capped no
    matter how long the player keeps going.
    """

    def __init__(self, window: int = 10):
        self._ids = deque(maxlen=window)

    @property
    def window(self) -> int:
        return self._ids.maxlen

    def record(self, listing_id: str) -> None:
        self._ids.append(listing_id)

    def __contains__(self, listing_id) -> bool:
        return listing_id in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def snapshot(self) -> list:
        return list(self._ids)


def select_listing(candidates: Sequence[Listing], history: SessionHistory, difficulty: str = '',
                   rng: random.Random = None) -> Listing:
    """Pick a listing not in ``history`` and record it there.

    When every candidate was seen recently the whole pool is used instead;
    running low on fresh cars must never stop a game.
    """
    if not candidates:
        raise NoListingsAvailable(difficulty or 'requested')
    rng = rng or random
    fresh = [c for c in candidates if c.id not in history]
    chosen = rng.choice(fresh or list(candidates))
    history.record(chosen.id)
    return chosen
