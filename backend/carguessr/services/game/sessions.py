"""Play sessions and the registry that owns them.

A session moves created -> in_progress -> complete and never leaves
complete. All reads and writes of one session happen while holding that
session's lock; the registry lock only guards the id -> slot mapping.
"""

import secrets
import string
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from carguessr.errors import SessionNotFound

from .selector import SessionHistory

STATUS_CREATED = 'created'
STATUS_IN_PROGRESS = 'in_progress'
STATUS_COMPLETE = 'complete'

_SESSION_ID_ALPHABET = string.ascii_letters + string.digits


def generate_session_id(length: int = 16) -> str:
    return ''.join(secrets.choice(_SESSION_ID_ALPHABET) for _ in range(length))


@dataclass(frozen=True)
class GuessRecord:
    listing_id: str
    guessed_price: float
    actual_price: float
    difference: float
    percentage_error: float
    points_awarded: float

    def to_dict(self) -> dict:
        return {
            'listingId': self.listing_id,
            'guessedPrice': self.guessed_price,
            'actualPrice': self.actual_price,
            'difference': self.difference,
            'percentage': self.percentage_error,
            'points': self.points_awarded,
        }


@dataclass
class PlaySession:
    session_id: str
    mode: str
    difficulty: str
    history: SessionHistory
    status: str = STATUS_CREATED
    cumulative_score: float = 0
    current_listing_id: Optional[str] = None
    ordinal: int = 0
    guesses: List[GuessRecord] = field(default_factory=list)
    challenge_code: Optional[str] = None
    # Fixed listing order for friend challenges; empty means pick freely
    listing_plan: Tuple[str, ...] = ()
    leaderboard_submitted: bool = False
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None

    @property
    def is_complete(self) -> bool:
        return self.status == STATUS_COMPLETE

    def begin(self, listing_id: str, now: float = None) -> None:
        self.current_listing_id = listing_id
        self.status = STATUS_IN_PROGRESS
        self.updated_at = time.time() if now is None else now

    def apply_guess(self, record: GuessRecord, next_listing_id: Optional[str], completes: bool,
                    now: float = None) -> None:
        now = time.time() if now is None else now
        self.guesses.append(record)
        self.cumulative_score += record.points_awarded
        self.ordinal += 1
        self.updated_at = now
        if completes:
            self.status = STATUS_COMPLETE
            self.current_listing_id = None
            self.completed_at = now
        else:
            self.current_listing_id = next_listing_id

    def final_score(self) -> int:
        """Score as it goes on the leaderboard (whole numbers only)."""
        return int(round(self.cumulative_score))

    def to_dict(self) -> dict:
        return {
            'sessionId': self.session_id,
            'gameMode': self.mode,
            'difficulty': self.difficulty,
            'status': self.status,
            'isComplete': self.is_complete,
            'totalScore': self.cumulative_score,
            'currentListingId': self.current_listing_id,
            'ordinal': self.ordinal,
            'guesses': [g.to_dict() for g in self.guesses],
            'challengeCode': self.challenge_code,
            'leaderboardSubmitted': self.leaderboard_submitted,
        }


class _Slot:
    __slots__ = ('session', 'lock')

    def __init__(self, session: PlaySession):
        self.session = session
        self.lock = threading.Lock()


class SessionRegistry:
    def __init__(self, ttl_sec: int = 86400, clock: Callable[[], float] = time.time):
        self._ttl_sec = ttl_sec
        self._clock = clock
        self._lock = threading.Lock()
        self._slots: Dict[str, _Slot] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def __contains__(self, session_id) -> bool:
        with self._lock:
            return session_id in self._slots

    def add(self, session: PlaySession) -> PlaySession:
        with self._lock:
            existing = self._slots.get(session.session_id)
            if existing is not None:
                return existing.session
            self._slots[session.session_id] = _Slot(session)
            return session

    @contextmanager
    def locked(self, session_id: str, factory: Callable[[], PlaySession] = None) -> Iterator[PlaySession]:
        """Hold ``session_id``'s lock for the duration of the block.

        With ``factory`` an unknown id is created on the spot; without it an
        unknown id raises SessionNotFound.
        """
        while True:
            with self._lock:
                slot = self._slots.get(session_id)
                if slot is None:
                    if factory is None:
                        raise SessionNotFound()
                    slot = _Slot(factory())
                    self._slots[session_id] = slot
            slot.lock.acquire()
            # A purge may have dropped the slot before its lock was taken
            with self._lock:
                current = self._slots.get(session_id) is slot
            if current:
                break
            slot.lock.release()
        try:
            yield slot.session
        finally:
            slot.lock.release()

    def purge_expired(self) -> int:
        """Drop sessions idle past the TTL. Busy sessions are left alone."""
        cutoff = self._clock() - self._ttl_sec
        removed = 0
        with self._lock:
            for session_id, slot in list(self._slots.items()):
                if slot.session.updated_at >= cutoff:
                    continue
                if not slot.lock.acquire(blocking=False):
                    continue
                try:
                    del self._slots[session_id]
                    removed += 1
                finally:
                    slot.lock.release()
        return removed
