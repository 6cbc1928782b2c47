"""The game engine: the single object the web layer talks to.

It owns the session registry and holds the leaderboard store and challenge
service by reference. Every public method maps to one inbound request.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from carguessr.errors import (
    ChallengeClosed,
    InvalidEntry,
    InvalidInput,
    NoListingsAvailable,
    SessionClosed,
    StaleGuess,
)
from carguessr.listings import Listing
from carguessr.services.leaderboard.migration import migrate_legacy_leaderboard
from carguessr.validation import sanitize_name, validate_listing_id, validate_session_id

from .scoring import guess_message, score_guess
from .selector import SessionHistory, select_listing
from .sessions import STATUS_COMPLETE, GuessRecord, PlaySession, SessionRegistry, generate_session_id
from .settings import DIFFICULTIES, GAME_MODES, MODE_CHALLENGE, MODE_ZERO, GameSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuessOutcome:
    session_id: str
    game_mode: str
    record: GuessRecord
    correct: bool
    continues: bool
    is_complete: bool
    total_score: float
    ordinal: int
    message: str
    listing: dict
    next_listing: Optional[dict] = None
    challenge_code: Optional[str] = None

    def to_dict(self) -> dict:
        payload = self.record.to_dict()
        payload.update({
            'sessionId': self.session_id,
            'gameMode': self.game_mode,
            'correct': self.correct,
            'continues': self.continues,
            'gameOver': self.is_complete,
            'sessionComplete': self.is_complete,
            'score': self.total_score,
            'totalScore': self.total_score,
            'ordinal': self.ordinal,
            'message': self.message,
            'originalUrl': self.listing.get('originalUrl'),
            'nextListing': self.next_listing,
        })
        if self.challenge_code:
            payload['challengeCode'] = self.challenge_code
        return payload


def _check_mode(mode) -> str:
    if mode not in GAME_MODES:
        raise InvalidInput(f"Game mode must be one of: {', '.join(GAME_MODES)}")
    return mode


def _check_difficulty(difficulty) -> str:
    if difficulty not in DIFFICULTIES:
        raise InvalidInput(f"Difficulty must be one of: {', '.join(DIFFICULTIES)}")
    return difficulty


class GameEngine:
    def __init__(self, provider, settings: GameSettings = None, store=None, challenges=None,
                 rng: random.Random = None, clock=time.time):
        self.provider = provider
        self.settings = settings or GameSettings()
        self.store = store
        self.challenges = challenges
        self.rng = rng or random.Random()
        self.clock = clock
        self.sessions = SessionRegistry(self.settings.SESSION_TTL_SEC, clock)

    # ---- sessions ----

    def _new_session(self, session_id: str, mode: str, difficulty: str, challenge_code: str = None,
                     plan: Tuple[str, ...] = ()) -> PlaySession:
        now = self.clock()
        return PlaySession(
            session_id=session_id,
            mode=mode,
            difficulty=difficulty,
            history=SessionHistory(self.settings.HISTORY_WINDOW),
            challenge_code=challenge_code,
            listing_plan=tuple(plan),
            created_at=now,
            updated_at=now,
        )

    def _purge_idle(self) -> None:
        purged = self.sessions.purge_expired()
        if purged:
            logger.info(f"[session-purge] removed={purged}")

    def start_session(self, mode: str, difficulty: str = 'hard', session_id: str = None) -> dict:
        mode, difficulty = _check_mode(mode), _check_difficulty(difficulty)
        if session_id is None:
            session_id = generate_session_id()
        else:
            validate_session_id(session_id)
            if session_id in self.sessions:
                raise InvalidInput("Session already exists")
        self._purge_idle()
        session = self.sessions.add(self._new_session(session_id, mode, difficulty))
        logger.info(f"[session-start] session={session_id} mode={mode} difficulty={difficulty}")
        return session.to_dict()

    def get_session(self, session_id: str) -> dict:
        validate_session_id(session_id)
        with self.sessions.locked(session_id) as session:
            return session.to_dict()

    def _pick(self, session: PlaySession, index: int) -> Listing:
        if session.listing_plan:
            listing_id = session.listing_plan[index % len(session.listing_plan)]
            listing = self.provider.get(listing_id)
            if listing is None:
                raise NoListingsAvailable(session.difficulty)
            session.history.record(listing.id)
            return listing
        return select_listing(self.provider.candidates(session.difficulty), session.history,
                              session.difficulty, self.rng)

    def _listing_payload(self, session: PlaySession, listing: Listing) -> dict:
        view = listing.public_view()
        view['sessionId'] = session.session_id
        view['gameMode'] = session.mode
        view['difficulty'] = session.difficulty
        if session.mode == MODE_CHALLENGE:
            view['carNumber'] = session.ordinal + 1
            view['totalCars'] = self.settings.CHALLENGE_LENGTH
        return view

    def get_next_listing(self, session_id: str, difficulty: str = None, mode: str = None) -> dict:
        """Listing the session should be guessing now, price withheld.

        The first call for an unknown id creates the session. Later calls
        return the same listing until a guess is accepted.
        """
        validate_session_id(session_id)
        mode = _check_mode(mode or MODE_ZERO)
        difficulty = _check_difficulty(difficulty or 'hard')
        if session_id not in self.sessions:
            self._purge_idle()
        factory = lambda: self._new_session(session_id, mode, difficulty)  # noqa: E731
        with self.sessions.locked(session_id, factory) as session:
            if session.is_complete:
                raise SessionClosed()
            listing = self.provider.get(session.current_listing_id) if session.current_listing_id else None
            if listing is None:
                listing = self._pick(session, session.ordinal)
                session.begin(listing.id, self.clock())
                logger.info(f"[listing] session={session_id} listing={listing.id} ordinal={session.ordinal}")
            return self._listing_payload(session, listing)

    def submit_guess(self, session_id: str, listing_id: str, guessed_price) -> GuessOutcome:
        validate_session_id(session_id)
        validate_listing_id(listing_id)
        with self.sessions.locked(session_id) as session:
            if session.is_complete:
                raise SessionClosed()
            if session.current_listing_id is None or listing_id != session.current_listing_id:
                logger.info(f"[guess-stale] session={session_id} listing={listing_id} current={session.current_listing_id}")
                raise StaleGuess(listing_id)
            listing = self.provider.get(listing_id)
            if listing is None:
                raise InvalidInput("This car is no longer available. Start a new game.")

            is_last = session.mode == MODE_CHALLENGE and session.ordinal + 1 >= self.settings.CHALLENGE_LENGTH
            result = score_guess(session.mode, guessed_price, listing.price, self.settings, is_last=is_last)
            record = GuessRecord(
                listing_id=listing.id,
                guessed_price=float(guessed_price),
                actual_price=listing.price,
                difference=result.difference,
                percentage_error=result.percentage_error,
                points_awarded=result.points,
            )
            completes = not result.continues
            total = session.cumulative_score + result.points

            next_listing = None
            if completes:
                if session.challenge_code and self.challenges is not None:
                    # Persist first: a failed write must leave the session untouched
                    self.challenges.record_result(session.challenge_code, session_id, int(round(total)))
            else:
                next_listing = self._pick(session, session.ordinal + 1)

            session.apply_guess(record, next_listing.id if next_listing else None, completes, self.clock())
            logger.info(
                f"[guess] session={session_id} mode={session.mode} listing={listing.id} "
                f"pct={result.percentage_error:.1f} points={result.points} total={session.cumulative_score} "
                f"complete={session.is_complete}"
            )
            return GuessOutcome(
                session_id=session_id,
                game_mode=session.mode,
                record=record,
                correct=result.correct,
                continues=result.continues,
                is_complete=session.is_complete,
                total_score=session.cumulative_score,
                ordinal=session.ordinal,
                message=guess_message(session.mode, result, session.cumulative_score, session.ordinal,
                                      self.settings.CHALLENGE_LENGTH, self.settings),
                listing=listing.reveal(),
                next_listing=self._listing_payload(session, next_listing) if next_listing else None,
                challenge_code=session.challenge_code,
            )

    def finish_session(self, session_id: str) -> dict:
        """Stop an endless zero-mode game so its total can be submitted."""
        validate_session_id(session_id)
        with self.sessions.locked(session_id) as session:
            if session.is_complete:
                raise SessionClosed()
            if session.mode != MODE_ZERO:
                raise InvalidInput("Only zero mode games can be ended early")
            if not session.guesses:
                raise InvalidInput("Make at least one guess before ending the game")
            now = self.clock()
            session.status = STATUS_COMPLETE
            session.current_listing_id = None
            session.completed_at = now
            session.updated_at = now
            logger.info(f"[session-finish] session={session_id} total={session.cumulative_score}")
            return session.to_dict()

    # ---- leaderboard ----

    def submit_leaderboard_entry(self, name, score, mode, difficulty, session_id: str = None) -> Tuple[dict, int]:
        if session_id is None:
            return self.store.submit(name, score, mode, difficulty)
        validate_session_id(session_id)
        name, score, mode, difficulty = self.store.validate(name, score, mode, difficulty)
        with self.sessions.locked(session_id) as session:
            if not session.is_complete:
                raise InvalidEntry("Game session is not complete")
            if session.mode != mode or session.difficulty != difficulty or session.final_score() != score:
                raise InvalidEntry("Score does not match session data")
            if session.leaderboard_submitted:
                raise InvalidEntry("Score already submitted for this game")
            entry, rank = self.store.submit(name, score, mode, difficulty, session_id=session_id)
            session.leaderboard_submitted = True
            return entry, rank

    def query_leaderboard(self, mode, difficulty=None, limit=None) -> list:
        return self.store.query(mode, difficulty, limit)

    def migrate_legacy_leaderboard(self, source_path: str) -> int:
        return migrate_legacy_leaderboard(self.store, source_path)

    def leaderboard_status(self) -> dict:
        status = self.store.status()
        status['active_sessions'] = len(self.sessions)
        status['listings'] = self.provider.counts() if hasattr(self.provider, 'counts') else {}
        return status

    # ---- friend challenges ----

    def _plan_challenge(self, difficulty: str) -> Tuple[str, ...]:
        candidates = self.provider.candidates(difficulty)
        history = SessionHistory(self.settings.CHALLENGE_LENGTH)
        return tuple(
            select_listing(candidates, history, difficulty, self.rng).id
            for _ in range(self.settings.CHALLENGE_LENGTH)
        )

    def create_friend_challenge(self, title, difficulty, creator_name, max_participants=None) -> dict:
        creator = sanitize_name(creator_name, self.settings.LEADERBOARD_NAME_MAX)
        difficulty = _check_difficulty(difficulty)
        plan = self._plan_challenge(difficulty)
        challenge = self.challenges.create(title, difficulty, creator, plan, max_participants)
        joined = self.join_friend_challenge(challenge.challenge_code, creator)
        joined['shareMessage'] = f"Join my CarGuessr challenge '{challenge.title}'! Use code: {challenge.challenge_code}"
        return joined

    def join_friend_challenge(self, code, name) -> dict:
        name = sanitize_name(name, self.settings.LEADERBOARD_NAME_MAX)
        challenge = self.challenges.get(code)
        participant = self.challenges.find_participant(challenge, name)
        if participant is None:
            # May hand back another request's row when the same name joins twice at once
            participant = self.challenges.add_participant(challenge, name, generate_session_id())
        session_id = participant.session_id
        if session_id not in self.sessions:
            if participant.is_complete:
                raise ChallengeClosed("You have already finished this challenge.")
            self.sessions.add(self._new_session(session_id, MODE_CHALLENGE, challenge.difficulty,
                                                challenge.challenge_code, challenge.plan))
        return {
            'challenge': challenge.to_dict(),
            'challengeCode': challenge.challenge_code,
            'sessionId': session_id,
        }

    def get_friend_challenge(self, code) -> dict:
        return self.challenges.get(code).to_dict()

    def challenge_standings(self, code) -> list:
        return self.challenges.standings(code)
