"""Friend challenges: one set of 10 listings shared through a short code.

Every participant plays the same listings in the same order, so final scores
are directly comparable. Standings rank finished participants by score, then
by who finished first.
"""

import json
import logging
import threading
from datetime import timedelta
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from carguessr import db
from carguessr.errors import ChallengeClosed, ChallengeNotFound, InvalidInput, PersistenceFailure
from carguessr.models import ChallengeParticipant, FriendChallenge, utcnow
from carguessr.services.game.settings import DIFFICULTIES, GameSettings
from carguessr.validation import normalize_challenge_code, sanitize_challenge_title

logger = logging.getLogger(__name__)


def _commit(action: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error(f"[challenge] {action} commit failed: {exc}")
        raise PersistenceFailure(f"Failed to {action}, please try again.") from exc


class ChallengeService:
    def __init__(self, settings: GameSettings):
        self.settings = settings
        # Serializes participant changes so the cap holds under concurrent joins
        self._lock = threading.Lock()

    def create(self, title, difficulty: str, creator_name: str, listing_ids: Sequence[str],
               max_participants: Optional[int] = None) -> FriendChallenge:
        title = sanitize_challenge_title(title)
        if difficulty not in DIFFICULTIES:
            raise InvalidInput(f"Difficulty must be one of: {', '.join(DIFFICULTIES)}")
        cap = self.settings.CHALLENGE_MAX_PARTICIPANTS if max_participants is None else max_participants
        if isinstance(cap, bool) or not isinstance(cap, int) or not 2 <= cap <= self.settings.CHALLENGE_MAX_PARTICIPANTS:
            raise InvalidInput(f"Max participants must be between 2 and {self.settings.CHALLENGE_MAX_PARTICIPANTS}")
        now = utcnow()
        with self._lock:
            challenge = FriendChallenge(
                title=title,
                creator_name=creator_name,
                difficulty=difficulty,
                listing_ids=json.dumps(list(listing_ids)),
                max_participants=cap,
                created_at=now,
                expires_at=now + timedelta(hours=self.settings.CHALLENGE_TTL_HOURS),
            )
            db.session.add(challenge)
            _commit('create challenge')
        logger.info(f"[challenge-create] code={challenge.challenge_code} difficulty={difficulty} cap={cap}")
        return challenge

    def get(self, code) -> FriendChallenge:
        code = normalize_challenge_code(code)
        challenge = FriendChallenge.query.filter_by(challenge_code=code).first()
        if challenge is None:
            raise ChallengeNotFound(code)
        return challenge

    def find_participant(self, challenge: FriendChallenge, name: str) -> Optional[ChallengeParticipant]:
        return challenge.participants.filter_by(name=name).first()

    def add_participant(self, challenge: FriendChallenge, name: str, session_id: str) -> ChallengeParticipant:
        """Add ``name`` to the challenge, or return the row if that name already joined."""
        with self._lock:
            existing = self.find_participant(challenge, name)
            if existing is not None:
                return existing
            if not challenge.is_active or challenge.is_expired():
                raise ChallengeClosed("This challenge has expired.")
            if challenge.participants.count() >= challenge.max_participants:
                raise ChallengeClosed("This challenge is full.")
            participant = ChallengeParticipant(challenge_id=challenge.id, name=name, session_id=session_id)
            db.session.add(participant)
            try:
                db.session.commit()
            except IntegrityError:
                # Another worker inserted the same name first
                db.session.rollback()
                existing = self.find_participant(challenge, name)
                if existing is None:
                    logger.error(f"[challenge-join] code={challenge.challenge_code} integrity error without a row")
                    raise PersistenceFailure("Failed to join challenge, please try again.")
                logger.info(f"[challenge-join] code={challenge.challenge_code} session={existing.session_id} rejoined")
                return existing
            except SQLAlchemyError as exc:
                db.session.rollback()
                logger.error(f"[challenge] join challenge commit failed: {exc}")
                raise PersistenceFailure("Failed to join challenge, please try again.") from exc
        logger.info(f"[challenge-join] code={challenge.challenge_code} session={session_id}")
        return participant

    def record_result(self, code: str, session_id: str, final_score: int) -> None:
        """Persist a participant's final score; the session completes only after this succeeds."""
        participant = (
            ChallengeParticipant.query.join(FriendChallenge)
            .filter(FriendChallenge.challenge_code == code, ChallengeParticipant.session_id == session_id)
            .first()
        )
        if participant is None:
            logger.warning(f"[challenge-result] code={code} session={session_id} no participant row")
            return
        participant.final_score = final_score
        participant.completed_at = utcnow()
        db.session.add(participant)
        _commit('save challenge result')
        logger.info(f"[challenge-result] code={code} session={session_id} score={final_score}")

    def standings(self, code) -> List[dict]:
        challenge = self.get(code)
        rows = challenge.participants.all()
        finished = sorted(
            (p for p in rows if p.is_complete),
            key=lambda p: (-(p.final_score or 0), p.completed_at, p.id),
        )
        standings = []
        for position, participant in enumerate(finished, start=1):
            row = participant.to_dict()
            row['rank'] = position
            standings.append(row)
        for participant in sorted((p for p in rows if not p.is_complete), key=lambda p: p.joined_at):
            row = participant.to_dict()
            row['rank'] = None
            standings.append(row)
        return standings
