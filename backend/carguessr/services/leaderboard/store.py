"""Ranked, persisted leaderboard.

Writers (``submit`` and the legacy migration) serialize on ``write_lock``.
Readers take no lock: each query is a single SELECT and only ever sees
committed rows, so a half-written entry is never visible.
"""

import logging
import math
import threading
from typing import List, Optional, Tuple

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError

from carguessr import db
from carguessr.errors import InvalidEntry, InvalidInput, PersistenceFailure
from carguessr.models import LeaderboardEntry
from carguessr.services.game.settings import DIFFICULTIES, GAME_MODES, LOWER_IS_BETTER, GameSettings
from carguessr.validation import sanitize_name

logger = logging.getLogger(__name__)


def ranking_order(game_mode: str):
    """ORDER BY clauses for a mode: best score first, then earliest entry."""
    score = LeaderboardEntry.score.asc() if game_mode in LOWER_IS_BETTER else LeaderboardEntry.score.desc()
    return [score, LeaderboardEntry.created_at.asc(), LeaderboardEntry.id.asc()]


def _validate_mode(game_mode) -> str:
    if game_mode not in GAME_MODES:
        raise InvalidEntry(f"Game mode must be one of: {', '.join(GAME_MODES)}")
    return game_mode


def _validate_difficulty(difficulty) -> str:
    if difficulty not in DIFFICULTIES:
        raise InvalidEntry(f"Difficulty must be one of: {', '.join(DIFFICULTIES)}")
    return difficulty


class LeaderboardStore:
    def __init__(self, settings: GameSettings):
        self.settings = settings
        self.write_lock = threading.Lock()

    def validate(self, name, score, game_mode, difficulty) -> Tuple[str, int, str, str]:
        game_mode = _validate_mode(game_mode)
        difficulty = _validate_difficulty(difficulty)
        name = sanitize_name(name, self.settings.LEADERBOARD_NAME_MAX)
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise InvalidEntry("Score must be a whole number")
        if isinstance(score, float) and (not math.isfinite(score) or not score.is_integer()):
            raise InvalidEntry("Score must be a whole number")
        score = int(score)
        if score < 0:
            raise InvalidEntry("Score cannot be negative")
        ceiling = self.settings.max_score(game_mode)
        if ceiling is not None and score > ceiling:
            raise InvalidEntry(f"Score cannot exceed {ceiling} in {game_mode} mode")
        return name, score, game_mode, difficulty

    def submit(self, name, score, game_mode, difficulty, session_id: Optional[str] = None) -> Tuple[dict, int]:
        """Validate, persist and rank one entry. The row is committed before returning."""
        name, score, game_mode, difficulty = self.validate(name, score, game_mode, difficulty)
        with self.write_lock:
            entry = LeaderboardEntry(
                name=name,
                score=score,
                game_mode=game_mode,
                difficulty=difficulty,
                session_id=session_id,
            )
            db.session.add(entry)
            try:
                db.session.commit()
            except SQLAlchemyError as exc:
                db.session.rollback()
                logger.error(f"[leaderboard-submit] mode={game_mode} difficulty={difficulty} commit failed: {exc}")
                raise PersistenceFailure("Failed to save score") from exc
            rank = self.rank_of(entry)
        logger.info(f"[leaderboard-submit] mode={game_mode} difficulty={difficulty} score={score} rank={rank}")
        return entry.to_dict(), rank

    def rank_of(self, entry: LeaderboardEntry) -> int:
        """1-based position of ``entry`` within its mode and difficulty."""
        if entry.game_mode in LOWER_IS_BETTER:
            better_score = LeaderboardEntry.score < entry.score
        else:
            better_score = LeaderboardEntry.score > entry.score
        earlier_tie = and_(
            LeaderboardEntry.score == entry.score,
            or_(
                LeaderboardEntry.created_at < entry.created_at,
                and_(LeaderboardEntry.created_at == entry.created_at, LeaderboardEntry.id < entry.id),
            ),
        )
        ahead = (
            db.session.query(func.count(LeaderboardEntry.id))
            .filter(
                LeaderboardEntry.game_mode == entry.game_mode,
                LeaderboardEntry.difficulty == entry.difficulty,
                or_(better_score, earlier_tie),
            )
            .scalar()
        )
        return int(ahead or 0) + 1

    def _resolve_limit(self, limit) -> int:
        if limit is None:
            return self.settings.LEADERBOARD_DEFAULT_LIMIT
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InvalidInput("Limit must be a positive whole number")
        return min(limit, self.settings.LEADERBOARD_MAX_LIMIT)

    def query(self, game_mode, difficulty=None, limit=None) -> List[dict]:
        game_mode = _validate_mode(game_mode)
        q = LeaderboardEntry.query.filter_by(game_mode=game_mode)
        if difficulty is not None:
            q = q.filter_by(difficulty=_validate_difficulty(difficulty))
        rows = q.order_by(*ranking_order(game_mode)).limit(self._resolve_limit(limit)).all()
        return [row.to_dict() for row in rows]

    def status(self) -> dict:
        counts = dict(
            ((mode, difficulty), count)
            for mode, difficulty, count in db.session.query(
                LeaderboardEntry.game_mode, LeaderboardEntry.difficulty, func.count(LeaderboardEntry.id)
            ).group_by(LeaderboardEntry.game_mode, LeaderboardEntry.difficulty)
        )
        breakdown = {
            f"{mode}_{difficulty}": counts.get((mode, difficulty), 0)
            for mode in GAME_MODES
            for difficulty in DIFFICULTIES
        }
        return {'total_entries': sum(counts.values()), 'breakdown': breakdown}
