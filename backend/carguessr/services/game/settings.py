from dataclasses import dataclass, fields
from typing import Mapping

MODE_ZERO = 'zero'
MODE_STREAK = 'streak'
MODE_CHALLENGE = 'challenge'
GAME_MODES = (MODE_ZERO, MODE_STREAK, MODE_CHALLENGE)

DIFFICULTIES = ('easy', 'hard')

# Modes where a smaller score ranks higher (cumulative error)
LOWER_IS_BETTER = frozenset({MODE_ZERO})


@dataclass(frozen=True)
class GameSettings:
    """Policy values the engine runs with; built from the Flask config."""

    HISTORY_WINDOW: int = 10
    CHALLENGE_LENGTH: int = 10
    STREAK_TOLERANCE_PCT: float = 10.0
    CHALLENGE_MAX_POINTS: int = 5000
    CHALLENGE_DECAY_PCT: float = 20.0
    CHALLENGE_ZERO_POINTS_PCT: float = 100.0
    MAX_GUESS_PRICE: int = 10_000_000
    LEADERBOARD_DEFAULT_LIMIT: int = 10
    LEADERBOARD_MAX_LIMIT: int = 100
    LEADERBOARD_NAME_MAX: int = 20
    SESSION_TTL_SEC: int = 86400
    CHALLENGE_TTL_HOURS: int = 48
    CHALLENGE_MAX_PARTICIPANTS: int = 10

    @classmethod
    def from_config(cls, config: Mapping) -> 'GameSettings':
        kwargs = {}
        for f in fields(cls):
            if f.name in config:
                kwargs[f.name] = f.type(config[f.name]) if isinstance(f.type, type) else config[f.name]
        return cls(**kwargs)

    def max_score(self, mode: str):
        """Upper bound for a legitimate final score, or None when unbounded."""
        if mode == MODE_CHALLENGE:
            return self.CHALLENGE_MAX_POINTS * self.CHALLENGE_LENGTH
        return None
