import math
from dataclasses import dataclass

from carguessr.errors import InvalidInput

from .settings import GAME_MODES, MODE_CHALLENGE, MODE_STREAK, MODE_ZERO, GameSettings


@dataclass(frozen=True)
class ScoreResult:
    difference: float
    percentage_error: float
    points: float
    correct: bool
    continues: bool


def _as_price(value, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput(f"{label} must be a number")
    value = float(value)
    if not math.isfinite(value):
        raise InvalidInput(f"{label} must be a number")
    return value


def challenge_points(percentage_error: float, settings: GameSettings) -> int:
    """GeoGuessr-style curve: full marks for an exact guess, decaying with error.

    With the defaults: 0% -> 5000, 10% -> ~3033, 50% -> ~410, 100%+ -> 0.
    """
    if percentage_error >= settings.CHALLENGE_ZERO_POINTS_PCT:
        return 0
    points = settings.CHALLENGE_MAX_POINTS * math.exp(-percentage_error / settings.CHALLENGE_DECAY_PCT)
    return int(round(points))


def score_guess(mode: str, guessed_price, actual_price, settings: GameSettings,
                is_last: bool = False) -> ScoreResult:
    """Score one guess.

    ``is_last`` only matters for challenge mode: the guess on the final
    listing ends the session.
    """
    if mode not in GAME_MODES:
        raise InvalidInput(f"Unknown game mode: {mode}")
    guessed = _as_price(guessed_price, 'Guessed price')
    actual = _as_price(actual_price, 'Actual price')
    if guessed < 0:
        raise InvalidInput("Guessed price cannot be negative")
    if guessed > settings.MAX_GUESS_PRICE:
        raise InvalidInput(f"Price cannot exceed £{settings.MAX_GUESS_PRICE:,}")
    if actual <= 0:
        raise InvalidInput("Listing has no valid price")

    difference = abs(guessed - actual)
    percentage = max(0.0, difference / actual * 100)

    if mode == MODE_ZERO:
        return ScoreResult(difference, percentage, difference, True, True)
    if mode == MODE_STREAK:
        correct = percentage <= settings.STREAK_TOLERANCE_PCT
        return ScoreResult(difference, percentage, 1 if correct else 0, correct, correct)
    # challenge
    points = challenge_points(percentage, settings)
    return ScoreResult(difference, percentage, points, points > 0, not is_last)


def guess_message(mode: str, result: ScoreResult, total_score, ordinal: int, length: int,
                  settings: GameSettings) -> str:
    if mode == MODE_ZERO:
        return "Keep your cumulative difference as low as possible!"
    if mode == MODE_STREAK:
        if result.correct:
            return "Great guess! Keep the streak going!"
        return f"Game Over! Your guess was off by more than {settings.STREAK_TOLERANCE_PCT:g}%"
    if result.continues:
        return f"Car {ordinal}/{length} - {int(result.points)} points! Moving to next car..."
    return f"Challenge Complete! Final Score: {int(total_score)} points"
