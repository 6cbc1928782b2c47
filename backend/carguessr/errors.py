"""Game errors surfaced to callers.

Every message is safe to show to a player as-is; internal detail goes to the
log, never into ``message``.
"""


class GameError(Exception):
    """Base class for errors the web layer renders as JSON."""

    code = 'game_error'
    http_status = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {'error': self.code, 'message': self.message}


class InvalidInput(GameError):
    code = 'invalid_input'
    http_status = 400


class InvalidEntry(InvalidInput):
    code = 'invalid_entry'


class StaleGuess(GameError):
    code = 'stale_guess'
    http_status = 409

    def __init__(self, listing_id: str) -> None:
        super().__init__(f"Listing {listing_id} is not the car you are guessing right now. Start a new game.")


class SessionClosed(GameError):
    code = 'session_closed'
    http_status = 409

    def __init__(self) -> None:
        super().__init__("This game is already over. Start a new game.")


class SessionNotFound(GameError):
    code = 'session_not_found'
    http_status = 404

    def __init__(self) -> None:
        super().__init__("Game session not found. Start a new game.")


class NoListingsAvailable(GameError):
    code = 'no_listings'
    http_status = 503

    def __init__(self, difficulty: str) -> None:
        super().__init__(f"No {difficulty} mode listings available right now.")


class PersistenceFailure(GameError):
    code = 'persistence_failure'
    http_status = 500

    def __init__(self, message: str = "Failed to save, please try again.") -> None:
        super().__init__(message)


class MigrationError(GameError):
    code = 'migration_failed'
    http_status = 422


class ChallengeNotFound(GameError):
    code = 'challenge_not_found'
    http_status = 404

    def __init__(self, challenge_code: str) -> None:
        super().__init__(f"Challenge {challenge_code} not found.")


class ChallengeClosed(GameError):
    code = 'challenge_closed'
    http_status = 410
