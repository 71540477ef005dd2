"""Error taxonomy shared by the store, the game services and the HTTP layer."""


class GameError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'error': self.message}


class ValidationError(GameError):
    """Missing or malformed required field. Never retried."""
    status_code = 400


class StoreUnavailable(GameError):
    """The persistence backend could not be reached.

    Callers may retry at their own discretion; the store never retries.
    """
    status_code = 500


class ExternalLookupFailure(GameError):
    """A directory or broadcast call failed or returned non-success."""
    status_code = 502


class SessionNotFound(GameError):
    status_code = 404


class AttackNotPermitted(GameError):
    status_code = 409
