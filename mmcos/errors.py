class MatchmakingError(Exception):
    pass


class NotFound(MatchmakingError):
    '''A referenced game or player does not exist.'''


class InvalidState(MatchmakingError):
    '''The operation is not legal for the game's current status.'''


class CapacityError(MatchmakingError):
    '''The game's roster is full.'''


class UnknownSession(MatchmakingError):
    '''A session token was supplied but does not map to any player.
    The client has to log in again; this is the only error it ever sees.'''

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"Unknown session token: {short_token(token)}")


class InternalError(MatchmakingError):
    pass


def short_token(token: str | None) -> str:
    if token is None: return "<none>"
    return token[:20] + ("..." if len(token) > 20 else "")
