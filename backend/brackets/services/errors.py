"""
Bracket error taxonomy.

Every service failure is one of four kinds so the route layer can pick the
response code without inspecting messages:

- validation:    malformed or sport-illegal input (400)
- state:         operation not allowed in the current state (409)
- not_found:     unknown bracket / match / team (404)
- authorization: caller is not allowed to act on this match (403)
"""


class BracketError(Exception):
    """Base class for all bracket service errors"""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BracketValidationError(BracketError):
    kind = "validation"


class BracketStateError(BracketError):
    kind = "state"


class BracketNotFoundError(BracketError):
    kind = "not_found"


class BracketAuthorizationError(BracketError):
    kind = "authorization"
