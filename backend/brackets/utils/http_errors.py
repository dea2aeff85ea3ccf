"""
Route-boundary translation of service errors into HTTP responses.

    validation    -> 400
    authorization -> 403
    not_found     -> 404
    state         -> 409
"""
from fastapi import HTTPException

from brackets.services.errors import BracketError

STATUS_BY_KIND = {
    "validation": 400,
    "authorization": 403,
    "not_found": 404,
    "state": 409,
}


def http_error(e: BracketError) -> HTTPException:
    """Build the HTTPException for a service error (caller raises it)."""
    return HTTPException(status_code=STATUS_BY_KIND.get(e.kind, 500), detail=e.message)
