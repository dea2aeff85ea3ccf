from brackets.models.bracket import Bracket, BracketFormat, BracketStatus, SeedingMethod
from brackets.models.match import Match
from brackets.models.standing import Standing
from brackets.models.team import Team, TeamWithdrawal

__all__ = [
    "Bracket",
    "BracketFormat",
    "BracketStatus",
    "SeedingMethod",
    "Match",
    "Standing",
    "Team",
    "TeamWithdrawal",
]
