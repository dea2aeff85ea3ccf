# Force SQLModel table registration at test discovery time
from brackets.models.bracket import Bracket  # noqa: F401
from brackets.models.match import Match  # noqa: F401
from brackets.models.standing import Standing  # noqa: F401
from brackets.models.team import Team, TeamWithdrawal  # noqa: F401
