from app.db.repo.pvp_challenges_repo import PvpChallengesRepo
from app.db.repo.pvp_history_repo import PvpHistoryRepo
from app.db.repo.pvp_matches_repo import PvpMatchesRepo
from app.db.repo.users_repo import UsersRepo

__all__ = [
    "PvpChallengesRepo",
    "PvpHistoryRepo",
    "PvpMatchesRepo",
    "UsersRepo",
]
