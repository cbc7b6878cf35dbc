from app.db.models.pvp_challenges import PvpChallenge
from app.db.models.pvp_history_entries import PvpHistoryEntry
from app.db.models.pvp_matches import PvpMatch
from app.db.models.users import User

__all__ = [
    "PvpChallenge",
    "PvpHistoryEntry",
    "PvpMatch",
    "User",
]
