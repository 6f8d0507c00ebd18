"""Mission module."""

from .create import create_mission, get_mission, list_missions, parse_mission_id
from .reserve import reserve_mission
from .flag import flag_mission
from .admin import list_missions_admin, set_mission_status, feature_mission

__all__ = [
    "create_mission",
    "get_mission",
    "list_missions",
    "parse_mission_id",
    "reserve_mission",
    "flag_mission",
    "list_missions_admin",
    "set_mission_status",
    "feature_mission",
]
