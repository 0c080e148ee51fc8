from typing import Optional

from pydantic import BaseModel, Field

from mmcos.consts import DEFAULT_RANKING, DEFAULT_RULE_SET


class MatchmakingRequest(BaseModel):
    '''Filled in by the protocol adapter; every field the legacy client may omit is optional.'''
    session_token: Optional[str] = None
    # transport-derived identifier (peer address), used when there is no token
    fallback_id: str = "unknown"
    game_type: Optional[str] = None
    rule_set: str = DEFAULT_RULE_SET
    ranking: str = DEFAULT_RANKING
    group_size: int = 1
    skill_level: int = 1_000_000
    network_version: int = 1
    game_lobby_id: Optional[str] = None
    group_lobby_id: Optional[str] = None
    ignore_min_match_requirements: bool = False


class WaitTimes(BaseModel):
    non_ranked: float
    ranked: float


class MatchmakingResult(BaseModel):
    session_id: int
    race_key: str
    team: int
    is_host: bool
    group_size: int
    host_platform_id: str
    game_type: str
    game_lobby_id: Optional[str]
    group_lobby_id: Optional[str]
    wait_times: WaitTimes


class AddPointsRequest(BaseModel):
    session_token: Optional[str] = None
    fallback_id: str = "unknown"
    race_key: Optional[str] = None
    points: int = 0
    level: int = 1
    prestige: int = 0


class AddPointsResult(BaseModel):
    points: int
    rank: int
    old_division: int
    new_division: int
    season: int
    bonus_points: int = 0


class LoginResult(BaseModel):
    platform_id: str
    display_name: str
    session_token: str


class ServerStats(BaseModel):
    total_games: int = 0
    waiting_games: int = 0
    active_games: int = 0
    finished_games: int = 0
    total_players: int = 0
    online_players: int = 0
    average_wait_time: float = 0.0


class ServerStatus(BaseModel):
    name: str
    description: str
    version: str
    season: int
    max_players: int
    competitive_mode: bool
    allow_spectators: bool
    stats: ServerStats = Field(default_factory=ServerStats)
