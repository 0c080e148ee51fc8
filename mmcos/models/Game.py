import time
from typing import Literal, Optional

from pydantic import BaseModel, Field

from mmcos.consts import DEFAULT_GAME_TYPE, DEFAULT_MAX_PLAYERS, DEFAULT_RANKING, DEFAULT_RULE_SET


GameStatus = Literal["waiting", "active", "finished"]

WAITING: GameStatus = "waiting"
ACTIVE: GameStatus = "active"
FINISHED: GameStatus = "finished"


class RosterEntry(BaseModel):
    platform_id: str
    display_name: str
    team: int = 0
    is_host: bool = False
    joined_ts: float = Field(default_factory=time.time)


class RaceResult(BaseModel):
    platform_id: str
    position: int = Field(ge=1)
    points: Optional[int] = None


class Game(BaseModel):
    session_id: int
    race_key: str
    game_lobby_id: str
    group_lobby_id: str
    host_platform_id: str
    players: list[RosterEntry] = Field(default_factory=list)
    status: GameStatus = WAITING
    game_type: str = DEFAULT_GAME_TYPE
    rule_set: str = DEFAULT_RULE_SET
    ranking: str = DEFAULT_RANKING
    max_players: int = DEFAULT_MAX_PLAYERS
    network_version: int = 1
    creation_ts: float = Field(default_factory=time.time)
    start_ts: Optional[float] = None
    end_ts: Optional[float] = None
    results: list[RaceResult] = Field(default_factory=list)

    @property
    def n_players(self) -> int:
        return len(self.players)

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.max_players

    def roster_entry(self, platform_id: str) -> Optional[RosterEntry]:
        for p in self.players:
            if p.platform_id == platform_id:
                return p
        return None

    def includes_player(self, platform_id: str) -> bool:
        return self.roster_entry(platform_id) is not None

    def age(self, now: float = None) -> float:
        '''seconds since the game started, or since creation if it never did'''
        now = time.time() if now is None else now
        return now - (self.start_ts if self.start_ts is not None else self.creation_ts)

    @property
    def to_game_info_json(self):
        return dict(
            session_id=self.session_id,
            race_key=self.race_key,
            status=self.status,
            game_type=self.game_type,
            rule_set=self.rule_set,
            ranking=self.ranking,
            host_platform_id=self.host_platform_id,
            n_players=self.n_players,
            max_players=self.max_players,
            players=[p.model_dump() for p in self.players],
            creation_ts=self.creation_ts,
            start_ts=self.start_ts,
            end_ts=self.end_ts,
        )
