import time
from typing import Optional

from pydantic import BaseModel, Field


class Player(BaseModel):
    platform_id: str
    display_name: str
    session_token: Optional[str] = None
    is_online: bool = True
    current_game_id: Optional[int] = None
    games_played: int = 0
    # bumped on every re-registration (login or fallback first contact)
    games_attempted: int = 0
    wins: int = 0
    points: int = 0
    level: int = 1
    prestige: int = 0
    joined_ts: float = Field(default_factory=time.time)
    last_seen: float = Field(default_factory=time.time)

    def __hash__(self) -> int:
        return hash(self.platform_id)

