import asyncio
from logging import info
from typing import Optional

from mmcos.config import ServerConfig
from mmcos.consts import DEFAULT_SEASON, SERVER_VERSION
from mmcos.matchmaking import MatchmakingEngine
from mmcos.models.Game import Game
from mmcos.models.Matchmaking import (AddPointsRequest, AddPointsResult, LoginResult, MatchmakingRequest,
                                      MatchmakingResult, ServerStats, ServerStatus)
from mmcos.reaper import Reaper
from mmcos.registry import Store
from mmcos.scheduler import AutoStartScheduler
from mmcos.scoring import current_season
from mmcos.stats import WaitTimeTracker, server_stats
from mmcos.users import IdentityResolver


class MatchmakingService:
    '''One server instance: owns the Store and wires every component to it.'''

    def __init__(self, config: ServerConfig = None, store: Store = None):
        self.config = config if config is not None else ServerConfig()
        self.store = store if store is not None else Store()
        self.resolver = IdentityResolver(self.store)
        self.wait_times = WaitTimeTracker(self.store)
        self.scheduler = AutoStartScheduler(self.store, self.config.auto_start_delay)
        self.engine = MatchmakingEngine(self.store, self.resolver, self.config, self.scheduler, self.wait_times)
        self.reaper = Reaper(self.store, self.config.reap_interval, self.config.retention_secs)
        self.reaper_task: Optional[asyncio.Task] = None

    def start_background_tasks(self):
        if self.reaper_task is None:
            self.reaper_task = asyncio.create_task(self.reaper.run_forever())
            info(f"Reaper running every {self.config.reap_interval}s, retention {self.config.retention_secs}s")

    async def shutdown(self):
        self.scheduler.cancel_all()
        if self.reaper_task is not None:
            self.reaper_task.cancel()
            try:
                await self.reaper_task
            except asyncio.CancelledError:
                pass
            self.reaper_task = None

    def login(self, display_name: Optional[str], fallback_id: str) -> LoginResult:
        player, token = self.resolver.login(display_name, fallback_id)
        return LoginResult(platform_id=player.platform_id, display_name=player.display_name, session_token=token)

    async def enter_matchmaking(self, req: MatchmakingRequest) -> MatchmakingResult:
        return await self.engine.enter_matchmaking(req)

    def cancel_matchmaking(self, session_token: Optional[str], fallback_id: str) -> bool:
        return self.engine.cancel_matchmaking(session_token, fallback_id)

    def register_active_game(self, race_key: str) -> Optional[Game]:
        return self.engine.register_active_game(race_key)

    def add_points(self, req: AddPointsRequest) -> AddPointsResult:
        return self.engine.add_points(req)

    def identify(self, session_token: Optional[str], fallback_id: str) -> str:
        return self.resolver.resolve_lenient(session_token, fallback_id)

    def set_offline(self, platform_id: str):
        self.store.set_offline(platform_id)
        info(f"Player offline: {platform_id}")

    def start_game(self, session_id: int) -> Game:
        return self.store.start_game(session_id)

    def end_game(self, session_id: int, results=()) -> Game:
        return self.store.end_game(session_id, results)

    def stats(self) -> ServerStats:
        return server_stats(self.store, self.wait_times)

    def status(self) -> ServerStatus:
        return ServerStatus(
            name=self.config.name,
            description=self.config.description,
            version=SERVER_VERSION,
            season=current_season() if self.config.season_system else DEFAULT_SEASON,
            max_players=self.config.max_players,
            competitive_mode=self.config.competitive_mode,
            allow_spectators=self.config.allow_spectators,
            stats=self.stats(),
        )
