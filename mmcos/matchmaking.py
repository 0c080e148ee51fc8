import traceback
from logging import debug, info, warning
from typing import Optional

from mmcos.config import ServerConfig
from mmcos.consts import DEFAULT_SEASON
from mmcos.errors import CapacityError, InvalidState, NotFound
from mmcos.models.Game import FINISHED, WAITING, Game, RaceResult
from mmcos.models.Matchmaking import AddPointsRequest, AddPointsResult, MatchmakingRequest, MatchmakingResult
from mmcos.registry import Store
from mmcos.scheduler import AutoStartScheduler
from mmcos.scoring import current_season, division_for_rank, rank_for_points
from mmcos.stats import WaitTimeTracker
from mmcos.users import IdentityResolver


# join failures that just mean "try the next game"
JOIN_MISSES = (NotFound, InvalidState, CapacityError)


def result_points(index: int) -> int:
    return max(100 - index * 20, 10)


class MatchmakingEngine:
    '''Puts a player into a definite game on every request.

    The legacy client polls while a lobby fills and forgets its state between
    calls, so a player that already sits in a waiting (or fresh active) game
    just gets that game back. Only an unknown session token is a hard failure;
    anything unexpected while matching ends in a fresh game for the requester.
    '''

    def __init__(self, store: Store, resolver: IdentityResolver, config: ServerConfig,
                 scheduler: AutoStartScheduler = None, wait_times: WaitTimeTracker = None):
        self.store = store
        self.resolver = resolver
        self.config = config
        self.scheduler = scheduler
        self.wait_times = wait_times if wait_times is not None else WaitTimeTracker()

    async def enter_matchmaking(self, req: MatchmakingRequest) -> MatchmakingResult:
        uid = self.resolver.resolve(req.session_token, req.fallback_id)
        game_type, rule_set = self.config.forced_type_and_rules(req.game_type, req.rule_set)
        if game_type != req.game_type:
            debug(f"Game type overridden: {req.game_type} -> {game_type}")
        info(f"Matchmaking request from {uid}: {game_type}/{rule_set}/{req.ranking}, "
             f"Group: {req.group_size}, Skill: {req.skill_level}")
        created = False
        try:
            with self.store.lock:
                game = self.existing_game(uid)
                if game is None:
                    game, created = self.join_or_create(uid, game_type, rule_set, req)
        except Exception as e:
            warning(f"Matchmaking error for {uid}: {e}\n{''.join(traceback.format_exception(e))}")
            with self.store.lock:
                self.store.detach_player(uid)
                game = self.create_for(uid, game_type, rule_set, req)
                created = True
            info(f"Fallback: created new game after error - Session {game.session_id}")
        if created and self.should_auto_start(req):
            self.scheduler.schedule(game.session_id, self.config.auto_start_delay)
        return self.result_for(game, uid, req)

    def existing_game(self, uid: str) -> Optional[Game]:
        '''The game a player should be handed back unchanged, if any.
        References to finished, missing or stale games are dropped.'''
        player = self.store.require_player(uid)
        if player.current_game_id is None:
            return None
        game = self.store.get_game(player.current_game_id)
        if game is None or game.status == FINISHED or not game.includes_player(uid):
            self.store.clear_current_game(uid)
            debug(f"Cleared finished/missing game from {uid}")
            return None
        if game.status == WAITING:
            debug(f"{uid} already in WAITING game Session {game.session_id} ({game.n_players}/{game.max_players})")
            return game
        age = game.age()
        if age <= self.config.stale_game_secs:
            debug(f"{uid} in ACTIVE game Session {game.session_id} ({int(age)}s old)")
            return game
        info(f"Game Session {game.session_id} is stale ({int(age)}s old) - matching {uid} again")
        self.store.clear_current_game(uid)
        # others may still be racing it; only finish once nobody refers to it
        if not self.store.referencing_players(game.session_id):
            self.store.abandon_game(game.session_id)
        return None

    def join_or_create(self, uid: str, game_type: str, rule_set: str, req: MatchmakingRequest) -> tuple[Game, bool]:
        for candidate in self.store.available_games(game_type, req.ranking, rule_set):
            try:
                game = self.store.join_game(candidate.session_id, uid)
                info(f"MATCH FOUND: {uid} joined Session {game.session_id} ({game.n_players}/{game.max_players})")
                return game, False
            except JOIN_MISSES as e:
                debug(f"Skipping Session {candidate.session_id}: {e}")
        game = self.create_for(uid, game_type, rule_set, req)
        info(f"NEW GAME for {uid}: Session {game.session_id}, player is HOST")
        return game, True

    def create_for(self, uid: str, game_type: str, rule_set: str, req: MatchmakingRequest) -> Game:
        return self.store.create_game(
            uid, game_type, rule_set, req.ranking,
            game_lobby_id=req.game_lobby_id,
            group_lobby_id=req.group_lobby_id,
            max_players=self.config.max_players,
            network_version=req.network_version,
        )

    def should_auto_start(self, req: MatchmakingRequest) -> bool:
        return self.scheduler is not None and self.config.solo_autostart and not req.ignore_min_match_requirements

    def result_for(self, game: Game, uid: str, req: MatchmakingRequest) -> MatchmakingResult:
        with self.store.lock:
            entry = game.roster_entry(uid)
            return MatchmakingResult(
                session_id=game.session_id,
                race_key=game.race_key,
                team=entry.team if entry is not None else 0,
                is_host=entry.is_host if entry is not None else False,
                group_size=game.n_players,
                host_platform_id=game.host_platform_id,
                game_type=game.game_type,
                game_lobby_id=req.game_lobby_id or game.game_lobby_id,
                group_lobby_id=req.group_lobby_id or game.group_lobby_id,
                wait_times=self.wait_times.wait_times,
            )

    def cancel_matchmaking(self, session_token: Optional[str], fallback_id: str) -> bool:
        uid = self.resolver.resolve_lenient(session_token, fallback_id)
        with self.store.lock:
            game = self.store.current_game(uid)
            if game is None or game.status != WAITING or not game.includes_player(uid):
                return False
            self.store.leave_game(game.session_id, uid)
            info(f"{uid} left matchmaking from Session {game.session_id}")
            return True

    def register_active_game(self, race_key: str) -> Optional[Game]:
        with self.store.lock:
            game = self.store.find_game_by_race_key(race_key)
            if game is None:
                warning(f"No game found with RaceKey {race_key}")
                return None
            if game.status == WAITING:
                self.store.start_game(game.session_id)
            else:
                debug(f"RaceKey {race_key} already {game.status}")
            return game

    def add_points(self, req: AddPointsRequest) -> AddPointsResult:
        uid = self.resolver.resolve(req.session_token, req.fallback_id)
        with self.store.lock:
            old_division = division_for_rank(rank_for_points(self.store.require_player(uid).points))
            player = self.store.add_points(uid, req.points, req.level, req.prestige)
            game = self.store.find_game_by_race_key(req.race_key) if req.race_key else None
            if game is not None and game.status != FINISHED:
                results = [RaceResult(platform_id=p.platform_id, position=i + 1, points=result_points(i))
                           for i, p in enumerate(game.players)]
                self.store.end_game(game.session_id, results)
            rank = rank_for_points(player.points)
            return AddPointsResult(
                points=player.points,
                rank=rank,
                old_division=old_division,
                new_division=division_for_rank(rank),
                season=current_season() if self.config.season_system else DEFAULT_SEASON,
            )
