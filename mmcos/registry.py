import threading
import time
import random
from logging import debug, info, warning
from typing import Callable, Iterable, Optional

from mmcos.consts import *
from mmcos.errors import CapacityError, InternalError, InvalidState, NotFound
from mmcos.models.Game import ACTIVE, FINISHED, WAITING, Game, RaceResult, RosterEntry
from mmcos.models.Player import Player
from mmcos.race_keys import RaceKeyGenerator, gen_session_id
from mmcos.scoring import placement_points


GameListener = Callable[[Game, str], None]


def gen_lobby_id() -> str:
    return f"{int(time.time() * 1000)}{random.randint(0, 999)}"


def default_display_name(platform_id: str) -> str:
    return f"Player_{platform_id[:8]}"


class Store:
    '''Players, games and live race keys for one server instance.

    Every public method runs under one re-entrant lock, so callers never see a
    half-updated record. Listeners get `(game, event)` after the change, still
    under the lock; events: "started", "finished", "deleted", "full", "left".
    '''
    players: dict[str, Player]
    games: dict[int, Game]
    race_keys: RaceKeyGenerator

    def __init__(self, race_keys: RaceKeyGenerator = None, session_id_gen=gen_session_id):
        self.lock = threading.RLock()
        self.players = dict()
        self.games = dict()
        self.race_keys = race_keys if race_keys is not None else RaceKeyGenerator()
        self._gen_session_id = session_id_gen
        self._listeners: list[GameListener] = list()

    def subscribe(self, listener: GameListener):
        self._listeners.append(listener)

    def _notify(self, game: Game, event: str):
        for listener in self._listeners:
            try:
                listener(game, event)
            except Exception as e:
                warning(f"Game listener failed on {event} for session {game.session_id}: {e}")

    # --- players

    def get_player(self, platform_id: str) -> Optional[Player]:
        with self.lock:
            return self.players.get(platform_id)

    def require_player(self, platform_id: str) -> Player:
        player = self.get_player(platform_id)
        if player is None:
            raise NotFound(f"Player {platform_id} not found")
        return player

    def register_player(self, platform_id: str, display_name: str = None, session_token: str = None) -> Player:
        with self.lock:
            player = self.players.get(platform_id)
            now = time.time()
            if player is None:
                player = Player(platform_id=platform_id, display_name=display_name or default_display_name(platform_id),
                                session_token=session_token)
                self.players[platform_id] = player
                info(f"Player registered: {player.display_name} ({platform_id})")
                return player
            if display_name:
                player.display_name = display_name
            if session_token is not None:
                player.session_token = session_token
            player.is_online = True
            player.last_seen = now
            player.games_attempted += 1
            debug(f"Player re-registered: {player.display_name} ({platform_id}), attempts: {player.games_attempted}")
            return player

    def set_offline(self, platform_id: str):
        with self.lock:
            player = self.players.get(platform_id)
            if player is not None:
                player.is_online = False

    def mark_seen(self, platform_id: str):
        with self.lock:
            player = self.players.get(platform_id)
            if player is not None:
                player.is_online = True
                player.last_seen = time.time()

    def add_points(self, platform_id: str, points: int, level: int, prestige: int) -> Player:
        '''Points reported by the client for its own player; level and prestige are taken as given.'''
        with self.lock:
            player = self.require_player(platform_id)
            player.points += points
            player.level = level
            player.prestige = prestige
            info(f"Points awarded to {player.display_name}: {points} (total {player.points}), "
                 f"Level {level}, Prestige {prestige}")
            return player

    def current_game(self, platform_id: str) -> Optional[Game]:
        with self.lock:
            player = self.players.get(platform_id)
            if player is None or player.current_game_id is None:
                return None
            return self.games.get(player.current_game_id)

    def clear_current_game(self, platform_id: str):
        with self.lock:
            player = self.players.get(platform_id)
            if player is not None:
                player.current_game_id = None

    def _check_not_in_other_game(self, player: Player, session_id: int = None):
        if player.current_game_id is None or player.current_game_id == session_id:
            return
        other = self.games.get(player.current_game_id)
        if other is not None and other.status != FINISHED and other.includes_player(player.platform_id):
            raise InvalidState(f"Player {player.platform_id} is already in game {other.session_id} ({other.status})")

    # --- games

    def get_game(self, session_id: int) -> Optional[Game]:
        with self.lock:
            return self.games.get(session_id)

    def require_game(self, session_id: int) -> Game:
        game = self.get_game(session_id)
        if game is None:
            raise NotFound(f"Game {session_id} not found")
        return game

    def referencing_players(self, session_id: int) -> list[str]:
        '''Roster members that still treat this game as their current one.'''
        with self.lock:
            game = self.require_game(session_id)
            ret = []
            for entry in game.players:
                player = self.players.get(entry.platform_id)
                if player is not None and player.current_game_id == session_id:
                    ret.append(entry.platform_id)
            return ret

    def find_game_by_race_key(self, race_key: str) -> Optional[Game]:
        with self.lock:
            for game in self.games.values():
                if game.race_key == race_key:
                    return game
            return None

    def all_games(self) -> list[Game]:
        with self.lock:
            return list(self.games.values())

    def all_players(self) -> list[Player]:
        with self.lock:
            return list(self.players.values())

    def available_games(self, game_type: str = None, ranking: str = None, rule_set: str = None) -> list[Game]:
        '''waiting games with a free slot, newest first'''
        with self.lock:
            ret = [g for g in self.games.values()
                   if g.status == WAITING and not g.is_full
                   and (not game_type or g.game_type == game_type)
                   and (not ranking or g.ranking == ranking)
                   and (not rule_set or g.rule_set == rule_set)]
            return sorted(ret, key=lambda g: g.creation_ts, reverse=True)

    def _new_session_id(self) -> int:
        for _ in range(SESSION_ID_ATTEMPTS):
            session_id = self._gen_session_id()
            if session_id not in self.games:
                return session_id
        raise InternalError(f"No free session id after {SESSION_ID_ATTEMPTS} attempts")

    def create_game(self, host_platform_id: str, game_type: str = None, rule_set: str = None, ranking: str = None,
                    game_lobby_id: str = None, group_lobby_id: str = None,
                    max_players: int = DEFAULT_MAX_PLAYERS, network_version: int = 1) -> Game:
        with self.lock:
            host = self.players.get(host_platform_id)
            if host is None:
                raise NotFound(f"Host player {host_platform_id} not found")
            self._check_not_in_other_game(host)
            game = Game(
                session_id=self._new_session_id(),
                race_key=self.race_keys.generate(),
                game_lobby_id=game_lobby_id or gen_lobby_id(),
                group_lobby_id=group_lobby_id or gen_lobby_id(),
                host_platform_id=host_platform_id,
                players=[RosterEntry(platform_id=host_platform_id, display_name=host.display_name, team=0, is_host=True)],
                game_type=game_type or DEFAULT_GAME_TYPE,
                rule_set=rule_set or DEFAULT_RULE_SET,
                ranking=ranking or DEFAULT_RANKING,
                max_players=max_players,
                network_version=network_version,
            )
            self.games[game.session_id] = game
            host.current_game_id = game.session_id
            info(f"New game created: Session {game.session_id}, RaceKey {game.race_key}, "
                 f"Host: {host.display_name} ({host_platform_id}), Type: {game.game_type}/{game.rule_set}/{game.ranking}")
            return game

    def join_game(self, session_id: int, platform_id: str) -> Game:
        with self.lock:
            game = self.require_game(session_id)
            player = self.players.get(platform_id)
            if player is None:
                raise NotFound(f"Player {platform_id} not found")
            if game.status != WAITING:
                raise InvalidState(f"Game {session_id} is not accepting players (status: {game.status})")
            if game.includes_player(platform_id):
                player.current_game_id = session_id
                return game
            if game.is_full:
                raise CapacityError(f"Game {session_id} is full")
            self._check_not_in_other_game(player, session_id)
            game.players.append(RosterEntry(
                platform_id=platform_id,
                display_name=player.display_name,
                team=len(game.players) // SQUAD_SIZE,
                is_host=False,
            ))
            player.current_game_id = session_id
            info(f"Player joined game: {player.display_name} -> Session {session_id} ({game.n_players}/{game.max_players})")
            if game.is_full:
                self._notify(game, "full")
            return game

    def leave_game(self, session_id: int, platform_id: str) -> Game:
        '''Remove a player from a waiting game. An emptied game is deleted on the spot.'''
        with self.lock:
            game = self.require_game(session_id)
            if game.status != WAITING:
                raise InvalidState(f"Can't leave game {session_id} (status: {game.status})")
            entry = game.roster_entry(platform_id)
            if entry is None:
                raise NotFound(f"Player {platform_id} is not in game {session_id}")
            game.players.remove(entry)
            player = self.players.get(platform_id)
            if player is not None and player.current_game_id == session_id:
                player.current_game_id = None
            info(f"Player left game: {entry.display_name} from Session {session_id} ({game.n_players}/{game.max_players})")
            if game.n_players == 0:
                self.delete_game(session_id)
                return game
            if entry.is_host:
                new_host = game.players[0]
                new_host.is_host = True
                game.host_platform_id = new_host.platform_id
                info(f"Session {session_id}: host passed to {new_host.display_name}")
            self._notify(game, "left")
            return game

    def start_game(self, session_id: int) -> Game:
        with self.lock:
            game = self.require_game(session_id)
            if game.status != WAITING:
                raise InvalidState(f"Can't start game {session_id} (status: {game.status})")
            game.status = ACTIVE
            game.start_ts = time.time()
            info(f"Game started: Session {session_id} with {game.n_players} players")
            self._notify(game, "started")
            return game

    def end_game(self, session_id: int, results: Iterable[RaceResult] = ()) -> Game:
        with self.lock:
            game = self.require_game(session_id)
            if game.status == FINISHED:
                raise InvalidState(f"Game {session_id} is already finished")
            results = list(results)
            by_player = {r.platform_id: r for r in results}
            game.status = FINISHED
            game.end_ts = time.time()
            game.results = results
            for entry in game.players:
                player = self.players.get(entry.platform_id)
                if player is None:
                    continue
                player.games_played += 1
                if player.current_game_id == session_id:
                    player.current_game_id = None
                result = by_player.get(entry.platform_id)
                if result is None:
                    continue
                player.points += placement_points(result.position)
                if result.position == 1:
                    player.wins += 1
            info(f"Game finished: Session {session_id} ({len(results)} results)")
            self._notify(game, "finished")
            return game

    def abandon_game(self, session_id: int) -> Game:
        '''Finish a game nobody is playing anymore; no stats are awarded.'''
        with self.lock:
            game = self.require_game(session_id)
            if game.status == FINISHED:
                return game
            game.status = FINISHED
            game.end_ts = time.time()
            for entry in game.players:
                player = self.players.get(entry.platform_id)
                if player is not None and player.current_game_id == session_id:
                    player.current_game_id = None
            info(f"Game abandoned: Session {session_id} ({int(game.age(game.end_ts))}s old)")
            self._notify(game, "finished")
            return game

    def detach_player(self, platform_id: str):
        '''Drop whatever game the player references: leave it if it is still waiting.'''
        with self.lock:
            game = self.current_game(platform_id)
            if game is not None and game.status == WAITING and game.includes_player(platform_id):
                self.leave_game(game.session_id, platform_id)
            self.clear_current_game(platform_id)

    def delete_game(self, session_id: int) -> Optional[Game]:
        with self.lock:
            game = self.games.pop(session_id, None)
            if game is None:
                return None
            self.race_keys.release(game.race_key)
            for entry in game.players:
                player = self.players.get(entry.platform_id)
                if player is not None and player.current_game_id == session_id:
                    player.current_game_id = None
            info(f"Game deleted: Session {session_id}, released RaceKey {game.race_key}")
            self._notify(game, "deleted")
            return game
