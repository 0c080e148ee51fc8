import pytest

from mmcos.errors import CapacityError, InternalError, InvalidState, NotFound
from mmcos.models.Game import ACTIVE, FINISHED, WAITING, RaceResult
from mmcos.race_keys import RaceKeyGenerator
from mmcos.registry import Store

from conftest import add_players


class TestRegisterPlayer:
    def test_new_player_defaults(self, store):
        p = store.register_player("abc123456789", None)
        assert p.display_name == "Player_abc12345"
        assert p.is_online
        assert p.current_game_id is None
        assert p.games_attempted == 0

    def test_reregister_keeps_history(self, store):
        p = store.register_player("uid1", "Alice")
        p.points = 1200
        p.wins = 3
        p.is_online = False
        p2 = store.register_player("uid1", "Alice2", "tok")
        assert p2 is p
        assert p2.display_name == "Alice2"
        assert p2.points == 1200
        assert p2.wins == 3
        assert p2.is_online
        assert p2.session_token == "tok"
        assert p2.games_attempted == 1
        store.register_player("uid1", "")
        assert p2.display_name == "Alice2"
        assert p2.session_token == "tok"
        assert p2.games_attempted == 2
        assert len(store.players) == 1

    def test_online_flag(self, store):
        p = store.register_player("uid1", "Alice")
        store.set_offline("uid1")
        assert not p.is_online
        seen = p.last_seen
        store.mark_seen("uid1")
        assert p.is_online and p.last_seen >= seen
        store.mark_seen("nobody")

    def test_add_points(self, store):
        store.register_player("uid1", "Alice")
        p = store.add_points("uid1", 150, level=4, prestige=2)
        store.add_points("uid1", 50, level=5, prestige=2)
        assert (p.points, p.level, p.prestige) == (200, 5, 2)
        with pytest.raises(NotFound):
            store.add_points("nobody", 10, 1, 0)


class TestCreateGame:
    def test_unknown_host(self, store):
        with pytest.raises(NotFound):
            store.create_game("nobody")
        assert store.games == {}
        assert len(store.race_keys) == 0

    def test_roster_seeded_with_host(self, store):
        (host,) = add_players(store, 1)
        game = store.create_game(host, "Race", "Race", "Ranked", "gl1", "gr1")
        assert game.status == WAITING
        assert game.host_platform_id == host
        assert len(game.players) == 1
        entry = game.players[0]
        assert entry.platform_id == host and entry.team == 0 and entry.is_host
        assert game.game_lobby_id == "gl1" and game.group_lobby_id == "gr1"
        assert store.get_player(host).current_game_id == game.session_id
        assert game.race_key in store.race_keys

    def test_generates_lobby_ids(self, store):
        (host,) = add_players(store, 1)
        game = store.create_game(host)
        assert game.game_lobby_id.isdigit()
        assert game.group_lobby_id.isdigit()

    def test_host_already_in_waiting_game(self, store):
        (host,) = add_players(store, 1)
        store.create_game(host)
        with pytest.raises(InvalidState):
            store.create_game(host)


class TestJoinGame:
    def test_teams_fill_in_squads(self, store):
        uids = add_players(store, 9)
        game = store.create_game(uids[0], max_players=8)
        for uid in uids[1:8]:
            store.join_game(game.session_id, uid)
        assert [p.team for p in game.players] == [0, 0, 0, 0, 1, 1, 1, 1]
        assert [p.is_host for p in game.players] == [True] + [False] * 7
        with pytest.raises(CapacityError):
            store.join_game(game.session_id, uids[8])
        assert len(game.players) == 8
        assert store.get_player(uids[8]).current_game_id is None

    def test_join_is_idempotent(self, store):
        a, b = add_players(store, 2)
        game = store.create_game(a)
        store.join_game(game.session_id, b)
        again = store.join_game(game.session_id, b)
        assert again is game
        assert [p.platform_id for p in game.players] == [a, b]

    def test_member_rejoining_full_game_is_noop(self, store):
        a, b = add_players(store, 2)
        game = store.create_game(a, max_players=2)
        store.join_game(game.session_id, b)
        assert store.join_game(game.session_id, b) is game

    def test_missing_game_or_player(self, store):
        a, b = add_players(store, 2)
        game = store.create_game(a)
        with pytest.raises(NotFound):
            store.join_game(12345, b)
        with pytest.raises(NotFound):
            store.join_game(game.session_id, "ghost")

    def test_not_waiting(self, store):
        a, b = add_players(store, 2)
        game = store.create_game(a)
        store.start_game(game.session_id)
        with pytest.raises(InvalidState):
            store.join_game(game.session_id, b)

    def test_full_event(self, store):
        events = []
        store.subscribe(lambda g, e: events.append(e))
        a, b = add_players(store, 2)
        game = store.create_game(a, max_players=2)
        store.join_game(game.session_id, b)
        assert events == ["full"]


class TestLeaveGame:
    def test_host_handoff_and_delete_when_empty(self, store):
        a, b = add_players(store, 2)
        game = store.create_game(a)
        store.join_game(game.session_id, b)
        store.leave_game(game.session_id, a)
        assert game.host_platform_id == b
        assert game.players[0].is_host
        assert store.get_player(a).current_game_id is None

        key = game.race_key
        store.leave_game(game.session_id, b)
        assert store.get_game(game.session_id) is None
        assert key not in store.race_keys
        assert store.get_player(b).current_game_id is None

    def test_only_from_waiting(self, store):
        (a,) = add_players(store, 1)
        game = store.create_game(a)
        store.start_game(game.session_id)
        with pytest.raises(InvalidState):
            store.leave_game(game.session_id, a)


class TestLifecycle:
    def test_start(self, store):
        (a,) = add_players(store, 1)
        game = store.create_game(a)
        store.start_game(game.session_id)
        assert game.status == ACTIVE
        assert game.start_ts is not None
        with pytest.raises(InvalidState):
            store.start_game(game.session_id)
        with pytest.raises(NotFound):
            store.start_game(1)

    def test_end_awards_points(self, store):
        a, b, c = add_players(store, 3)
        game = store.create_game(a)
        store.join_game(game.session_id, b)
        store.join_game(game.session_id, c)
        store.start_game(game.session_id)
        store.end_game(game.session_id, [
            RaceResult(platform_id=a, position=1),
            RaceResult(platform_id=b, position=2),
        ])
        pa, pb, pc = (store.get_player(u) for u in (a, b, c))
        assert game.status == FINISHED and game.end_ts is not None
        assert (pa.points, pa.wins, pa.games_played) == (90, 1, 1)
        assert (pb.points, pb.wins, pb.games_played) == (80, 0, 1)
        assert (pc.points, pc.wins, pc.games_played) == (0, 0, 1)
        assert all(p.current_game_id is None for p in (pa, pb, pc))

    def test_end_without_results(self, store):
        (a,) = add_players(store, 1)
        game = store.create_game(a)
        store.end_game(game.session_id, [])
        p = store.get_player(a)
        assert game.status == FINISHED
        assert p.points == 0 and p.games_played == 1 and p.current_game_id is None

    def test_finished_is_terminal(self, store):
        (a,) = add_players(store, 1)
        game = store.create_game(a)
        store.end_game(game.session_id)
        with pytest.raises(InvalidState):
            store.end_game(game.session_id)
        with pytest.raises(InvalidState):
            store.start_game(game.session_id)
        assert game.status == FINISHED

    def test_abandon_awards_nothing(self, store):
        a, b = add_players(store, 2)
        game = store.create_game(a)
        store.join_game(game.session_id, b)
        store.start_game(game.session_id)
        store.abandon_game(game.session_id)
        assert game.status == FINISHED
        for uid in (a, b):
            p = store.get_player(uid)
            assert p.current_game_id is None and p.games_played == 0

    def test_delete_releases_key(self, store):
        (a,) = add_players(store, 1)
        game = store.create_game(a)
        assert store.delete_game(game.session_id) is game
        assert game.race_key not in store.race_keys
        assert store.get_player(a).current_game_id is None
        assert store.delete_game(game.session_id) is None

    def test_referencing_players(self, store):
        a, b = add_players(store, 2)
        game = store.create_game(a)
        store.join_game(game.session_id, b)
        assert store.referencing_players(game.session_id) == [a, b]
        store.clear_current_game(a)
        assert store.referencing_players(game.session_id) == [b]
        with pytest.raises(NotFound):
            store.referencing_players(-1)


class TestQueries:
    def test_available_games_filters_and_order(self, store):
        uids = add_players(store, 4)
        old = store.create_game(uids[0], "Race", "Race", "Ranked")
        new = store.create_game(uids[1], "Race", "Race", "Ranked")
        other = store.create_game(uids[2], "Battle", "Battle", "Ranked")
        started = store.create_game(uids[3], "Race", "Race", "Ranked")
        for ts, g in zip([100.0, 200.0, 300.0, 400.0], [old, new, other, started]):
            g.creation_ts = ts
        store.start_game(started.session_id)

        assert store.available_games("Race", "Ranked") == [new, old]
        assert store.available_games("Race", "NotRanked") == []
        assert store.available_games("Battle", "Ranked", "Battle") == [other]
        assert store.available_games() == [other, new, old]

    def test_find_by_race_key(self, store):
        (a,) = add_players(store, 1)
        game = store.create_game(a)
        assert store.find_game_by_race_key(game.race_key) is game
        assert store.find_game_by_race_key("nope") is None


class TestRaceKeys:
    def test_format(self):
        key = RaceKeyGenerator().generate()
        assert len(key) == 16
        assert key == key.upper()
        int(key, 16)

    def test_resamples_on_collision(self):
        keys = iter(["AAAA", "AAAA", "AAAA", "BBBB"])
        gen = RaceKeyGenerator(gen=lambda: next(keys))
        assert gen.generate() == "AAAA"
        assert gen.generate() == "BBBB"

    def test_released_key_reusable(self):
        keys = iter(["AAAA", "AAAA"])
        gen = RaceKeyGenerator(gen=lambda: next(keys))
        gen.generate()
        gen.release("AAAA")
        assert gen.generate() == "AAAA"

    def test_live_games_hold_distinct_keys(self, store):
        uids = add_players(store, 30)
        games = [store.create_game(u) for u in uids]
        assert len({g.race_key for g in games}) == 30

    def test_session_id_collision(self):
        ids = iter([5, 5, 6])
        store = Store(session_id_gen=lambda: next(ids))
        a, b = add_players(store, 2)
        assert store.create_game(a).session_id == 5
        assert store.create_game(b).session_id == 6

    def test_session_ids_exhausted(self):
        store = Store(session_id_gen=lambda: 5)
        a, b = add_players(store, 2)
        store.create_game(a)
        with pytest.raises(InternalError):
            store.create_game(b)
        assert len(store.race_keys) == 1
        assert store.get_player(b).current_game_id is None
