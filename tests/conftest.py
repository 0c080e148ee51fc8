import pytest

from mmcos.config import ServerConfig
from mmcos.models.Matchmaking import MatchmakingRequest
from mmcos.registry import Store
from mmcos.service import MatchmakingService
from mmcos.users import IdentityResolver


@pytest.fixture()
def store():
    return Store()


@pytest.fixture()
def resolver(store):
    return IdentityResolver(store)


@pytest.fixture()
def config():
    # no timed auto-start unless a test asks for it
    return ServerConfig(solo_autostart=False)


@pytest.fixture()
def service(config):
    return MatchmakingService(config)


def add_players(store: Store, n: int, prefix: str = "p") -> list[str]:
    uids = [f"{prefix}{i}" for i in range(n)]
    for uid in uids:
        store.register_player(uid, f"Name {uid}")
    return uids


def mm_request(ip: str = "10.0.0.1", **kwargs) -> MatchmakingRequest:
    kwargs.setdefault("game_type", "Race")
    kwargs.setdefault("ranking", "NotRanked")
    return MatchmakingRequest(fallback_id=ip, **kwargs)
