import os
import random
from logging import debug

from mmcos.consts import MAX_SESSION_ID, MIN_SESSION_ID, RACE_KEY_BYTES


def gen_race_key() -> str:
    return os.urandom(RACE_KEY_BYTES).hex().upper()


def gen_session_id() -> int:
    return random.randrange(MIN_SESSION_ID, MAX_SESSION_ID)


class RaceKeyGenerator:
    '''Hands out race keys that are unique among live games.
    Keys stay reserved until `release` is called for the deleted game.'''
    live_keys: set[str]

    def __init__(self, gen=gen_race_key):
        self.live_keys = set()
        self._gen = gen

    def generate(self) -> str:
        key = self._gen()
        while key in self.live_keys:
            debug(f"Race key collision on {key}, resampling")
            key = self._gen()
        self.live_keys.add(key)
        return key

    def release(self, key: str):
        self.live_keys.discard(key)

    def __contains__(self, key: str) -> bool:
        return key in self.live_keys

    def __len__(self) -> int:
        return len(self.live_keys)
