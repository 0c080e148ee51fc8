import base64
import os
import hashlib
import re
import time
from logging import debug, info, warning
from typing import Optional

from mmcos.errors import UnknownSession, short_token
from mmcos.models.Player import Player
from mmcos.registry import Store


FALLBACK_PREFIX = "player_"


def gen_secret() -> str:
    return os.urandom(20).hex()

def gen_user_uid(name: str, wsid: str) -> str:
    return sha_256("|".join([name, str(time.time()), wsid]))[:20]

def gen_session_token(platform_id: str) -> str:
    raw = f"{platform_id}_{int(time.time() * 1000)}_{gen_secret()}"
    return base64.b64encode(raw.encode("UTF8")).decode("ascii")

def sha_256(text: str) -> str:
    return hashlib.sha256(text.encode("UTF8")).hexdigest()

def fallback_platform_id(transport_id: str) -> str:
    return FALLBACK_PREFIX + re.sub(r'[^a-zA-Z0-9]', '_', str(transport_id))

def fallback_display_name(platform_id: str) -> str:
    return f"Player_{platform_id[len(FALLBACK_PREFIX):len(FALLBACK_PREFIX) + 8]}"


class IdentityResolver:
    '''Maps session tokens (or, without one, the peer address) to a stable platform id.'''
    token_to_uid: dict[str, str]
    name_to_uid: dict[str, str]

    def __init__(self, store: Store):
        self.store = store
        self.token_to_uid = dict()
        self.name_to_uid = dict()

    def uid_for_name(self, display_name: str, wsid: str) -> str:
        with self.store.lock:
            uid = self.name_to_uid.get(display_name)
            if uid is None:
                uid = gen_user_uid(display_name, wsid)
                self.name_to_uid[display_name] = uid
            return uid

    def login(self, display_name: Optional[str], fallback_id: str) -> tuple[Player, str]:
        '''Register (or refresh) a player by display name and hand out a new session token.'''
        with self.store.lock:
            if not display_name:
                uid = fallback_platform_id(fallback_id)
                display_name = fallback_display_name(uid)
            else:
                uid = self.uid_for_name(display_name, fallback_id)
            token = gen_session_token(uid)
            player = self.store.register_player(uid, display_name, token)
            self.token_to_uid[token] = uid
            info(f"Login: {display_name} -> Platform ID: {uid}")
            return player, token

    def lookup_token(self, session_token: str) -> Optional[str]:
        with self.store.lock:
            uid = self.token_to_uid.get(session_token)
            if uid is None or self.store.get_player(uid) is None:
                return None
            return uid

    def resolve(self, session_token: Optional[str], fallback_id: str) -> str:
        '''Raises UnknownSession for a token we never issued (e.g. issued before a restart).
        Nothing is registered in that case.'''
        with self.store.lock:
            if session_token:
                uid = self.lookup_token(session_token)
                if uid is None:
                    warning(f"SessionToken not found: {short_token(session_token)} -- client must log in again")
                    raise UnknownSession(session_token)
                debug(f"Found existing player via session token: {uid}")
                self.store.mark_seen(uid)
                return uid
            uid = fallback_platform_id(fallback_id)
            if self.store.get_player(uid) is None:
                self.store.register_player(uid, fallback_display_name(uid))
            else:
                self.store.mark_seen(uid)
            return uid

    def resolve_lenient(self, session_token: Optional[str], fallback_id: str) -> str:
        '''Like `resolve`, but an unknown token falls back to the peer identity.
        For requests where rejecting would only lose data (cancel, scoring ack).'''
        try:
            return self.resolve(session_token, fallback_id)
        except UnknownSession:
            return self.resolve(None, fallback_id)

    def forget_token(self, session_token: str):
        with self.store.lock:
            self.token_to_uid.pop(session_token, None)
