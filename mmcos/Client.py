import asyncio
import json
from logging import debug, info, warning
import os
import struct
import traceback
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from mmcos.consts import SERVER_VERSION
from mmcos.errors import UnknownSession
from mmcos.models.Matchmaking import AddPointsRequest, MatchmakingRequest
from mmcos.service import MatchmakingService


class MsgException(Exception):
    pass


all_clients: set["Client"] = set()


class Message(BaseModel):
    type: str
    payload: dict = Field(default_factory=dict)

    def __getitem__(self, key):
        return self.payload[key]

    def get(self, key, default=None):
        return self.payload.get(key, default)


class Client:
    '''One TCP connection. Frames are a little-endian u16 length followed by
    that many bytes of UTF-8 JSON: {"type": ..., "payload": {...}}.'''
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    uid: str
    service: MatchmakingService
    disconnected: bool = False
    # player this connection speaks for, once known
    platform_id: Optional[str] = None

    def __init__(self, reader, writer, service: MatchmakingService) -> None:
        self.reader = reader
        self.writer = writer
        self.service = service
        self.uid = os.urandom(16).hex()
        self.disconnected = False
        self.platform_id = None

    def __hash__(self) -> int:
        return hash(self.uid)

    @property
    def client_ip(self) -> str:
        peer = self.writer.get_extra_info('peername')
        if isinstance(peer, tuple):
            return str(peer[0])
        return str(peer)

    def send_server_info(self):
        self.write_json({"server": {"version": SERVER_VERSION, "n_clients": len(all_clients)}})

    async def read_msg_inner(self) -> Optional[str]:
        try:
            bs = await self.reader.readexactly(2)
            msg_len, = struct.unpack_from('<H', bs)
            incoming = (await self.reader.readexactly(msg_len)).decode("UTF8")
        except asyncio.IncompleteReadError:
            info(f"Client disconnected: {self.client_ip}")
            self.disconnect()
            return None
        except UnicodeDecodeError as e:
            self.tell_error(f"Unable to read message. {e}")
            return None
        if incoming == "END":
            info(f"Client disconnecting: {self.client_ip}")
            self.disconnect()
            return None
        if incoming == "PING":
            return None
        return incoming

    async def read_msg(self) -> Optional[str]:
        msg_str = await self.read_msg_inner()
        while msg_str is None and not self.disconnected:
            msg_str = await self.read_msg_inner()
        return msg_str

    async def read_json(self) -> Optional[Any]:
        while not self.disconnected:
            msg = await self.read_msg()
            if msg is None or msg == "":
                return None
            try:
                return json.loads(msg)
            except json.JSONDecodeError as e:
                self.tell_error(f"Bad payload: invalid JSON ({e})")
        return None

    async def read_valid(self) -> Optional[Message]:
        while not self.disconnected:
            msg = await self.read_json()
            if msg is None: return None
            valid = self.validate_pl(msg)
            if valid is not None:
                return valid
        return None

    def validate_pl(self, pl: Any) -> Optional[Message]:
        if not isinstance(pl, dict) or "type" not in pl:
            self.tell_error("Bad payload: required keys: `type`, `payload`.")
            return None
        if not isinstance(pl['type'], str):
            self.tell_error("Bad payload: `type` must be a string.")
            return None
        if not isinstance(pl.get('payload', {}), dict):
            self.tell_error("Bad payload: `payload` must be an object.")
            return None
        return Message(type=pl['type'], payload=pl.get('payload', {}))

    def write_raw(self, msg: str):
        if self.writer.is_closing(): return
        data = bytes(msg, "UTF8")
        if len(data) >= 2**16:
            raise MsgException(f"msg too long ({len(data)})")
        self.writer.write(struct.pack('<H', len(data)))
        self.writer.write(data)

    def write_json(self, data: dict):
        return self.write_raw(json.dumps(data))

    def write_message(self, type: str, payload: Any, **kwargs):
        return self.write_json(dict(type=type, payload=payload, **kwargs))

    def tell_error(self, msg: str):
        warning(f"[Client:{self.client_ip}] Sending error to client: {msg}")
        self.write_json({"error": msg})

    async def main_loop(self):
        all_clients.add(self)
        self.send_server_info()
        try:
            while not self.disconnected:
                msg = await self.read_valid()
                if msg is None:
                    break
                await self.process_msg(msg)
                await self.writer.drain()
        finally:
            self.disconnect()

    async def process_msg(self, msg: Message):
        try:
            if msg.type == "LOGIN": self.on_login(msg)
            elif msg.type == "ENTER_MATCHMAKING": await self.on_enter_matchmaking(msg)
            elif msg.type == "CANCEL_MATCHMAKING": self.on_cancel_matchmaking(msg)
            elif msg.type == "REGISTER_ACTIVE_GAME": self.on_register_active_game(msg)
            elif msg.type == "ADD_POINTS": self.on_add_points(msg)
            elif msg.type == "SERVER_STATS": self.write_message("SERVER_STATS_RESULT", self.service.stats().model_dump())
            elif msg.type == "SERVER_STATUS": self.write_message("SERVER_STATUS_RESULT", self.service.status().model_dump())
            else: self.tell_error(f"Unknown message type: {msg.type}")
        except UnknownSession as e:
            info(f"[Client:{self.client_ip}] {e}")
            self.write_json(dict(type="SESSION_EXPIRED", error="Session expired. Please restart game."))
        except ValidationError as e:
            self.tell_error(f"Bad payload for {msg.type}: {e.error_count()} invalid field(s)")
        except KeyError as e:
            self.tell_error(f"Bad payload for {msg.type}: missing {e}")
        except Exception as e:
            warning(f"[Client:{self.client_ip}] Exception processing {msg.type}: {e}\n{''.join(traceback.format_exception(e))}")
            self.tell_error("Unknown server error.")

    def on_login(self, msg: Message):
        res = self.service.login(msg.get('display_name'), self.client_ip)
        self.platform_id = res.platform_id
        self.write_message("LOGIN_RESULT", res.model_dump())

    async def on_enter_matchmaking(self, msg: Message):
        req = MatchmakingRequest(**{**msg.payload, 'fallback_id': self.client_ip})
        res = await self.service.enter_matchmaking(req)
        self.platform_id = self.service.identify(req.session_token, self.client_ip)
        self.write_message("ENTER_MATCHMAKING_RESULT", res.model_dump())

    def on_cancel_matchmaking(self, msg: Message):
        left = self.service.cancel_matchmaking(msg.get('session_token'), self.client_ip)
        self.write_message("CANCEL_MATCHMAKING_RESULT", dict(left_game=left))

    def on_register_active_game(self, msg: Message):
        game = self.service.register_active_game(str(msg['race_key']))
        pl = dict(session_id=None, status=None) if game is None else game.to_game_info_json
        self.write_message("REGISTER_ACTIVE_GAME_RESULT", pl)

    def on_add_points(self, msg: Message):
        req = AddPointsRequest(**{**msg.payload, 'fallback_id': self.client_ip})
        res = self.service.add_points(req)
        self.platform_id = self.service.identify(req.session_token, self.client_ip)
        self.write_message("ADD_POINTS_RESULT", res.model_dump())

    def disconnect(self):
        if self.disconnected: return
        self.disconnected = True
        all_clients.discard(self)
        if self.platform_id is not None:
            self.service.set_offline(self.platform_id)
        try:
            self.write_raw("END")
        except Exception as e:
            debug(f"[Client:{self.client_ip}] Failed to send END: {e}")
        self.writer.close()
