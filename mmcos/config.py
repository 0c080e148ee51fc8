import os
from logging import info
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from mmcos.consts import *
from mmcos.utils import read_config_file


# env var -> ServerConfig field
ENV_KEYS = {
    'MMCOS_SERVER_NAME': 'name',
    'MMCOS_SERVER_DESCRIPTION': 'description',
    'MMCOS_HOST_NAME': 'host_name',
    'MMCOS_PORT': 'port',
    'MMCOS_MAX_PLAYERS': 'max_players',
    'MMCOS_SOLO_AUTOSTART': 'solo_autostart',
    'MMCOS_FORCE_GAME_TYPE': 'force_game_type',
    'MMCOS_AUTO_START_DELAY': 'auto_start_delay',
    'MMCOS_STALE_GAME_SECS': 'stale_game_secs',
    'MMCOS_REAP_INTERVAL': 'reap_interval',
    'MMCOS_RETENTION_SECS': 'retention_secs',
    'MMCOS_ALLOW_SPECTATORS': 'allow_spectators',
    'MMCOS_SEASON_SYSTEM': 'season_system',
}


class ServerConfig(BaseModel):
    name: str = "MMCOS Community Server"
    description: str = "Community server - responds to all game modes"
    host_name: str = "0.0.0.0"
    port: int = Field(default=15277, ge=1, le=65535)
    max_players: int = Field(default=DEFAULT_MAX_PLAYERS, ge=MIN_PLAYERS, le=MAX_PLAYERS)
    # start solo ranked games on their own instead of waiting for opponents
    solo_autostart: bool = True
    force_game_type: Optional[str] = None
    auto_start_delay: float = Field(default=AUTO_START_DELAY_SECS, ge=0)
    stale_game_secs: float = Field(default=STALE_GAME_SECS, gt=0)
    reap_interval: float = Field(default=REAP_INTERVAL_SECS, gt=0)
    retention_secs: float = Field(default=RETENTION_SECS, ge=0)
    allow_spectators: bool = True
    season_system: bool = True

    @property
    def competitive_mode(self) -> bool:
        return not self.solo_autostart

    def forced_type_and_rules(self, game_type: str | None, rule_set: str | None) -> tuple[str | None, str | None]:
        if not self.force_game_type:
            return game_type, rule_set
        return self.force_game_type, self.force_game_type.replace("Quick", "")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> "ServerConfig":
        '''Settings come from MMCOS_* env vars. If MMCOS_CONFIG_FILE is set,
        its `key = value` lines (same keys as the env vars) take precedence.'''
        environ = os.environ if environ is None else environ
        values = {field: environ[k] for k, field in ENV_KEYS.items() if environ.get(k, '').strip() != ''}
        config_file = environ.get('MMCOS_CONFIG_FILE', '').strip()
        if config_file:
            from_file = read_config_file(config_file, list(ENV_KEYS.keys()), required=False)
            info(f"Loaded {len(from_file)} settings from {config_file}")
            values.update({ENV_KEYS[k]: v for k, v in from_file.items()})
        return cls(**values)
