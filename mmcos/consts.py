import threading
from pathlib import Path

import toml

SERVER_VERSION = toml.load(Path(__file__).parent.parent / "pyproject.toml")['project']['version']

# set to True on shutdown of server.
# this is not really const, but easy to put here
SHUTDOWN = False
SHUTDOWN_EVT = threading.Event()

DEFAULT_MAX_PLAYERS = 8
MIN_PLAYERS = 1
MAX_PLAYERS = 16

# teams are filled in squads of this size, in join order
SQUAD_SIZE = 4

DEFAULT_GAME_TYPE = "Race"
DEFAULT_RULE_SET = "Race"
DEFAULT_RANKING = "NotRanked"
RANKED = "Ranked"

# solo ranked games get started this many seconds after creation
AUTO_START_DELAY_SECS = 3.0
# an active game older than this is presumed abandoned
STALE_GAME_SECS = 5 * 60
REAP_INTERVAL_SECS = 30 * 60
RETENTION_SECS = 60 * 60

RACE_KEY_BYTES = 8
MIN_SESSION_ID = 1_000_000
MAX_SESSION_ID = 100_999_999
SESSION_ID_ATTEMPTS = 1000

# placement points: 100 - 10 * position, never below the floor
PLACEMENT_POINTS_BASE = 100
PLACEMENT_POINTS_STEP = 10
PLACEMENT_POINTS_MIN = 10

MAX_DIVISION = 6
DEFAULT_SEASON = 46

DEFAULT_WAIT_NON_RANKED = 82.8
DEFAULT_WAIT_RANKED = 84.5
