import asyncio
from logging import info, warning

from mmcos.models.Game import WAITING, Game
from mmcos.registry import Store


# a waiting game that hits one of these no longer needs a timed start
CANCEL_EVENTS = {"started", "finished", "deleted", "full"}


class AutoStartScheduler:
    '''Delayed waiting -> active transitions, one per session id.

    A pending start is cancelled as soon as the game moves on (started, finished,
    deleted or filled up), so a timer never revives a game that
    changed underneath it.
    '''
    pending: dict[int, asyncio.TimerHandle]

    def __init__(self, store: Store, delay: float):
        self.store = store
        self.delay = delay
        self.pending = dict()
        store.subscribe(self.on_game_event)

    def schedule(self, session_id: int, delay: float = None) -> asyncio.TimerHandle:
        delay = self.delay if delay is None else delay
        self.cancel(session_id)
        loop = asyncio.get_running_loop()
        handle = loop.call_later(delay, self._fire, session_id)
        self.pending[session_id] = handle
        info(f"Auto-starting Session {session_id} in {delay}s (solo ranked match)")
        return handle

    def cancel(self, session_id: int) -> bool:
        handle = self.pending.pop(session_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self):
        for session_id in list(self.pending.keys()):
            self.cancel(session_id)

    def is_pending(self, session_id: int) -> bool:
        return session_id in self.pending

    def on_game_event(self, game: Game, event: str):
        if event not in CANCEL_EVENTS: return
        if self.cancel(game.session_id):
            info(f"Cancelled auto-start of Session {game.session_id} ({event})")

    def _fire(self, session_id: int):
        self.pending.pop(session_id, None)
        try:
            with self.store.lock:
                game = self.store.get_game(session_id)
                if game is None or game.status != WAITING:
                    return
                self.store.start_game(session_id)
            info(f"AUTO-STARTED Session {session_id} with {game.n_players} players")
        except Exception as e:
            warning(f"Auto-start of Session {session_id} failed: {e}")
