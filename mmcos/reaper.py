import asyncio
import time
import logging as log

from mmcos import consts
from mmcos.models.Game import FINISHED
from mmcos.registry import Store


class Reaper:
    '''Deletes finished games once they are older than the retention window.
    Waiting and active games are never touched here; stale active games are
    dealt with when their players come back to matchmaking.'''

    def __init__(self, store: Store, interval: float = consts.REAP_INTERVAL_SECS, retention: float = consts.RETENTION_SECS):
        self.store = store
        self.interval = interval
        self.retention = retention

    def sweep(self, now: float = None) -> list[int]:
        now = time.time() if now is None else now
        cutoff = now - self.retention
        deleted = []
        with self.store.lock:
            for game in self.store.all_games():
                if game.status != FINISHED or game.end_ts is None:
                    continue
                if game.end_ts < cutoff:
                    self.store.delete_game(game.session_id)
                    deleted.append(game.session_id)
                    log.info(f"Cleaned up old game: Session {game.session_id}")
        return deleted

    async def run_forever(self):
        while not consts.SHUTDOWN:
            await self.sleep_interval()
            if consts.SHUTDOWN: break
            try:
                n = len(self.sweep())
                if n > 0:
                    log.info(f"Reaper removed {n} finished games")
            except Exception as e:
                log.warning(f"Reaper sweep failed: {e}")

    async def sleep_interval(self):
        # wake up regularly so shutdown isn't held up by a 30 min sleep
        slept = 0.0
        while slept < self.interval and not consts.SHUTDOWN:
            step = min(1.0, self.interval - slept)
            await asyncio.sleep(step)
            slept += step
