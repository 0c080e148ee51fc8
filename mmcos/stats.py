from mmcos.consts import DEFAULT_WAIT_NON_RANKED, DEFAULT_WAIT_RANKED, RANKED
from mmcos.models.Game import ACTIVE, FINISHED, WAITING, Game
from mmcos.models.Matchmaking import ServerStats, WaitTimes
from mmcos.registry import Store


class WaitTimeTracker:
    '''Running mean of seconds from game creation to start, per ranked / non-ranked.
    Informational only; nothing is decided based on it.'''

    def __init__(self, store: Store = None):
        self.totals = {True: 0.0, False: 0.0}
        self.counts = {True: 0, False: 0}
        if store is not None:
            store.subscribe(self.on_game_event)

    def on_game_event(self, game: Game, event: str):
        if event == "started" and game.start_ts is not None:
            self.record(game.ranking == RANKED, game.start_ts - game.creation_ts)

    def record(self, ranked: bool, wait_secs: float):
        self.totals[ranked] += max(0.0, wait_secs)
        self.counts[ranked] += 1

    def average(self, ranked: bool) -> float:
        if self.counts[ranked] == 0:
            return DEFAULT_WAIT_RANKED if ranked else DEFAULT_WAIT_NON_RANKED
        return round(self.totals[ranked] / self.counts[ranked], 1)

    @property
    def wait_times(self) -> WaitTimes:
        return WaitTimes(non_ranked=self.average(False), ranked=self.average(True))

    @property
    def overall_average(self) -> float:
        n = self.counts[True] + self.counts[False]
        if n == 0:
            return round((DEFAULT_WAIT_NON_RANKED + DEFAULT_WAIT_RANKED) / 2, 1)
        return round((self.totals[True] + self.totals[False]) / n, 1)


def server_stats(store: Store, wait_times: WaitTimeTracker = None) -> ServerStats:
    with store.lock:
        games = store.all_games()
        players = store.all_players()
    by_status = {WAITING: 0, ACTIVE: 0, FINISHED: 0}
    for g in games:
        by_status[g.status] += 1
    return ServerStats(
        total_games=len(games),
        waiting_games=by_status[WAITING],
        active_games=by_status[ACTIVE],
        finished_games=by_status[FINISHED],
        total_players=len(players),
        online_players=sum(1 for p in players if p.is_online),
        average_wait_time=(wait_times or WaitTimeTracker()).overall_average,
    )
