import datetime

from mmcos.consts import *
from mmcos.utils import clamp


# (season, first day, last day)
SEASON_SCHEDULE = [
    (46, datetime.date(2025, 1, 1), datetime.date(2025, 2, 15)),
    (47, datetime.date(2025, 3, 1), datetime.date(2025, 4, 15)),
    (48, datetime.date(2025, 5, 1), datetime.date(2025, 6, 15)),
    (49, datetime.date(2025, 7, 1), datetime.date(2025, 8, 15)),
    (50, datetime.date(2025, 9, 1), datetime.date(2025, 10, 16)),
    (51, datetime.date(2025, 11, 1), datetime.date(2025, 12, 16)),
]


def placement_points(position: int) -> int:
    '''Points for a finishing position; 1st gets the most, never below the floor.'''
    return max(PLACEMENT_POINTS_BASE - PLACEMENT_POINTS_STEP * position, PLACEMENT_POINTS_MIN)


def rank_for_points(points: int) -> int:
    return max(1, points // 100)


def division_for_rank(rank: int) -> int:
    return clamp(rank // 10, 0, MAX_DIVISION)


def current_season(today: datetime.date = None) -> int:
    today = datetime.date.today() if today is None else today
    for season, start, end in SEASON_SCHEDULE:
        if start <= today <= end:
            return season
    return DEFAULT_SEASON
