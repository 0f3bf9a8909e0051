# repertoire_trainer/core/review_scheduler.py
"""簡易間隔重複：依答對率決定下次建議複習的時間。

純函式，不讀寫資料庫。目前抽題不參考這裡的結果，只提供建議時間。
"""
from datetime import datetime, timedelta
from typing import Optional

from ..config import FIRST_EXPOSURE_INTERVAL, REVIEW_INTERVALS


def review_interval(correct_count: int, incorrect_count: int) -> timedelta:
    total = correct_count + incorrect_count
    if total == 0:
        return FIRST_EXPOSURE_INTERVAL
    rate = correct_count / total
    for threshold, interval in REVIEW_INTERVALS:
        if rate >= threshold:
            return interval
    return REVIEW_INTERVALS[-1][1]


def next_review_at(record, reference_time: Optional[datetime] = None) -> datetime:
    """record 需有 correct_count、incorrect_count、last_practiced_at。

    以 reference_time（未提供時用 last_practiced_at）為起點加上間隔。
    """
    base = reference_time or record.last_practiced_at
    return base + review_interval(record.correct_count, record.incorrect_count)


def is_due(record, now: datetime) -> bool:
    return next_review_at(record) <= now
