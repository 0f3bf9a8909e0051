# repertoire_trainer/core/statistics.py
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional


@dataclass
class LineStats:
    line_key: str
    total_attempts: int = 0
    correct_attempts: int = 0
    last_practiced_at: Optional[datetime] = None

    @property
    def accuracy(self) -> int:
        if not self.total_attempts:
            return 0
        return round(self.correct_attempts / self.total_attempts * 100)


@dataclass
class ProgressSummary:
    total_attempts: int = 0
    correct_attempts: int = 0
    current_streak: int = 0
    lines: List[LineStats] = field(default_factory=list)

    @property
    def incorrect_attempts(self) -> int:
        return self.total_attempts - self.correct_attempts

    @property
    def overall_accuracy(self) -> int:
        if not self.total_attempts:
            return 0
        return round(self.correct_attempts / self.total_attempts * 100)

    @property
    def lines_practiced(self) -> int:
        return len(self.lines)


def practice_streak(practice_days: Iterable[date], today: date) -> int:
    """從今天（或昨天）往回數，連續有練習的天數。"""
    days = set(practice_days)
    check = today if today in days else today - timedelta(days=1)
    streak = 0
    while check in days:
        streak += 1
        check -= timedelta(days=1)
    return streak


def summarize_progress(records, today: date) -> ProgressSummary:
    """彙總用戶的進度紀錄：整體答對率、各路線統計（練習次數多者在前）、連續練習天數。"""
    per_line: Dict[str, LineStats] = {}
    summary = ProgressSummary()
    practice_days = set()
    for record in records:
        attempts = record.correct_count + record.incorrect_count
        summary.total_attempts += attempts
        summary.correct_attempts += record.correct_count
        practice_days.add(record.last_practiced_at.date())

        stats = per_line.setdefault(record.line_key, LineStats(record.line_key))
        stats.total_attempts += attempts
        stats.correct_attempts += record.correct_count
        if stats.last_practiced_at is None or record.last_practiced_at > stats.last_practiced_at:
            stats.last_practiced_at = record.last_practiced_at

    summary.lines = sorted(per_line.values(), key=lambda s: s.total_attempts, reverse=True)
    summary.current_streak = practice_streak(practice_days, today)
    return summary
