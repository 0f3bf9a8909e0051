# repertoire_trainer/core/practice_service.py
"""練習引擎對 UI / API 層提供的三個操作：取題、交答案、查下次複習時間。"""
import logging
import random
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Set, Tuple, Union

from ..errors import CollaboratorUnavailable
from .lines import LineRef, ResolvedLine
from .move_judge import SubmittedMove, judge_move
from .opening_manager import OpeningManager, StackEntry
from .position_generator import Candidate, generate_candidates
from .progress_ledger import ProgressLedger, utcnow
from .review_scheduler import is_due, next_review_at, review_interval
from .rules_oracle import ChessRulesOracle, RulesOracle
from .sampler import sample_candidate, sample_collection
from .statistics import ProgressSummary, summarize_progress

logger = logging.getLogger(__name__)

MODE_OPENING = "opening"
MODE_CUSTOM = "custom"
MODE_STACK = "stack"


@dataclass(frozen=True)
class PracticePosition:
    ply: int
    position: str
    expected_move: str
    preceding_moves: List[str]
    line_display_name: str
    line: LineRef


@dataclass(frozen=True)
class AttemptResult:
    accepted: bool
    correct: Optional[bool] = None
    expected_move_if_wrong: Optional[str] = None
    played_move: Optional[str] = None
    reason: Optional[str] = None


class PracticeService:

    def __init__(self, opening_manager: Optional[OpeningManager] = None,
                 ledger: Optional[ProgressLedger] = None,
                 oracle: Optional[RulesOracle] = None,
                 rng: Optional[random.Random] = None,
                 clock=utcnow):
        self.oracle = oracle or ChessRulesOracle()
        self.opening_manager = opening_manager or OpeningManager(oracle=self.oracle)
        self.ledger = ledger or ProgressLedger(self.opening_manager.session_factory, clock=clock)
        self.rng = rng or random.Random()
        self.clock = clock

    # ---------- 取題 ---------- #
    def get_practice_position(self, user_id: int, mode: str,
                              reference: Union[LineRef, int]) -> Optional[PracticePosition]:
        """依模式取一個練習局面；沒有可練習的局面時回傳 None。

        mode 為 'opening' / 'custom' 時 reference 是路線；'stack' 時是堆疊 id。
        """
        if mode == MODE_STACK:
            entries = self.opening_manager.stack_entries(user_id, reference)
            chosen = {}

            def build(entry: StackEntry) -> List[Candidate]:
                chosen["line"], candidates = self._build(user_id, entry)
                return candidates

            picked = sample_collection(entries, build, self.rng)
            if picked is None:
                logger.info(f"學習堆疊 {reference} 沒有任何成員。")
                return None
            _, candidate = picked
            if candidate is None:
                return None
            return self._to_position(candidate, chosen["line"])

        if mode not in (MODE_OPENING, MODE_CUSTOM) or getattr(reference, "kind", None) != mode:
            raise ValueError(f"模式 {mode!r} 與路線 {reference!r} 不相符")
        resolved, candidates = self._build(user_id, StackEntry(reference))
        candidate = sample_candidate(candidates, self.rng)
        if candidate is None:
            logger.info(f"路線 {reference.key} 沒有可練習的局面。")
            return None
        return self._to_position(candidate, resolved)

    def candidates_for(self, user_id: int, line: LineRef,
                       practice_plies: Optional[List[int]] = None) -> List[Candidate]:
        return self._build(user_id, StackEntry(line, list(practice_plies or [])))[1]

    def _build(self, user_id: int, entry: StackEntry) -> Tuple[ResolvedLine, List[Candidate]]:
        resolved = self.opening_manager.resolve(user_id, entry.line)
        try:
            candidates = generate_candidates(resolved.moves, entry.practice_plies,
                                             resolved.learner_color, self.oracle,
                                             resolved.display_name)
        except Exception as e:
            logger.error(f"規則引擎產生局面失敗: {e}")
            raise CollaboratorUnavailable("rules oracle", str(e)) from e
        return resolved, candidates

    @staticmethod
    def _to_position(candidate: Candidate, resolved: ResolvedLine) -> PracticePosition:
        return PracticePosition(
            ply=candidate.ply,
            position=candidate.position_before_move,
            expected_move=candidate.expected_move,
            preceding_moves=list(candidate.preceding_moves),
            line_display_name=resolved.display_name,
            line=resolved.ref,
        )

    # ---------- 交答案 ---------- #
    def submit_attempt(self, user_id: int, line: LineRef, ply: int,
                       position_before_move: str, submitted_move: SubmittedMove,
                       expected_move: str) -> AttemptResult:
        """判定走法後，合法的作答（不論對錯）才寫入進度。

        路線先經 resolve 確認存在且屬於該用戶，否則丟出 LineNotFoundError。
        """
        self.opening_manager.resolve(user_id, line)
        try:
            verdict = judge_move(position_before_move, submitted_move, expected_move, self.oracle)
        except ValueError:
            # 無法解析的 FEN 等同於無法在此局面走這一步
            logger.warning(f"無法在局面 '{position_before_move}' 判定走法 {submitted_move}")
            return AttemptResult(accepted=False, reason="illegal")
        except Exception as e:
            logger.error(f"規則引擎判定走法失敗: {e}")
            raise CollaboratorUnavailable("rules oracle", str(e)) from e

        if not verdict.accepted:
            return AttemptResult(accepted=False, reason=verdict.reason)

        self.ledger.record_attempt(user_id, line, ply, verdict.correct,
                                   position_fen=position_before_move,
                                   expected_move=expected_move)
        return AttemptResult(
            accepted=True,
            correct=verdict.correct,
            expected_move_if_wrong=verdict.expected_move,
            played_move=verdict.played_move,
        )

    # ---------- 複習建議 ---------- #
    def get_next_review(self, user_id: int, line: LineRef, ply: int) -> datetime:
        """建議的下次複習時間；尚未練習過時為一天後。只讀取，不影響抽題。"""
        record = self.ledger.get_record(user_id, line, ply)
        if record is None:
            return self.clock() + review_interval(0, 0)
        return next_review_at(record)

    def due_reviews(self, user_id: int, now: Optional[datetime] = None):
        """已到期的進度紀錄，答對率低者優先。"""
        now = now or self.clock()
        due = [r for r in self.ledger.records_for_user(user_id) if is_due(r, now)]
        return sorted(due, key=lambda r: (_success_rate(r), next_review_at(r)))

    def progress_summary(self, user_id: int, today: Optional[date] = None) -> ProgressSummary:
        today = today or self.clock().date()
        return summarize_progress(self.ledger.records_for_user(user_id), today)

    def legal_destinations(self, position: str, square: str) -> Set[str]:
        return self.oracle.legal_destinations(position, square)


def _success_rate(record) -> float:
    total = record.correct_count + record.incorrect_count
    return record.correct_count / total if total else 0.0
