# repertoire_trainer/core/position_generator.py
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from .lines import WHITE
from .rules_oracle import RulesOracle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """一個可出題的局面：輪到學習者走第 ply 步之前。"""
    ply: int
    position_before_move: str
    expected_move: str
    preceding_moves: List[str]


def learner_plies(length: int, learner_color: str) -> Set[int]:
    """學習者負責的 ply：白方為偶數，黑方為奇數。對手的應著只作為背景。"""
    parity = 0 if learner_color == WHITE else 1
    return {i for i in range(length) if i % 2 == parity}


def generate_candidates(moves: List[str], target_plies: Optional[Iterable[int]],
                        learner_color: str, oracle: RulesOracle,
                        line_name: str = "") -> List[Candidate]:
    """從初始局面逐步重播，記錄每個目標 ply 走子前的局面。

    遇到規則引擎拒絕的走法時停止（之後的步數無法到達），並記錄資料完整性警告；
    已產生的候選局面仍然有效。
    """
    targets = set(target_plies or ())
    if not targets:
        targets = learner_plies(len(moves), learner_color)

    candidates: List[Candidate] = []
    position = oracle.initial_position()
    for ply, san in enumerate(moves):
        if ply in targets:
            candidates.append(Candidate(
                ply=ply,
                position_before_move=position,
                expected_move=san,
                preceding_moves=list(moves[:ply]),
            ))
        next_position = oracle.apply_move(position, san)
        if next_position is None:
            logger.warning(
                f"路線 '{line_name}' 第 {ply} 步 '{san}' 不合法，之後的 {len(moves) - ply - 1} 步無法到達，已截斷。"
            )
            # 不合法的這一步本身也不能當題目
            if candidates and candidates[-1].ply == ply:
                candidates.pop()
            break
        position = next_position
    return candidates
