# repertoire_trainer/core/move_judge.py
from dataclasses import dataclass
from typing import Optional

from .rules_oracle import RulesOracle

REASON_ILLEGAL = "illegal"


@dataclass(frozen=True)
class SubmittedMove:
    """學習者在棋盤上走的一步：起點、終點、升變棋子（預設升后）。"""
    from_square: str
    to_square: str
    promotion: Optional[str] = None

    @classmethod
    def from_uci(cls, uci: str) -> "SubmittedMove":
        uci = uci.strip().replace(" ", "").replace("-", "")
        if len(uci) not in (4, 5):
            raise ValueError(f"無法解析的走法: {uci!r}")
        return cls(uci[:2], uci[2:4], uci[4:] or None)


@dataclass(frozen=True)
class Verdict:
    accepted: bool
    correct: bool = False
    expected_move: Optional[str] = None  # 只在答錯時提供
    played_move: Optional[str] = None
    reason: Optional[str] = None


def judge_move(position_before_move: str, submitted: SubmittedMove,
               expected_move: str, oracle: RulesOracle) -> Verdict:
    """在出題局面走出學習者的這一步，再以 SAN 完全比對預期走法。

    非法走法回傳 accepted=False；此函式沒有副作用，記錄進度由呼叫端負責。
    """
    applied = oracle.play(position_before_move, submitted.from_square,
                          submitted.to_square, submitted.promotion)
    if applied is None:
        return Verdict(accepted=False, reason=REASON_ILLEGAL)
    if applied.san == expected_move:
        return Verdict(accepted=True, correct=True, played_move=applied.san)
    return Verdict(accepted=True, correct=False, expected_move=expected_move,
                   played_move=applied.san)
