# repertoire_trainer/core/rules_oracle.py
"""西洋棋規則的外部能力介面。

練習引擎本身不實作棋規，只透過 RulesOracle 取得「某步是否合法、走完後的局面、
該步的 SAN 寫法」。ChessRulesOracle 以 python-chess 實作；任何符合介面的實作
都可以替換。局面一律以 FEN 字串傳遞。
"""
import abc
import logging
from dataclasses import dataclass
from typing import List, Optional, Set

import chess

logger = logging.getLogger(__name__)

GAME_STATUS_NONE = "none"
GAME_STATUS_CHECKMATE = "checkmate"
GAME_STATUS_STALEMATE = "stalemate"
GAME_STATUS_DRAW = "draw"


@dataclass(frozen=True)
class AppliedMove:
    san: str
    position: str  # 走完後的 FEN


@dataclass(frozen=True)
class ReplayResult:
    final_position: str
    failed_at_ply: Optional[int] = None  # None 表示整串都合法

    @property
    def ok(self) -> bool:
        return self.failed_at_ply is None


class RulesOracle(abc.ABC):

    @abc.abstractmethod
    def initial_position(self) -> str:
        ...

    @abc.abstractmethod
    def apply_move(self, position: str, san: str) -> Optional[str]:
        """走一步 SAN；不合法回傳 None。"""

    @abc.abstractmethod
    def play(self, position: str, from_square: str, to_square: str,
             promotion: Optional[str] = None) -> Optional[AppliedMove]:
        """以起訖格走一步；不合法回傳 None。"""

    @abc.abstractmethod
    def legal_destinations(self, position: str, square: str) -> Set[str]:
        ...

    @abc.abstractmethod
    def game_status(self, position: str) -> str:
        ...

    def replay(self, moves: List[str]) -> ReplayResult:
        position = self.initial_position()
        for ply, san in enumerate(moves):
            next_position = self.apply_move(position, san)
            if next_position is None:
                return ReplayResult(position, failed_at_ply=ply)
            position = next_position
        return ReplayResult(position)


class ChessRulesOracle(RulesOracle):
    """python-chess 版本的規則引擎。"""

    def __init__(self, starting_fen: str = chess.STARTING_FEN):
        self.starting_fen = starting_fen

    def initial_position(self) -> str:
        return self.starting_fen

    def apply_move(self, position: str, san: str) -> Optional[str]:
        board = chess.Board(position)
        try:
            board.push_san(san)
        except ValueError:
            # IllegalMoveError / InvalidMoveError / AmbiguousMoveError 都是 ValueError
            return None
        return board.fen()

    def play(self, position: str, from_square: str, to_square: str,
             promotion: Optional[str] = None) -> Optional[AppliedMove]:
        board = chess.Board(position)
        try:
            from_sq = chess.parse_square(from_square.lower())
            to_sq = chess.parse_square(to_square.lower())
        except ValueError:
            return None
        promotion_piece = None
        if promotion:
            try:
                promotion_piece = chess.Piece.from_symbol(promotion.lower()).piece_type
            except ValueError:
                return None
        elif board.piece_type_at(from_sq) == chess.PAWN and chess.square_rank(to_sq) in (0, 7):
            # 未指定升變棋子時預設升后
            promotion_piece = chess.QUEEN
        move = chess.Move(from_sq, to_sq, promotion=promotion_piece)
        if move not in board.legal_moves:
            return None
        san = board.san(move)
        board.push(move)
        return AppliedMove(san=san, position=board.fen())

    def legal_destinations(self, position: str, square: str) -> Set[str]:
        board = chess.Board(position)
        try:
            from_sq = chess.parse_square(square.lower())
        except ValueError:
            return set()
        return {chess.square_name(m.to_square) for m in board.legal_moves if m.from_square == from_sq}

    def game_status(self, position: str) -> str:
        board = chess.Board(position)
        if board.is_checkmate():
            return GAME_STATUS_CHECKMATE
        if board.is_stalemate():
            return GAME_STATUS_STALEMATE
        if board.is_insufficient_material() or board.can_claim_draw():
            return GAME_STATUS_DRAW
        return GAME_STATUS_NONE
