# repertoire_trainer/core/opening_manager.py
import io
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

import chess.pgn
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ..database.database import SessionLocal, session_scope
from ..database.models import (
    CustomOpening, LearningStack, Opening, StackMember, User, Variation,
)
from ..errors import InvalidMoveSequenceError, LineNotFoundError
from .lines import (
    CustomLine, LineRef, OpeningLine, ResolvedLine, normalize_color,
    resolve_custom_line, resolve_opening_line,
)
from .rules_oracle import ChessRulesOracle, RulesOracle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StackEntry:
    """堆疊成員的快照：要練的路線，以及限定練習的 ply（空 = 全部己方 ply）。"""
    line: LineRef
    practice_plies: List[int] = field(default_factory=list)


@dataclass
class OpeningSpec:
    name: str
    moves: List[str]
    eco: Optional[str] = None
    category: str = ""
    description: Optional[str] = None
    popularity: int = 0


def pgn_mainline_san(pgn_text: str) -> List[str]:
    """取出 PGN 主線的 SAN 列表。"""
    game = chess.pgn.read_game(io.StringIO(pgn_text))
    if game is None or game.errors:
        errors = "; ".join(str(e) for e in game.errors) if game is not None else "空白 PGN"
        raise InvalidMoveSequenceError(f"無法解析 PGN: {errors}")
    board = game.board()
    moves = []
    for move in game.mainline_moves():
        moves.append(board.san(move))
        board.push(move)
    return moves


class OpeningManager:
    """開局目錄、自訂開局與學習堆疊的儲存層。

    每個方法各自開一個短會話；讀取路線時回傳快照（ResolvedLine / StackEntry），
    之後即使資料被修改，本次練習仍使用已解析的版本。
    """

    def __init__(self, session_factory=SessionLocal, oracle: Optional[RulesOracle] = None):
        self.session_factory = session_factory
        self.oracle = oracle or ChessRulesOracle()

    # ---------- 用戶 ---------- #
    def get_or_create_user(self, username: str) -> User:
        with session_scope(self.session_factory) as session:
            user = session.scalars(select(User).where(User.username == username)).first()
            if not user:
                user = User(username=username)
                session.add(user)
                session.flush()
                logger.info(f"已建立用戶: {username}")
            return user

    def remove_user(self, user_id: int) -> bool:
        with session_scope(self.session_factory) as session:
            user = session.get(User, user_id)
            if not user:
                logger.warning(f"試圖移除不存在的用戶: {user_id}")
                return False
            session.delete(user)
        logger.info(f"成功移除用戶 {user_id} 及其所有資料")
        return True

    # ---------- 目錄開局 ---------- #
    def _validate_moves(self, moves: List[str], name: str) -> List[str]:
        moves = [m.strip() for m in moves if m and m.strip()]
        result = self.oracle.replay(moves)
        if result.failed_at_ply == 0 or not moves:
            raise InvalidMoveSequenceError(f"'{name}' 沒有任何合法走法。")
        if not result.ok:
            logger.warning(
                f"'{name}' 第 {result.failed_at_ply} 步 '{moves[result.failed_at_ply]}' 不合法，練習時將截斷於此。"
            )
        return moves

    def add_opening(self, name: str, moves: List[str], eco: Optional[str] = None,
                    category: str = "", description: Optional[str] = None,
                    popularity: int = 0) -> Opening:
        logger.info(f"嘗試新增開局: {name} ({eco or '-'})")
        moves = self._validate_moves(moves, name)
        with session_scope(self.session_factory) as session:
            opening = Opening(name=name, eco=eco, category=category or "", moves=moves,
                              description=description, popularity=popularity)
            session.add(opening)
            session.flush()
            logger.info(f"已新增開局 '{name}'，共 {len(moves)} 步。")
            return opening

    def import_openings(self, specs: Iterable[OpeningSpec]) -> int:
        """批次匯入目錄開局；同名同 ECO 的開局略過。回傳新增數量。"""
        added = 0
        with session_scope(self.session_factory) as session:
            existing = {(name, eco) for name, eco in session.execute(select(Opening.name, Opening.eco))}
            for spec in specs:
                if (spec.name, spec.eco) in existing:
                    continue
                try:
                    moves = self._validate_moves(spec.moves, spec.name)
                except InvalidMoveSequenceError as e:
                    logger.warning(f"略過開局 '{spec.name}': {e}")
                    continue
                session.add(Opening(name=spec.name, eco=spec.eco, category=spec.category,
                                    moves=moves, description=spec.description,
                                    popularity=spec.popularity))
                existing.add((spec.name, spec.eco))
                added += 1
        logger.info(f"匯入完成，新增 {added} 個開局。")
        return added

    def remove_opening(self, opening_id: int) -> bool:
        """移除開局；其變例、堆疊成員與進度紀錄一併刪除。"""
        with session_scope(self.session_factory) as session:
            opening = session.get(Opening, opening_id)
            if not opening:
                logger.warning(f"試圖移除不存在的開局: {opening_id}")
                return False
            session.delete(opening)
        logger.info(f"成功移除開局: {opening_id}")
        return True

    def add_variation(self, opening_id: int, name: str, moves: List[str],
                      branch_at_ply: int, description: Optional[str] = None) -> Variation:
        with session_scope(self.session_factory) as session:
            opening = session.get(Opening, opening_id)
            if not opening:
                raise LineNotFoundError(f"找不到開局 {opening_id}")
            if not 0 <= branch_at_ply <= len(opening.moves):
                raise ValueError(
                    f"分支點 {branch_at_ply} 必須介於 0 與主線長度 {len(opening.moves)} 之間"
                )
            full_line = list(opening.moves[:branch_at_ply]) + list(moves)
            self._validate_moves(full_line, f"{opening.name}: {name}")
            variation = Variation(opening_id=opening_id, name=name, moves=list(moves),
                                  branch_at_ply=branch_at_ply, description=description)
            session.add(variation)
            session.flush()
            logger.info(f"已為開局 '{opening.name}' 新增變例 '{name}'（分支於第 {branch_at_ply} 步）")
            return variation

    def get_opening(self, opening_id: int) -> Opening:
        """讀取開局及其所有變例。"""
        with session_scope(self.session_factory) as session:
            opening = session.scalars(
                select(Opening).options(selectinload(Opening.variations)).where(Opening.id == opening_id)
            ).first()
            if not opening:
                raise LineNotFoundError(f"找不到開局 {opening_id}")
            return opening

    def get_variation(self, variation_id: int) -> Variation:
        with session_scope(self.session_factory) as session:
            variation = session.get(Variation, variation_id)
            if not variation:
                raise LineNotFoundError(f"找不到變例 {variation_id}")
            return variation

    def list_openings(self) -> List[Opening]:
        with session_scope(self.session_factory) as session:
            return list(session.scalars(
                select(Opening).order_by(Opening.popularity.desc(), Opening.name)
            ))

    # ---------- 自訂開局 ---------- #
    def add_custom_opening(self, user_id: int, name: str, moves: List[str],
                           color: str = "white", description: Optional[str] = None) -> CustomOpening:
        logger.info(f"嘗試新增自訂開局: {name} user={user_id}")
        color = normalize_color(color)
        moves = self._validate_moves(moves, name)
        with session_scope(self.session_factory) as session:
            custom = CustomOpening(user_id=user_id, name=name, moves=moves, color=color,
                                   description=description)
            session.add(custom)
            session.flush()
            logger.info(f"已為用戶 {user_id} 新增自訂開局: {name}（{color}）")
            return custom

    def add_custom_opening_from_pgn(self, user_id: int, name: str, pgn_text: str,
                                    color: str = "white",
                                    description: Optional[str] = None) -> CustomOpening:
        return self.add_custom_opening(user_id, name, pgn_mainline_san(pgn_text), color, description)

    def get_custom_opening(self, user_id: int, custom_opening_id: int) -> CustomOpening:
        with session_scope(self.session_factory) as session:
            custom = session.get(CustomOpening, custom_opening_id)
            if not custom or custom.user_id != user_id:
                raise LineNotFoundError(f"找不到用戶 {user_id} 的自訂開局 {custom_opening_id}")
            return custom

    def remove_custom_opening(self, user_id: int, custom_opening_id: int) -> bool:
        with session_scope(self.session_factory) as session:
            custom = session.get(CustomOpening, custom_opening_id)
            if not custom or custom.user_id != user_id:
                logger.warning(f"試圖移除不存在的自訂開局: {custom_opening_id}（user={user_id}）")
                return False
            session.delete(custom)
        logger.info(f"成功移除自訂開局: {custom_opening_id}")
        return True

    # ---------- 學習堆疊 ---------- #
    def create_stack(self, user_id: int, name: str, description: Optional[str] = None) -> LearningStack:
        with session_scope(self.session_factory) as session:
            stack = LearningStack(user_id=user_id, name=name, description=description)
            session.add(stack)
            session.flush()
            logger.info(f"已為用戶 {user_id} 建立學習堆疊: {name}")
            return stack

    def add_stack_member(self, stack_id: int, line: LineRef,
                         practice_plies: Optional[List[int]] = None) -> StackMember:
        with session_scope(self.session_factory) as session:
            if not session.get(LearningStack, stack_id):
                raise LineNotFoundError(f"找不到學習堆疊 {stack_id}")
            member = StackMember(stack_id=stack_id, practice_plies=sorted(set(practice_plies or [])))
            if isinstance(line, CustomLine):
                member.custom_opening_id = line.custom_opening_id
            else:
                member.opening_id = line.opening_id
                member.variation_id = line.variation_id
                member.learner_color = line.learner_color
            session.add(member)
            session.flush()
            return member

    def stack_entries(self, user_id: int, stack_id: int) -> List[StackEntry]:
        with session_scope(self.session_factory) as session:
            stack = session.get(LearningStack, stack_id)
            if not stack or stack.user_id != user_id:
                raise LineNotFoundError(f"找不到用戶 {user_id} 的學習堆疊 {stack_id}")
            entries = []
            for member in stack.members:
                if member.custom_opening_id is not None:
                    line = CustomLine(member.custom_opening_id)
                elif member.opening_id is not None:
                    line = OpeningLine(member.opening_id, member.variation_id,
                                       normalize_color(member.learner_color))
                else:
                    logger.warning(f"堆疊 {stack_id} 的成員 {member.id} 沒有指向任何路線，略過。")
                    continue
                entries.append(StackEntry(line, list(member.practice_plies or [])))
            return entries

    # ---------- 路線解析 ---------- #
    def resolve(self, user_id: int, line: LineRef) -> ResolvedLine:
        """讀取路線所需的資料，轉成單一走法序列。"""
        if isinstance(line, CustomLine):
            return resolve_custom_line(self.get_custom_opening(user_id, line.custom_opening_id))

        with session_scope(self.session_factory) as session:
            opening = session.get(Opening, line.opening_id)
            if not opening:
                raise LineNotFoundError(f"找不到開局 {line.opening_id}")
            variation = None
            if line.variation_id is not None:
                variation = session.get(Variation, line.variation_id)
                if not variation or variation.opening_id != opening.id:
                    raise LineNotFoundError(
                        f"開局 {line.opening_id} 沒有變例 {line.variation_id}"
                    )
            return resolve_opening_line(opening, variation, line.learner_color)
