# repertoire_trainer/core/progress_ledger.py
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ..config import LEDGER_MAX_RETRIES
from ..database.database import SessionLocal, session_scope
from ..database.models import ProgressRecord
from ..errors import CollaboratorUnavailable, LineNotFoundError
from .lines import CustomLine, LineRef

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """資料庫以不含時區的 UTC 時間儲存。"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _is_duplicate_key(error: IntegrityError) -> bool:
    """只有 (user, line, ply) 唯一鍵衝突才是併發新增，可以重試。"""
    message = str(error.orig).lower()
    return "uq_progress_key" in message or "unique" in message or "duplicate" in message


class ProgressLedger:
    """每個 (user, line, ply) 一筆答對/答錯計數。

    計數一律在資料庫內以 `count = count + 1` 原子遞增；第一次作答時兩個請求
    同時新增會撞到唯一鍵，落敗的一方回滾後重試遞增，不會遺失任何一次作答。
    """

    def __init__(self, session_factory=SessionLocal, clock=utcnow,
                 max_retries: int = LEDGER_MAX_RETRIES):
        self.session_factory = session_factory
        self.clock = clock
        self.max_retries = max_retries

    def record_attempt(self, user_id: int, line: LineRef, ply: int, was_correct: bool,
                       position_fen: Optional[str] = None,
                       expected_move: Optional[str] = None) -> None:
        for attempt in range(1, self.max_retries + 1):
            try:
                with session_scope(self.session_factory) as session:
                    created = self._upsert(session, user_id, line, ply, was_correct,
                                           position_fen, expected_move)
                if created:
                    logger.info(f"建立進度紀錄: user={user_id} line={line.key} ply={ply}")
                return
            except IntegrityError as e:
                if not _is_duplicate_key(e):
                    # 外鍵失敗：路線或用戶已不存在
                    logger.error(f"進度紀錄 user={user_id} line={line.key} ply={ply} 寫入失敗: {e.orig}")
                    raise LineNotFoundError(f"找不到路線 {line.key} 或用戶 {user_id}") from e
                logger.info(
                    f"進度紀錄 user={user_id} line={line.key} ply={ply} 併發建立衝突，第 {attempt} 次重試。"
                )
        logger.error(f"進度紀錄 user={user_id} line={line.key} ply={ply} 重試 {self.max_retries} 次仍失敗。")
        raise CollaboratorUnavailable("progress ledger", f"{line.key} ply {ply} 寫入衝突")

    def _upsert(self, session, user_id, line, ply, was_correct, position_fen, expected_move) -> bool:
        now = self.clock()
        stmt = (
            update(ProgressRecord)
            .where(
                ProgressRecord.user_id == user_id,
                ProgressRecord.line_key == line.key,
                ProgressRecord.ply == ply,
            )
            .values(
                correct_count=ProgressRecord.correct_count + (1 if was_correct else 0),
                incorrect_count=ProgressRecord.incorrect_count + (0 if was_correct else 1),
                last_practiced_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if session.execute(stmt).rowcount:
            return False

        record = ProgressRecord(
            user_id=user_id,
            line_key=line.key,
            ply=ply,
            position_fen=position_fen,
            expected_move=expected_move,
            correct_count=1 if was_correct else 0,
            incorrect_count=0 if was_correct else 1,
            last_practiced_at=now,
        )
        if isinstance(line, CustomLine):
            record.custom_opening_id = line.custom_opening_id
        else:
            record.opening_id = line.opening_id
            record.variation_id = line.variation_id
        session.add(record)
        session.flush()
        return True

    def get_record(self, user_id: int, line: LineRef, ply: int) -> Optional[ProgressRecord]:
        with session_scope(self.session_factory) as session:
            return session.scalars(
                select(ProgressRecord).where(
                    ProgressRecord.user_id == user_id,
                    ProgressRecord.line_key == line.key,
                    ProgressRecord.ply == ply,
                )
            ).first()

    def records_for_user(self, user_id: int) -> List[ProgressRecord]:
        with session_scope(self.session_factory) as session:
            return list(session.scalars(
                select(ProgressRecord)
                .where(ProgressRecord.user_id == user_id)
                .order_by(ProgressRecord.line_key, ProgressRecord.ply)
            ))
