# repertoire_trainer/core/practice_session.py
import logging
from typing import Optional, Union

from PyQt5.QtCore import QObject, pyqtSignal

from ..errors import TrainerError
from .lines import LineRef
from .move_judge import SubmittedMove
from .practice_service import PracticePosition, PracticeService

logger = logging.getLogger(__name__)


class PracticeSession(QObject):
    """把 PracticeService 包成 Qt 訊號，供棋盤介面綁定。

    一個 session 對應一個練習來源（單一路線或學習堆疊）。每次 next_position()
    抽一題；submit() 判定目前這一題並記錄進度，答錯時題目保留，可再試一次。
    """

    # ---------- Qt Signals ---------- #
    position_ready = pyqtSignal(object)          # PracticePosition
    nothing_to_practice = pyqtSignal(str)        # 路線名稱或堆疊說明
    attempt_judged = pyqtSignal(object)          # AttemptResult
    error_occurred = pyqtSignal(str)             # 可重試的錯誤訊息

    def __init__(self, service: PracticeService, user_id: int, mode: str,
                 reference: Union[LineRef, int], parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self.service = service
        self.user_id = user_id
        self.mode = mode
        self.reference = reference
        self.current: Optional[PracticePosition] = None
        self.attempts = 0
        self.correct = 0

    def next_position(self) -> Optional[PracticePosition]:
        try:
            self.current = self.service.get_practice_position(self.user_id, self.mode, self.reference)
        except TrainerError as e:
            logger.error(f"取得練習局面失敗: {e}")
            self.current = None
            self.error_occurred.emit(str(e))
            return None

        if self.current is None:
            self.nothing_to_practice.emit(str(getattr(self.reference, "key", self.reference)))
        else:
            self.position_ready.emit(self.current)
        return self.current

    def submit(self, move: SubmittedMove):
        if self.current is None:
            logger.warning("目前沒有題目，忽略走法。")
            return None
        position = self.current
        try:
            result = self.service.submit_attempt(
                self.user_id, position.line, position.ply, position.position,
                move, position.expected_move,
            )
        except TrainerError as e:
            logger.error(f"提交作答失敗: {e}")
            self.error_occurred.emit(str(e))
            return None

        if result.accepted:
            self.attempts += 1
            self.correct += 1 if result.correct else 0
        self.attempt_judged.emit(result)
        return result

    def hint(self) -> Optional[str]:
        return self.current.expected_move if self.current else None
