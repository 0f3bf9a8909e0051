# -*- coding: utf-8 -*-
"""練習引擎的例外類別。

非法走法、沒有可練習局面、棋譜中途失效都屬於正常結果，不會以例外呈現；
這裡只定義呼叫端必須處理的失敗情況。
"""


class TrainerError(Exception):
    """所有練習引擎例外的基底類別。"""


class LineNotFoundError(TrainerError, LookupError):
    """找不到指定的開局、變例、自訂開局或學習堆疊（或不屬於該用戶）。"""


class InvalidMoveSequenceError(TrainerError, ValueError):
    """新增資料時，走法序列無法解析或完全沒有合法走法。"""


class CollaboratorUnavailable(TrainerError):
    """儲存層或規則引擎逾時、出錯。呼叫端可稍後重試。"""

    retryable = True

    def __init__(self, collaborator: str, message: str = ""):
        self.collaborator = collaborator
        super().__init__(f"{collaborator} 暫時無法使用: {message}" if message else f"{collaborator} 暫時無法使用")
