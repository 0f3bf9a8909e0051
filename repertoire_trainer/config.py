# -*- coding: utf-8 -*-
import os
from datetime import timedelta
from pathlib import Path

# --- 基本路徑設定 ---
BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = Path(os.environ.get("REPERTOIRE_DATA_DIR", BASE_DIR / "data"))

# --- 資料庫設定 ---
DB_NAME = "repertoire.db"
DB_PATH = DATA_DIR / DB_NAME
# SQLAlchemy 連線字串，可用環境變數覆寫
SQLALCHEMY_DATABASE_URL = os.environ.get(
    "REPERTOIRE_DB_URL", f"sqlite:///{DB_PATH.as_posix()}"
)
# SQLite 鎖等待上限（秒），逾時視為儲存層不可用
DB_TIMEOUT_SECONDS = 15

# --- 練習設定 ---
DEFAULT_LEARNER_COLOR = "white"
# 同一鍵值併發寫入衝突時的內部重試次數
LEDGER_MAX_RETRIES = 5

# --- 複習間隔 (成功率下限, 間隔)，由高到低排列 ---
FIRST_EXPOSURE_INTERVAL = timedelta(days=1)
REVIEW_INTERVALS = [
    (0.9, timedelta(days=7)),
    (0.7, timedelta(days=3)),
    (0.5, timedelta(days=1)),
    (0.0, timedelta(hours=6)),
]

# --- API 設定 (Lichess 開局資料集) ---
LICHESS_OPENINGS_BASE_URL = "https://raw.githubusercontent.com/lichess-org/chess-openings/master"
LICHESS_OPENINGS_VOLUMES = ("a", "b", "c", "d", "e")
HTTP_TIMEOUT_SECONDS = 20
# 使用者代理，API 請求時建議提供
USER_AGENT = "RepertoireTrainer/1.0 (your-contact-email@example.com)"

# --- 日誌設定 ---
LOG_LEVEL = os.environ.get("REPERTOIRE_LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
