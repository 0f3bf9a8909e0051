# -*- coding: utf-8 -*-
import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker

from ..config import DATA_DIR, DB_TIMEOUT_SECONDS, SQLALCHEMY_DATABASE_URL
from ..errors import CollaboratorUnavailable

logger = logging.getLogger(__name__)


def make_engine(url: str = SQLALCHEMY_DATABASE_URL) -> Engine:
    """建立資料庫引擎；SQLite 需開啟外鍵以支援串聯刪除。"""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": DB_TIMEOUT_SECONDS}
    new_engine = create_engine(url, connect_args=connect_args)
    if new_engine.dialect.name == "sqlite":
        event.listen(new_engine, "connect", _enable_sqlite_foreign_keys)
    return new_engine


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_session_factory(bind: Engine) -> sessionmaker:
    # 會話關閉後仍需讀取回傳的紀錄，提交時不讓屬性過期
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


# 建立資料庫引擎
engine = make_engine()

# 建立 SessionLocal 類別，每個實例都是一個資料庫會話
SessionLocal = make_session_factory(engine)

# 建立 Base 類別，我們的 ORM 模型將繼承它
Base = declarative_base()


def init_db(bind: Engine = None):
    """初始化資料庫，建立所有表格。"""
    from . import models  # 確保模型被註冊
    bind = bind or engine
    if bind is engine and bind.dialect.name == "sqlite":
        DATA_DIR.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=bind)


@contextmanager
def session_scope(session_factory=SessionLocal):
    """短生命週期的會話：成功則提交，失敗則回滾。

    連線失敗、鎖等待逾時等儲存層錯誤一律轉為 CollaboratorUnavailable。
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except (OperationalError, InterfaceError) as e:
        session.rollback()
        logger.error(f"資料庫操作失敗: {e}")
        raise CollaboratorUnavailable("storage", str(e.orig or e)) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
