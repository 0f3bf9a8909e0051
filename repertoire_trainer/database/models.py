# repertoire_trainer/database/models.py
from sqlalchemy import (
    JSON, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)

    custom_openings = relationship("CustomOpening", back_populates="user", cascade="all, delete-orphan")
    stacks = relationship("LearningStack", back_populates="user", cascade="all, delete-orphan")
    progress = relationship("ProgressRecord", back_populates="user", cascade="all, delete-orphan")


class Opening(Base):
    """目錄中的開局（主線）。練習引擎只讀取。"""
    __tablename__ = "openings"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, index=True, nullable=False)
    eco = Column(String(3), nullable=True, index=True)
    category = Column(String, nullable=False, default="")
    moves = Column(JSON, nullable=False, default=list)  # SAN 列表
    description = Column(Text, nullable=True)
    popularity = Column(Integer, default=0)  # 只用於排序

    variations = relationship(
        "Variation", back_populates="opening", cascade="all, delete-orphan",
        order_by="Variation.id",
    )
    progress = relationship("ProgressRecord", back_populates="opening", cascade="all, delete-orphan")


class Variation(Base):
    __tablename__ = "variations"
    id = Column(Integer, primary_key=True, index=True)
    opening_id = Column(Integer, ForeignKey("openings.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    moves = Column(JSON, nullable=False, default=list)
    # 主線在此 ply 之後由變例走法取代
    branch_at_ply = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=True)

    opening = relationship("Opening", back_populates="variations")
    progress = relationship("ProgressRecord", back_populates="variation", cascade="all, delete-orphan")


class CustomOpening(Base):
    __tablename__ = "custom_openings"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    moves = Column(JSON, nullable=False, default=list)
    color = Column(String(5), nullable=False, default="white")  # 'white' | 'black'
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="custom_openings")
    progress = relationship("ProgressRecord", back_populates="custom_opening", cascade="all, delete-orphan")


class LearningStack(Base):
    __tablename__ = "learning_stacks"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    user = relationship("User", back_populates="stacks")
    members = relationship(
        "StackMember", back_populates="stack", cascade="all, delete-orphan",
        order_by="StackMember.id",
    )


class StackMember(Base):
    """堆疊成員：指向開局（可加一個變例）或自訂開局。"""
    __tablename__ = "stack_members"
    id = Column(Integer, primary_key=True, index=True)
    stack_id = Column(Integer, ForeignKey("learning_stacks.id", ondelete="CASCADE"), nullable=False, index=True)
    opening_id = Column(Integer, ForeignKey("openings.id", ondelete="CASCADE"), nullable=True)
    variation_id = Column(Integer, ForeignKey("variations.id", ondelete="CASCADE"), nullable=True)
    custom_opening_id = Column(Integer, ForeignKey("custom_openings.id", ondelete="CASCADE"), nullable=True)
    # 空列表 = 練習所有己方 ply
    practice_plies = Column(JSON, nullable=False, default=list)
    # 只對目錄開局有意義；自訂開局使用自身的 color
    learner_color = Column(String(5), nullable=False, default="white")

    stack = relationship("LearningStack", back_populates="members")
    opening = relationship("Opening")
    variation = relationship("Variation")
    custom_opening = relationship("CustomOpening")


class ProgressRecord(Base):
    __tablename__ = "progress_records"
    __table_args__ = (
        UniqueConstraint("user_id", "line_key", "ply", name="uq_progress_key"),
    )
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    line_key = Column(String, nullable=False, index=True)
    ply = Column(Integer, nullable=False)
    # 串聯刪除用的外鍵；line_key 才是比對用的鍵值
    opening_id = Column(Integer, ForeignKey("openings.id", ondelete="CASCADE"), nullable=True)
    variation_id = Column(Integer, ForeignKey("variations.id", ondelete="CASCADE"), nullable=True)
    custom_opening_id = Column(Integer, ForeignKey("custom_openings.id", ondelete="CASCADE"), nullable=True)
    position_fen = Column(String, nullable=True)
    expected_move = Column(String, nullable=True)
    correct_count = Column(Integer, nullable=False, default=0)
    incorrect_count = Column(Integer, nullable=False, default=0)
    last_practiced_at = Column(DateTime, nullable=False)

    user = relationship("User", back_populates="progress")
    opening = relationship("Opening", back_populates="progress")
    variation = relationship("Variation", back_populates="progress")
    custom_opening = relationship("CustomOpening", back_populates="progress")
