"""
ORM tables backing the result store: phase_results and user_progress
"""
from sqlalchemy import Column, DateTime, Integer, String, CheckConstraint
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class PhaseResultRow(Base):
    """
    Phase results table - one append-only row per finished session
    """
    __tablename__ = "phase_results"
    __table_args__ = (
        CheckConstraint("phase BETWEEN 1 AND 4", name="ck_phase_results_phase"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    phase = Column(Integer, nullable=False)
    correct_answers = Column(Integer, nullable=False, default=0)
    points_earned = Column(Integer, nullable=False, default=0)
    total_questions = Column(Integer)  # NULL for rows written before it existed
    completed_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<PhaseResultRow(user_id={self.user_id}, phase={self.phase}, points={self.points_earned})>"


class UserProgressRow(Base):
    """
    User progress table - cumulative totals, one row per user
    """
    __tablename__ = "user_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, unique=True)
    max_phase = Column(Integer, nullable=False, default=1)
    total_correct = Column(Integer, nullable=False, default=0)
    total_points = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<UserProgressRow(user_id={self.user_id}, max_phase={self.max_phase}, points={self.total_points})>"
