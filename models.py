from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone


class Base(DeclarativeBase):
    pass

db = SQLAlchemy(model_class=Base)


def _utcnow():
    return datetime.now(timezone.utc)


class Student(db.Model):
    __tablename__ = 'students'

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, default='Unknown')
    classroom_id = Column(String(64), index=True)
    eco_points = Column(Integer, nullable=False, default=0)
    completed_tasks = Column(Integer, nullable=False, default=0)
    rank = Column(Integer)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    transactions = relationship('PointTransaction', back_populates='student')

    def __repr__(self):
        return f'<Student {self.id} - {self.eco_points} pts>'


class PointTransaction(db.Model):
    """One row per award; (activity_type, activity_id) makes replays idempotent."""
    __tablename__ = 'point_transactions'
    __table_args__ = (
        UniqueConstraint('activity_type', 'activity_id', name='uq_point_transactions_activity'),
    )

    id = Column(Integer, primary_key=True)
    student_id = Column(String(64), ForeignKey('students.id'), nullable=False, index=True)
    points = Column(Integer, nullable=False)
    activity_type = Column(String(32), nullable=False)  # quiz, task, learning_path, action, bonus
    activity_id = Column(String(128))
    details = Column('metadata', JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    student = relationship('Student', back_populates='transactions')

    def __repr__(self):
        return f'<PointTransaction {self.student_id} +{self.points} ({self.activity_type}:{self.activity_id})>'
