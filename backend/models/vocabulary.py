from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, String, DateTime, Text, Integer, Float, Date, Index

from core.database import Base, GUID


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VocabularyWord(Base):
    """Curriculum words, authored externally and seeded from YAML."""
    __tablename__ = "vocabulary_words"

    id = Column(String(100), primary_key=True)  # e.g., "marhaba", "shukran"
    text = Column(String(255), nullable=False)  # target language
    translation = Column(String(255), nullable=False)
    sentence_text = Column(Text)
    sentence_translation = Column(Text)
    audio_url = Column(String(500))
    sentence_audio_url = Column(String(500))
    topic_id = Column(String(100), index=True)
    position = Column(Integer, default=0)  # order within topic
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class UserVocabularyWord(Base):
    """Words a learner saved to their personal list."""
    __tablename__ = "user_vocabulary"

    id = Column(GUID, primary_key=True, default=uuid4)
    user_id = Column(GUID, nullable=False, index=True)
    text = Column(String(255), nullable=False)
    translation = Column(String(255), nullable=False)
    sentence_text = Column(Text)
    sentence_translation = Column(Text)
    audio_url = Column(String(500))
    sentence_audio_url = Column(String(500))
    source = Column(String(50), default="transcription")
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class ReviewStateRecord(Base):
    """Per learner × item review state, for either scheduling model."""
    __tablename__ = "review_states"

    user_id = Column(GUID, primary_key=True)
    item_key = Column(String(150), primary_key=True)  # "curriculum:<id>" / "personal:<uuid>"
    model = Column(String(20), nullable=False)  # interval / stage
    # interval model
    ease_factor = Column(Float, default=2.5)
    interval_days = Column(Integer, default=0)
    repetitions = Column(Integer, default=0)
    # stage model
    stage = Column(String(20))
    last_result = Column(String(20))
    last_reviewed_at = Column(DateTime(timezone=True))
    next_review_at = Column(DateTime(timezone=True))
    review_count = Column(Integer, default=0)
    correct_count = Column(Integer, default=0)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_review_states_user_next", "user_id", "next_review_at"),
    )


class ReviewStreak(Base):
    """Consecutive-day practice streak per learner."""
    __tablename__ = "review_streaks"

    user_id = Column(GUID, primary_key=True)
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_review_date = Column(Date)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
