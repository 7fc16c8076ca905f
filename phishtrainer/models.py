from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from phishtrainer.database import Base

class TrainingEmail(Base):
    __tablename__ = "emails"
    # Identity key: no two training emails share (sender_email, subject)
    __table_args__ = (
        UniqueConstraint("sender_email", "subject", name="uq_emails_sender_subject"),
    )

    id = Column(Integer, primary_key=True, index=True)

    subject = Column(String(200), nullable=False)
    sender_name = Column(String(100), nullable=False)
    sender_email = Column(String(255), nullable=False, index=True)
    body_markup = Column(Text, nullable=False)

    is_phish = Column(Boolean, nullable=False, index=True)
    explanation = Column(Text, nullable=False)

    # Backfilled from heuristics when the generator leaves them out
    features = Column(JSON, nullable=True)
    difficulty = Column(String(10), nullable=True, index=True)  # easy | medium | hard

    guesses = relationship("Guess", back_populates="email", cascade="all, delete-orphan")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PlayerProfile(Base):
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)

    points = Column(Integer, nullable=False, default=0)
    streak = Column(Integer, nullable=False, default=0)

    easy_correct = Column(Integer, nullable=False, default=0)
    medium_correct = Column(Integer, nullable=False, default=0)
    hard_correct = Column(Integer, nullable=False, default=0)

    # Earned badge ids, append-only
    badges = Column(JSON, nullable=False, default=list)

    guesses = relationship("Guess", back_populates="profile", cascade="all, delete-orphan")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Guess(Base):
    __tablename__ = "guesses"
    __table_args__ = (
        UniqueConstraint("player_id", "email_id", name="uq_guesses_player_email"),
    )

    id = Column(Integer, primary_key=True, index=True)
    player_id = Column(String(64), ForeignKey("profiles.id"), index=True, nullable=False)
    email_id = Column(Integer, ForeignKey("emails.id"), index=True, nullable=False)

    user_guess = Column(Boolean, nullable=False)
    is_correct = Column(Boolean, nullable=False)
    points = Column(Integer, nullable=False, default=0)

    profile = relationship("PlayerProfile", back_populates="guesses")
    email = relationship("TrainingEmail", back_populates="guesses")

    created_at = Column(DateTime, default=datetime.utcnow)
