from datetime import datetime
import uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, DateTime, Integer, Float, Text, Boolean, JSON

class Base(DeclarativeBase):
    pass

class SubjectProfile(Base):
    __tablename__ = "subject_profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="SME")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Denormalized aggregate, rewritten on every recompute.
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    reviews: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class Rating(Base):
    # (subject_id, rater_id) is a logical key only; duplicates are resolved at read time.
    __tablename__ = "ratings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, index=True, unique=True)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    rater_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    rater_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    score: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, default=datetime.utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, default=datetime.utcnow)

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())

class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="system")
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    # "metadata" is taken by the declarative base.
    meta: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=lambda: {})
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
