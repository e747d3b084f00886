# Code Store: SQLAlchemy engine, session factory and the two tables
# backing the pairing exchange.

from datetime import datetime
from typing import Optional
from sqlalchemy import DateTime, String, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from authlink.core.config import settings

engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

class Base(DeclarativeBase):
    pass

class AuthLink(Base):
    # code -> issuance/claim state; all timestamps are naive UTC
    __tablename__ = "auth_links"

    code: Mapped[str] = mapped_column(String(32), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    claimed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    session_ref: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True)

class PairingSession(Base):
    # session material minted on a successful claim; outlives the swept auth_links row
    __tablename__ = "pairing_sessions"

    session_ref: Mapped[str] = mapped_column(String(64), primary_key=True)
    claimed_by: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

def init_db(bind=None) -> None:
    Base.metadata.create_all(bind=bind or engine)

# Dependency

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
