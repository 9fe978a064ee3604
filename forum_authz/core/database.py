"""Database connection and session management for the decision audit log."""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from forum_authz.core.config import SQLALCHEMY_DATABASE_URL

# Create database engine (SQLite needs special connect_args; others don’t)
if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(SQLALCHEMY_DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()


def get_db():
    """Generator function for FastAPI dependency injection.
    Creates a session, yields it, and closes it after usage.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
