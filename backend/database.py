"""
SQLAlchemy models and session factory for user and generation history storage.
"""
from sqlalchemy import Column, Integer, String, JSON, DateTime, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

from config import settings

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String, default="")
    last_name = Column(String, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class GenerationHistory(Base):
    __tablename__ = "molecule_generation_history"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, unique=True, index=True, nullable=False)
    owner_user_id = Column(String, index=True, nullable=False)
    request_params = Column(JSON, nullable=False)
    generated_molecules = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


def create_session_factory(database_url: str = None) -> sessionmaker:
    """Build an engine for the given URL and return a bound session factory."""
    database_url = database_url or settings.database_url

    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # A single shared connection, otherwise each session sees an empty database
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
