from __future__ import annotations
import os
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./crypto_championships.db")

class Base(DeclarativeBase):
    pass

def make_engine(url: str = DATABASE_URL) -> Engine:
    if url.startswith("sqlite"):
        kw: dict = {"connect_args": {"check_same_thread": False}}
        # in-memory databases only live as long as their single connection
        if url in ("sqlite://", "sqlite:///:memory:"):
            kw["poolclass"] = StaticPool
        return create_engine(url, **kw)
    return create_engine(url, pool_pre_ping=True)

def make_sessionmaker(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)

engine = make_engine()

def init_db(bind: Engine, cfg) -> None:
    """Create tables and seed first-run state. No-op on an already seeded store."""
    from .store import LedgerStore
    Base.metadata.create_all(bind=bind)
    with make_sessionmaker(bind)() as s:
        LedgerStore(s).seed(cfg)
