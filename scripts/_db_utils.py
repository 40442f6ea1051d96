from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.orm import Session, sessionmaker

from app.noticeboard.db import build_engine


def default_database_url() -> str:
    import os

    return (os.environ.get("DATABASE_URL") or "sqlite:///noticeboard.db").strip()


@contextmanager
def script_session(db_url: str):
    """Commit-or-rollback session on a throwaway engine (same engine options as the app)."""
    engine = build_engine(db_url)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
