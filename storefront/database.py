"""
Optional direct Postgres connection.

Most data access goes through the Supabase REST API. When DATABASE_URL is
set, a SQLAlchemy engine is also available for aggregate queries PostgREST
cannot express and for the health check.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from storefront.config import DATABASE_URL

logger = logging.getLogger("storefront.database")

if DATABASE_URL:
    try:
        # Supabase's pooler manages connections itself
        engine = create_engine(DATABASE_URL, pool_pre_ping=True, poolclass=NullPool)
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    except Exception as e:
        logger.warning(f"Failed to create DB engine: {e}; direct SQL disabled")
        engine = None
        SessionLocal = None
else:
    logger.info("DATABASE_URL not set, using Supabase REST API only")
    engine = None
    SessionLocal = None


def get_db():
    """
    Dependency function that provides a database session.
    Yields None when DATABASE_URL is not configured.
    """
    if SessionLocal is None:
        yield None
        return
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ping(db) -> Optional[str]:
    """Run SELECT 1; returns None on success or the error text."""
    try:
        db.execute(text("SELECT 1"))
        return None
    except Exception as e:
        return str(e)


def fetch_all(db, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """Execute a read-only statement and return rows as dicts."""
    result = db.execute(text(sql), params or {})
    return [dict(row._mapping) for row in result]
