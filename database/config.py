# Database Configuration and Session Management

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
import logging

from config.app_config import DATABASE_URL

logger = logging.getLogger(__name__)


def build_engine(url: str = DATABASE_URL, **kwargs):
    """Create an engine; SQLite URLs skip the connection pool sizing."""
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False}, **kwargs)
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        echo=False,  # Set to True for SQL query logging
        **kwargs
    )


# Create engine
engine = build_engine()

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(bind=None):
    """
    Initialize database tables.
    Run this once to create all tables.
    """
    from database.models import Base
    from database import marketplace_models, affiliate_models  # noqa: F401  register tables
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables created successfully")


if __name__ == "__main__":
    # Create tables when run directly
    logging.basicConfig(level=logging.INFO)
    init_db()
