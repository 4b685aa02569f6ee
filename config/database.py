import logging
import uuid
from datetime import datetime, timezone
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, declarative_base
from config.settings import DATABASE_URL

# Configure logging
logger = logging.getLogger(__name__)

IS_SQLITE = DATABASE_URL.startswith("sqlite")

if IS_SQLITE:
    # SQLite needs check_same_thread=False for FastAPI's threadpool
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        echo=False,
        future=True
    )
    logger.warning("⚠️ Using SQLite database - set DATABASE_URL for production")
else:
    engine = create_engine(
        DATABASE_URL,
        pool_size=5,
        max_overflow=5,
        pool_timeout=30,
        pool_recycle=300,
        pool_pre_ping=True,
        connect_args={
            "connect_timeout": 10,
            "application_name": "thoth_backend",
        },
        echo=False,
        pool_reset_on_return='rollback',
        future=True
    )
    logger.info("✅ Using PostgreSQL connection pool")

# Create a session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Define a base class for the models
Base = declarative_base()


def get_db():
    """
    Database dependency with rollback on error and guaranteed close
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database session error: {e}")
        try:
            db.rollback()
        except Exception as rollback_error:
            logger.error(f"Error during rollback: {rollback_error}")
        raise
    finally:
        try:
            db.close()
        except Exception as close_error:
            logger.error(f"Error closing database session: {close_error}")


def test_db_connection():
    """Test database connection - used by the health check"""
    db = None
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1")).fetchone()
        return True
    except Exception as e:
        logger.error(f"Database connection test failed: {e}")
        return False
    finally:
        if db:
            db.close()


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, comparable with values read back from any backend"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
