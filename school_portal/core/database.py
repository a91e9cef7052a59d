import logging
from sqlmodel import SQLModel, create_engine, Session
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse
from .config import settings

# Import models to ensure they are registered with SQLModel
from school_portal.models import (  # noqa: F401
    User, Course, StudentCourse, Assignment, AssignmentQuestion,
    Submission, AssignmentAnswer, Grade, ChatRoom, ChatMessage, AssignmentFile
)

logger = logging.getLogger(__name__)


def clean_database_url(database_url: str) -> str:
    """Clean the database URL to remove unsupported parameters and use correct driver"""
    if not database_url.startswith("postgresql"):
        return database_url

    # Convert to psycopg3 format if needed
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+psycopg://", 1)

    parsed = urlparse(database_url)
    # psycopg rejects the pgbouncer flag Supabase pooler URLs carry
    query_params = {
        key: values for key, values in parse_qs(parsed.query).items()
        if key != "pgbouncer"
    }
    return urlunparse(parsed._replace(query=urlencode(query_params, doseq=True)))


def build_engine(database_url: str, **kwargs):
    """Create an engine with driver-specific connect arguments"""
    url = clean_database_url(database_url)
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=settings.debug,
            connect_args={"check_same_thread": False},
            **kwargs
        )

    return create_engine(
        url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_recycle=3600,  # Recycle connections every hour
        pool_size=20,
        max_overflow=30,
        pool_timeout=30,
        connect_args={
            "options": "-c timezone=UTC",  # Force UTC timezone
            "connect_timeout": 10,
        },
        **kwargs
    )


engine = build_engine(settings.database_url)


def create_db_and_tables():
    """Create database tables using direct connection for compatibility"""
    # Use DIRECT_URL for table creation if available, otherwise fallback to DATABASE_URL
    table_creation_url = settings.direct_url or settings.database_url
    table_engine = build_engine(table_creation_url)

    try:
        SQLModel.metadata.create_all(table_engine)
        logger.info("Database tables created/verified successfully")
    finally:
        table_engine.dispose()


def get_session():
    """Get database session with connection pooling"""
    with Session(engine) as session:
        yield session
