"""
Database session management
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.settings import settings
from app.logging_config import get_logger

logger = get_logger(__name__)

connection_string = settings.database_url

if connection_string.startswith("sqlite"):
    logger.info("Database connection: %s (SQLite)", connection_string)
    engine = create_engine(
        connection_string,
        echo=False,
        connect_args={"check_same_thread": False},
    )
else:
    # Log connection info (without password)
    logger.info(f"Database connection: {settings.DB_HOST}:{settings.DB_PORT}/{settings.DB_NAME} (PostgreSQL)")
    engine = create_engine(
        connection_string,
        echo=False,  # Set to True for SQL query logging
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,  # Recycle connections after 1 hour
    )

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Dependency for getting database session

    Usage in FastAPI endpoints:
        @router.get("/tasks")
        def list_tasks(db: Session = Depends(get_db)):
            return db.query(ProcurementTask).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
