from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from db.base import Base
from db.models import User  # noqa: F401
import logging
import os

logger = logging.getLogger(__name__)

# SQLite database setup
# Use environment variable or default to local file
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/reportly.db")

# Create data directory if it doesn't exist
if DATABASE_URL.startswith("sqlite:///") and DATABASE_URL != "sqlite:///:memory:":
    db_path = DATABASE_URL.replace("sqlite:///", "")
    db_dir = os.path.dirname(db_path)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir, exist_ok=True)

engine_options = {}
if DATABASE_URL.startswith("sqlite"):
    # Use check_same_thread only for SQLite
    engine_options["connect_args"] = {"check_same_thread": False}
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection, otherwise every checkout sees an empty database
        engine_options["poolclass"] = StaticPool

engine = create_engine(DATABASE_URL, **engine_options)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    Base.metadata.create_all(engine)
    logger.info(f"Tables ready: {', '.join(Base.metadata.tables.keys())}")
