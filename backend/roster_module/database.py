import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings


DB_PATH = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "roster.db")
DATABASE_URL = settings.database_url or f"sqlite:///{DB_PATH}"

# Supabase hands out postgres:// URLs; SQLAlchemy only accepts the postgresql scheme.
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

engine = create_engine(DATABASE_URL, future=True, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
Base = declarative_base()


def get_db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
