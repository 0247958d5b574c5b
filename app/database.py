"""
Database connection and session.

Schema source of truth: app.models. On startup, Base.metadata.create_all(bind=engine)
creates all tables from the current models. For a new (empty) database no migration
scripts need to be run; scripts/migrate_*.py are only for databases created before
a table was added to the models.

Services never touch SessionLocal directly: routes hand them a session from get_db,
so tests can swap the database with app.dependency_overrides.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from app.config import get_settings

settings = get_settings()

_connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    connect_args=_connect_args,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
