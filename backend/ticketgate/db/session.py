from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
import importlib.util
from ticketgate.core.config import settings


def normalize_database_url(url: str) -> str:
    """Point bare Postgres URLs at the psycopg (v3) driver when psycopg2 is absent.

    SQLAlchemy picks psycopg2 for 'postgresql://' (and legacy 'postgres://') URLs;
    only psycopg v3 is a dependency.
    """
    psycopg2_present = importlib.util.find_spec("psycopg2") is not None
    if psycopg2_present or not url.startswith(("postgres://", "postgresql://")) or "+psycopg" in url:
        return url
    # Normalize legacy prefix 'postgres://' -> 'postgresql://'
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url.replace("postgresql://", "postgresql+psycopg://", 1)


# DATABASE_URL must be set. Postgres in deployment; SQLite is accepted for local runs and tests.
if not settings.database_url:
    raise RuntimeError("DATABASE_URL environment variable must be set")
SQLALCHEMY_DATABASE_URL = normalize_database_url(settings.database_url)

connect_args = {}
if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    # Handlers run in a threadpool; the sweeper opens its own sessions.
    connect_args = {"check_same_thread": False}

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
