# donation_carbon/db.py
# ---------------------------------------------------------
# This file is responsible for:
# - Connecting to the database
# - Creating database sessions
# - Providing a base class for all ORM models
# ---------------------------------------------------------

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from donation_carbon.config import DATABASE_URL

# ---------------------------------------------------------
# SQLAlchemy Engine
# ---------------------------------------------------------
# Postgres in every real deployment. SQLite URLs still work
# for local experiments; they need check_same_thread=False
# because FastAPI hands sessions across threads.
# ---------------------------------------------------------

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,  # Checks connections before using them (avoids stale connections)
    connect_args=connect_args,
)

# ---------------------------------------------------------
# Session factory
# ---------------------------------------------------------
# One Session per request / per donation computation.
# autoflush=False + autocommit=False: writes only happen on
# an explicit commit (the metrics cache upsert).
# ---------------------------------------------------------

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------
# Dependency for FastAPI routes
# ---------------------------------------------------------

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
