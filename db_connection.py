# db_connection.py
# This file sets up the database connection and session factory.
import os

from dotenv import find_dotenv, load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

load_dotenv(find_dotenv())

# Session factory. Left unbound until init_engine() runs so importing this
# module never needs a database (tests bind it to SQLite instead).
Session = sessionmaker(expire_on_commit=False)

engine = None


def init_engine(database_url: str | None = None):
    """Create the engine from DATABASE_URL (Supabase pooler connection string) and bind Session to it."""
    global engine
    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        return None
    # pool_pre_ping: the Supabase pooler drops idle connections
    engine = create_engine(url, pool_pre_ping=True)
    Session.configure(bind=engine)
    return engine


def bind_engine(new_engine):
    """Point Session at an existing engine."""
    global engine
    engine = new_engine
    Session.configure(bind=new_engine)


def is_configured() -> bool:
    return engine is not None


init_engine()
