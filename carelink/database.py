from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from sqlalchemy.exc import OperationalError
import time

from carelink import config

DATABASE_URL = config.SQLALCHEMY_DATABASE_URL

if DATABASE_URL.startswith("sqlite"):
    # single shared connection so in-memory databases survive across sessions
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
        pool_recycle=3600,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def _open_session(max_retries: int = 3):
    retry_count = 0
    while True:
        db = SessionLocal()
        try:
            db.connection()
            return db
        except OperationalError:
            db.close()
            retry_count += 1
            if retry_count == max_retries:
                raise
            time.sleep(2)

def get_db():
    db = _open_session()
    try:
        yield db
    finally:
        db.close()
