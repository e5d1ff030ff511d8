from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from loan_manager.core.config import DATABASE_URL

# ---------------------
# SQLAlchemy engine / session / Base
# ---------------------
engine = create_engine(
    DATABASE_URL,
    echo=False,
    pool_pre_ping=True,  # drops dead connections automatically
    future=True,
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
