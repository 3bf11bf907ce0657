from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sitelog.core.config import settings

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=not settings.is_sqlite,
    connect_args={"check_same_thread": False} if settings.is_sqlite else {}
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
