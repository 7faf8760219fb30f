from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from app.config.settings import AppConfig

DATABASE_URL = AppConfig.DATABASE_URL

# SQLite needs cross-thread access for FastAPI's threadpool; Postgres on Render keeps sslmode
if AppConfig.is_sqlite():
    connect_args = {"check_same_thread": False}
elif DATABASE_URL.startswith("postgresql") and "sslmode" not in DATABASE_URL:
    connect_args = {"sslmode": "require"}
else:
    connect_args = {}

engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()
