from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from gestfiscal.core.config import settings
import logging

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    """Opções do engine conforme o dialecto (SQLite não aceita pool_size)."""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}


engine = create_engine(
    settings.database_url,
    echo=settings.DEBUG and settings.ENVIRONMENT == "development",
    **_engine_options(settings.database_url)
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Gera uma sessão de base de dados por pedido."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
