from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from tsukumart.errors import ConcurrentUpdate
from tsukumart.utils.logger import logger

Base = declarative_base()


def _connect_args(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    # PostgreSQL / Supabase connection settings
    return {
        "connect_timeout": 10,
        "keepalives": 1,
        "keepalives_idle": 30,
        "keepalives_interval": 10,
        "keepalives_count": 5,
    }


class Store:
    """Database handle shared by every service.

    Created once at process start and passed to the services' constructors.
    ``session()`` is the unit of work: everything done inside one ``with``
    block commits together or not at all.
    """

    def __init__(self, database_url: str, engine: Optional[Engine] = None):
        if not database_url and engine is None:
            raise RuntimeError("DATABASE_URL is not set")
        self.database_url = database_url
        if engine is None:
            kwargs = {}
            if not database_url.startswith("sqlite"):
                kwargs.update(pool_pre_ping=True, pool_size=5, max_overflow=10, pool_recycle=3600, pool_timeout=30)
            engine = create_engine(
                database_url,
                connect_args=_connect_args(database_url),
                echo=False,
                **kwargs,
            )
        self.engine = engine
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
        )

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except StaleDataError as e:
            db.rollback()
            logger.warning(f"Optimistic lock conflict: {e}")
            raise ConcurrentUpdate()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def create_all(self) -> None:
        from tsukumart.models_sqlalchemy import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
