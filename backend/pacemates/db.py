from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from pacemates.core.config import settings

# SQLAlchemy Base class for models to inherit
Base = declarative_base()

# Route columns: JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
RouteJSON = JSON().with_variant(JSONB(), "postgresql")


def make_engine(url: str):
    if url.startswith("sqlite"):
        # presence and clock workers use the store from their own threads
        if ":memory:" in url:
            # one shared connection so every thread sees the same in-memory db
            return create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,   # helps avoid stale connections
    )


# Create SQLAlchemy engine (connects to Postgres)
engine = make_engine(settings.database_url)

# Factory that creates DB sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
