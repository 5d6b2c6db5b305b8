import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


CLOTHING_RENTAL_DB_URL = _require_env("CLOTHING_RENTAL_DB_URL")


def build_engine(db_url: str):
    if db_url.startswith("sqlite") and (":memory:" in db_url or db_url.endswith("://")):
        # One shared connection, otherwise every checkout sees an empty database.
        return create_engine(
            db_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )
    return create_engine(
        db_url,
        pool_pre_ping=True,
        future=True,
    )


engine_rental = build_engine(CLOTHING_RENTAL_DB_URL)

SessionLocalRental = sessionmaker(
    bind=engine_rental,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)
