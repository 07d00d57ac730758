from __future__ import annotations

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase


PSYCOPG_SCHEME = "postgresql+psycopg://"
PLAIN_SCHEMES = ("postgresql://", "postgres://")


class Base(DeclarativeBase):
    pass


def normalize_dsn(dsn: str) -> str:
    # Bare postgres URLs would select psycopg2; the project ships psycopg 3.
    for scheme in PLAIN_SCHEMES:
        if dsn.startswith(scheme):
            return PSYCOPG_SCHEME + dsn[len(scheme):]
    return dsn


@lru_cache(maxsize=4)
def get_engine(dsn: str):
    return create_engine(normalize_dsn(dsn), future=True, pool_pre_ping=True)
