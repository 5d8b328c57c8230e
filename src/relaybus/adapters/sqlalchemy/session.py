"""SQLAlchemy adapter – SqlAlchemySessionFactory."""
from __future__ import annotations

from typing import Any


def _require_sqlalchemy() -> None:
    try:
        import sqlalchemy  # noqa: F401
    except ImportError as exc:
        raise ImportError("Install 'relaybus[sqlalchemy]' to use the SQLAlchemy adapter") from exc


class SqlAlchemySessionFactory:
    """Zero-argument session callable for :class:`SqlAlchemyEventStore`.

    Owns the async engine it builds from *database_url*; use
    :meth:`from_engine` to share an engine the application already has, in
    which case :meth:`dispose` leaves that engine alone.
    """

    def __init__(self, database_url: str | None = None, *, engine: Any = None, **engine_kwargs: Any) -> None:
        _require_sqlalchemy()
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # type: ignore[import-untyped]

        if engine is None:
            if not database_url:
                raise ValueError("SqlAlchemySessionFactory needs a database_url or an engine")
            engine_kwargs.setdefault("pool_pre_ping", True)
            engine = create_async_engine(database_url, **engine_kwargs)
            self._owns_engine = True
        else:
            self._owns_engine = False
        self._engine = engine
        self._sessionmaker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    @classmethod
    def from_engine(cls, engine: Any) -> SqlAlchemySessionFactory:
        return cls(engine=engine)

    @property
    def engine(self) -> Any:
        return self._engine

    def __call__(self) -> Any:
        return self._sessionmaker()

    async def dispose(self) -> None:
        if self._owns_engine:
            await self._engine.dispose()


__all__ = ["SqlAlchemySessionFactory"]
