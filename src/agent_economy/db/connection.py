from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2.extensions import connection as PgConnection

from agent_economy.config.settings import DBSettings
from agent_economy.db.schema import SCHEMA_SQL
from agent_economy.utils.errors import PersistenceError


class DBClient:
    def __init__(self, settings: DBSettings) -> None:
        self._settings = settings
        self._conn: PgConnection | None = None
        self._logger = logging.getLogger("agent_economy.db")

    def connect(self) -> None:
        if self._conn is None:
            try:
                self._conn = psycopg2.connect(self._settings.dsn)
            except psycopg2.Error as exc:
                raise PersistenceError(
                    f"cannot connect to {self._settings.host}:{self._settings.port}"
                ) from exc
            self._conn.autocommit = False

    @property
    def conn(self) -> PgConnection:
        if self._conn is None:
            self.connect()
        assert self._conn is not None
        return self._conn

    @contextmanager
    def cursor(self) -> Iterator:
        """One transaction per block: commit on exit, roll back on error."""
        cur = self.conn.cursor()
        try:
            yield cur
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        finally:
            cur.close()

    def apply_schema(self) -> None:
        with self.cursor() as cur:
            cur.execute(SCHEMA_SQL)
        self._logger.info("Schema applied on %s/%s", self._settings.host, self._settings.name)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
