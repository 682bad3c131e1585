from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import ContextManager, Iterator, Optional, Protocol

import mysql.connector
from mysql.connector.constants import ClientFlag


@dataclass
class DBConfig:
    host: str
    port: int
    user: str
    password: str
    database: str


class TransactionScope(Protocol):
    def transaction(self) -> ContextManager[None]:
        """Group repository calls into one all-or-nothing unit."""

        raise NotImplementedError


class DatabaseConnection:
    """Singleton-like DB connection factory.

    Note: Connections are short-lived (one per operation). Inside
    `transaction()` a single connection is bound to the current thread and
    every `db_cursor` call reuses it until the block commits or rolls back.
    """

    _instance: Optional["DatabaseConnection"] = None

    def __init__(self, config: DBConfig):
        self._config = config
        self._local = threading.local()

    @classmethod
    def get_instance(cls, config: DBConfig) -> "DatabaseConnection":
        if cls._instance is None:
            cls._instance = DatabaseConnection(config)
        return cls._instance

    def connect(self):
        return mysql.connector.connect(
            host=self._config.host,
            port=int(self._config.port),
            user=self._config.user,
            password=self._config.password,
            database=self._config.database,
            # rowcount reports matched rows, so an unchanged UPDATE still counts.
            client_flags=[ClientFlag.FOUND_ROWS],
        )

    @property
    def bound(self):
        return getattr(self._local, "conn", None)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self.bound is not None:
            # Nested scope joins the outer transaction.
            yield
            return

        conn = self.connect()
        self._local.conn = conn
        try:
            yield
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._local.conn = None
            conn.close()
