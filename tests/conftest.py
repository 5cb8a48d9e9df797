"""
Pytest configuration and fixtures for dbdiff tests.

Most tests run the real engine against SQLite database files: each side
of a comparison is a directory holding ``<database>.db`` files.
"""

import sqlite3
from collections.abc import Callable, Iterable
from pathlib import Path

import pytest

from dbdiff.config import DatabaseURL, DiffConfig
from dbdiff.connection import DatabaseConnection
from dbdiff.utils.retry import NO_RETRY


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "e2e: end-to-end comparison through real SQLite files")
    config.addinivalue_line("markers", "slow: mark test as slow running")


def create_database(directory: Path, name: str, statements: Iterable[str]) -> Path:
    """Create ``directory/<name>.db`` and run the given DDL/DML statements."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.db"
    conn = sqlite3.connect(path)
    try:
        for statement in statements:
            conn.execute(statement)
        conn.commit()
    finally:
        conn.close()
    return path


def insert_rows(directory: Path, name: str, table: str, rows: list[tuple]) -> None:
    """Bulk insert rows into an existing table."""
    conn = sqlite3.connect(directory / f"{name}.db")
    try:
        placeholders = ", ".join("?" * len(rows[0]))
        conn.executemany(f'INSERT INTO "{table}" VALUES ({placeholders})', rows)
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def side_dirs(tmp_path: Path) -> tuple[Path, Path]:
    """Two empty server directories, side 1 and side 2."""
    first, second = tmp_path / "side1", tmp_path / "side2"
    first.mkdir()
    second.mkdir()
    return first, second


@pytest.fixture
def urls(side_dirs: tuple[Path, Path]) -> tuple[DatabaseURL, DatabaseURL]:
    """SQLite URLs for both sides."""
    return (
        DatabaseURL.parse(f"sqlite://{side_dirs[0]}"),
        DatabaseURL.parse(f"sqlite://{side_dirs[1]}"),
    )


@pytest.fixture
def make_both(side_dirs: tuple[Path, Path]) -> Callable[..., None]:
    """Create the same database, with the same statements, on both sides."""

    def _make(name: str, statements: Iterable[str]) -> None:
        statements = list(statements)
        create_database(side_dirs[0], name, statements)
        create_database(side_dirs[1], name, statements)

    return _make


@pytest.fixture
def fast_config() -> DiffConfig:
    """Small chunks and no retry delays."""
    return DiffConfig(chunk_size=10, concurrency=2, retry=NO_RETRY)


@pytest.fixture
def open_connection() -> Callable[..., DatabaseConnection]:
    """Open SQLite connections and close them after the test."""
    opened: list[DatabaseConnection] = []

    def _open(directory: Path, database: str | None, side: int = 1) -> DatabaseConnection:
        conn = DatabaseConnection.open(
            DatabaseURL.parse(f"sqlite://{directory}"), database, pool_size=4, side=side
        )
        opened.append(conn)
        return conn

    yield _open

    for conn in opened:
        conn.close()


ORDERS_DDL = (
    'CREATE TABLE orders ('
    ' id INTEGER PRIMARY KEY,'
    ' customer TEXT NOT NULL,'
    ' amount NUMERIC,'
    ' note TEXT'
    ')'
)


def order_rows(count: int, start: int = 1) -> list[tuple]:
    return [(i, f"customer-{i % 7}", i * 10, None if i % 3 else f"note {i}") for i in range(start, start + count)]
