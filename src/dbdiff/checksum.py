"""
Order-independent chunk checksums.

Each row is serialized into a canonical byte string, hashed to 64 bits,
and the row hashes are summed modulo 2**64. Summing (rather than XOR)
keeps two identical rows from cancelling out, and makes the digest
independent of the order the database returns rows in.

Canonical field encoding (client mode):

- every field is ``<byte length>:<bytes>``; SQL NULL is the single byte ``N``
- str: UTF-8, no Unicode normalization; bytes/bytearray/memoryview: raw
- bool: ``1``/``0``; int: decimal digits
- Decimal: fixed point with trailing zeros removed (``1.50`` -> ``1.5``)
- float: ``repr()``
- date, time, datetime: ``isoformat()``; timedelta: total microseconds
- UUID: hyphenated lower-case form; anything else: ``str()``

Row hash: first 8 bytes of SHA-256 over the concatenated fields.

Server mode asks the database for ``(COUNT(*), SUM(row_hash))`` instead,
with the row hash computed by the dialect's digest SQL. The two modes
produce different digests, so both sides of a comparison must use the
same one.
"""

import hashlib
import logging
import time
from collections.abc import Iterable, Sequence
from datetime import date, datetime, time as dt_time, timedelta
from decimal import Context, Decimal
from typing import Any
from uuid import UUID

from .connection import DatabaseConnection
from .dialects import Dialect
from .errors import ConfigError
from .models import ChunkChecksum, KeyRange, TableSchema
from .partition import range_predicate
from .utils.metrics import CHECKSUM_SECONDS, READ_RETRIES, ROWS_CHECKSUMMED
from .utils.retry import RetryPolicy
from .utils.tracing import trace_operation

logger = logging.getLogger(__name__)

MODULUS = 2**64
NULL_FIELD = b"N"

CLIENT = "client"
SERVER = "server"
AUTO = "auto"


def _decimal_text(value: Decimal) -> str:
    """Fixed-point text without trailing zeros, at the value's full precision."""
    if not value.is_finite():
        return str(value)
    if value == 0:
        return "0"
    # normalize() rounds to the context precision (28 digits by default);
    # a context as wide as the value keeps every digit
    digits = len(value.as_tuple().digits)
    return format(value.normalize(Context(prec=max(digits, 1))), "f")


def encode_value(value: Any) -> bytes | None:
    """Canonical bytes of one field value; None for SQL NULL."""
    if value is None:
        return None
    if isinstance(value, bool):
        return b"1" if value else b"0"
    if isinstance(value, int):
        return str(value).encode()
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, Decimal):
        return _decimal_text(value).encode()
    if isinstance(value, float):
        return repr(value).encode()
    if isinstance(value, (datetime, date, dt_time)):
        return value.isoformat().encode()
    if isinstance(value, timedelta):
        micros = (value.days * 86400 + value.seconds) * 10**6 + value.microseconds
        return str(micros).encode()
    if isinstance(value, UUID):
        return str(value).encode()
    return str(value).encode("utf-8")


def encode_row(row: Sequence[Any]) -> bytes:
    parts = []
    for value in row:
        data = encode_value(value)
        if data is None:
            parts.append(NULL_FIELD)
        else:
            parts.append(f"{len(data)}:".encode() + data)
    return b"".join(parts)


def row_hash(row: Sequence[Any]) -> int:
    return int.from_bytes(hashlib.sha256(encode_row(row)).digest()[:8], "big")


def fold_rows(rows: Iterable[Sequence[Any]]) -> tuple[int, int]:
    """(row count, sum of row hashes mod 2**64) over any iterable of rows."""
    count = 0
    total = 0
    for row in rows:
        total = (total + row_hash(row)) % MODULUS
        count += 1
    return count, total


def format_digest(total: int) -> str:
    return f"{total % MODULUS:016x}"


def resolve_checksum_mode(mode: str, dialect1: Dialect, dialect2: Dialect) -> str:
    """
    Decide the checksum mode for a pair of connections

    Raises:
        ConfigError: If server mode is requested where it cannot be used
    """
    pushdown = dialect1.name == dialect2.name and dialect1.supports_pushdown

    if mode == AUTO:
        return SERVER if pushdown else CLIENT
    if mode == SERVER and not pushdown:
        raise ConfigError(
            f"server checksums need the same pushdown-capable dialect on both sides, "
            f"got {dialect1.name} and {dialect2.name}"
        )
    if mode not in (CLIENT, SERVER):
        raise ConfigError(f"unknown checksum mode: {mode}")
    return mode


class ChecksumEngine:
    """
    Compute ChunkChecksums for key ranges of a table.

    Example:
        >>> engine = ChecksumEngine(mode="client")
        >>> checksum = engine.compute(connection, schema, KeyRange.unbounded())
        >>> checksum.matches(other_side_checksum)
    """

    def __init__(
        self,
        retry_policy: RetryPolicy | None = None,
        mode: str = CLIENT,
        batch_size: int = 1000,
    ):
        if mode not in (CLIENT, SERVER):
            raise ValueError(f"mode must be '{CLIENT}' or '{SERVER}', got {mode}")
        self.retry_policy = retry_policy or RetryPolicy()
        self.mode = mode
        self.batch_size = batch_size

    def _on_retry(self, attempt: int, exc: BaseException, delay: float) -> None:
        READ_RETRIES.labels(operation="checksum").inc()

    def _where(self, dialect: Dialect, schema: TableSchema, key_range: KeyRange) -> tuple[str, list]:
        if not schema.comparison_key or key_range.is_unbounded:
            return "1 = 1", []
        return range_predicate(dialect, schema.comparison_key, key_range)

    def _client_fold(self, connection: DatabaseConnection, sql: str, params: list) -> tuple[int, int]:
        return fold_rows(connection.iter_query(sql, params, batch_size=self.batch_size))

    def _server_fold(self, connection: DatabaseConnection, sql: str, params: list) -> tuple[int, int]:
        rows = connection.query(sql, params)
        count, total = rows[0]
        return int(count), int(total or 0) % MODULUS

    def compute(
        self, connection: DatabaseConnection, schema: TableSchema, key_range: KeyRange
    ) -> ChunkChecksum:
        """
        Checksum exactly the rows of ``schema`` inside ``key_range``

        Raises:
            ReadError: If the query keeps failing after retries
        """
        dialect = connection.dialect
        where, params = self._where(dialect, schema, key_range)

        if self.mode == SERVER:
            sql = dialect.digest_query(schema.name, schema.column_names, where)
            fold = self._server_fold
        else:
            columns = ", ".join(dialect.quote_identifier(c) for c in schema.column_names)
            sql = f"SELECT {columns} FROM {dialect.quote_table(schema.name)} WHERE {where}"
            fold = self._client_fold

        started = time.perf_counter()
        with trace_operation(
            "chunk_checksum",
            database=connection.database,
            table=schema.name,
            side=connection.side,
            mode=self.mode,
        ) as span:
            count, total = self.retry_policy.call(
                fold, connection, sql, params, on_retry=self._on_retry
            )
            span.set_attribute("rows", count)

        CHECKSUM_SECONDS.labels(mode=self.mode).observe(time.perf_counter() - started)
        ROWS_CHECKSUMMED.inc(count)

        return ChunkChecksum(key_range=key_range, row_count=count, digest=format_digest(total))
