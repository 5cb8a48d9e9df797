"""
SQL dialects for the supported backends.

A dialect knows how to quote identifiers and bind parameters, where each
backend keeps its catalog, table, column and index metadata, and how to
express the few non-portable constructs the engine needs (modulo,
pagination, cardinality estimates, server-side digests).

Every statement produced here is read-only.
"""

import re
from collections import OrderedDict
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, NamedTuple

if TYPE_CHECKING:
    from .connection import DatabaseConnection


# Strict ASCII-only pattern for identifiers supplied by users (table filters)
VALID_IDENTIFIER_PATTERN = re.compile(
    r'^[a-zA-Z_][a-zA-Z0-9_$]*(\.[a-zA-Z_][a-zA-Z0-9_$]*)?$'
)


class RawColumn(NamedTuple):
    """Column metadata as read from the catalog, before normalization."""

    name: str
    data_type: str
    nullable: bool
    default: str | None


class RawIndex(NamedTuple):
    """Index metadata as read from the catalog, before normalization."""

    name: str
    columns: tuple[str, ...]
    unique: bool
    primary: bool


def validate_identifier(identifier: str) -> str:
    """
    Check a user-supplied identifier against the strict identifier pattern

    Raises:
        ValueError: If identifier format is invalid
    """
    if not VALID_IDENTIFIER_PATTERN.match(identifier):
        raise ValueError(f"Invalid identifier format: {identifier}")
    return identifier


class Dialect:
    """Base class; subclasses fill in the backend-specific SQL."""

    name = "generic"
    placeholder = "?"
    quote_open = '"'
    quote_close = '"'
    supports_pushdown = False

    def quote_identifier(self, identifier: str) -> str:
        """
        Quote one identifier, escaping embedded quote characters

        Raises:
            ValueError: If identifier is empty or contains NUL
        """
        if not identifier or "\x00" in identifier:
            raise ValueError(f"Invalid identifier: {identifier!r}")
        escaped = identifier.replace(self.quote_close, self.quote_close * 2)
        return f"{self.quote_open}{escaped}{self.quote_close}"

    def quote_table(self, table: str) -> str:
        """Quote a table name, honouring a 'schema.table' qualification."""
        parts = table.split(".", 1)
        return ".".join(self.quote_identifier(part) for part in parts)

    def params(self, count: int) -> str:
        return ", ".join([self.placeholder] * count)

    def modulo(self, expression: str, divisor: int) -> str:
        return f"(({expression}) % {int(divisor)})"

    def paginate(self, select_sql: str, order_by: str, offset: int, limit: int) -> str:
        return f"{select_sql} ORDER BY {order_by} LIMIT {int(limit)} OFFSET {int(offset)}"

    def list_databases(self, connection: "DatabaseConnection") -> list[str]:
        raise NotImplementedError

    def list_tables(self, connection: "DatabaseConnection") -> list[str]:
        raise NotImplementedError

    def read_columns(self, connection: "DatabaseConnection", table: str) -> list[RawColumn]:
        raise NotImplementedError

    def read_indexes(self, connection: "DatabaseConnection", table: str) -> list[RawIndex]:
        raise NotImplementedError

    def estimate_rows(self, connection: "DatabaseConnection", table: str) -> int | None:
        """Row count from planner statistics, or None when unknown."""
        return None

    def digest_query(self, table: str, columns: Sequence[str], where: str) -> str:
        """
        Statement returning (row_count, sum_of_row_hashes) for the rows
        matching ``where``. Only dialects with supports_pushdown implement it.
        """
        raise NotImplementedError(f"{self.name} does not support server-side digests")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


def _group_index_rows(rows: Sequence[Sequence[Any]]) -> list[RawIndex]:
    """Fold (name, unique, primary, column) rows, ordered by key position, into RawIndex."""
    grouped: OrderedDict[str, list] = OrderedDict()
    for name, unique, primary, column in rows:
        entry = grouped.setdefault(name, [bool(unique), bool(primary), []])
        entry[2].append(column)
    return [
        RawIndex(name, tuple(columns), unique, primary)
        for name, (unique, primary, columns) in grouped.items()
    ]


class PostgresDialect(Dialect):
    """PostgreSQL through psycopg2."""

    name = "postgresql"
    placeholder = "%s"
    supports_pushdown = True
    maintenance_database = "postgres"

    LIST_DATABASES = """
        SELECT datname
        FROM pg_database
        WHERE NOT datistemplate AND datallowconn AND datname <> 'postgres'
        ORDER BY datname
    """

    LIST_TABLES = """
        SELECT table_name
        FROM information_schema.tables
        WHERE table_schema = current_schema() AND table_type = 'BASE TABLE'
        ORDER BY table_name
    """

    COLUMNS = """
        SELECT a.attname,
               format_type(a.atttypid, a.atttypmod),
               NOT a.attnotnull,
               pg_get_expr(d.adbin, d.adrelid)
        FROM pg_attribute a
        LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
        WHERE a.attrelid = to_regclass(%s) AND a.attnum > 0 AND NOT a.attisdropped
        ORDER BY a.attnum
    """

    INDEXES = """
        SELECT i.relname, ix.indisunique, ix.indisprimary, a.attname
        FROM pg_index ix
        JOIN pg_class i ON i.oid = ix.indexrelid
        JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS k(attnum, ord) ON true
        JOIN pg_attribute a ON a.attrelid = ix.indrelid AND a.attnum = k.attnum
        WHERE ix.indrelid = to_regclass(%s) AND k.ord <= ix.indnkeyatts
        ORDER BY i.relname, k.ord
    """

    ESTIMATE = "SELECT reltuples::bigint FROM pg_class WHERE oid = to_regclass(%s)"

    def modulo(self, expression: str, divisor: int) -> str:
        return f"MOD({expression}, {int(divisor)})"

    def list_databases(self, connection):
        return [row[0] for row in connection.query(self.LIST_DATABASES)]

    def list_tables(self, connection):
        return [row[0] for row in connection.query(self.LIST_TABLES)]

    def read_columns(self, connection, table):
        rows = connection.query(self.COLUMNS, (self.quote_table(table),))
        return [RawColumn(name, data_type, bool(nullable), default)
                for name, data_type, nullable, default in rows]

    def read_indexes(self, connection, table):
        return _group_index_rows(connection.query(self.INDEXES, (self.quote_table(table),)))

    def estimate_rows(self, connection, table):
        rows = connection.query(self.ESTIMATE, (self.quote_table(table),))
        if not rows or rows[0][0] is None or rows[0][0] < 0:
            return None
        return int(rows[0][0])

    def digest_query(self, table, columns, where):
        # Same field layout as the client-side encoding: <octets>:<text>, N for NULL
        fields = [
            f"COALESCE(octet_length({col}::text)::text || ':' || {col}::text, 'N')"
            for col in (self.quote_identifier(c) for c in columns)
        ]
        row_text = " || ".join(fields) if fields else "''"
        return (
            f"SELECT COUNT(*), "
            f"COALESCE(SUM(('x' || substr(md5({row_text}), 1, 16))::bit(64)::bigint), 0) "
            f"FROM {self.quote_table(table)} WHERE {where}"
        )


class SQLServerDialect(Dialect):
    """Microsoft SQL Server through pyodbc."""

    name = "sqlserver"
    placeholder = "?"
    quote_open = "["
    quote_close = "]"
    maintenance_database = "master"

    LIST_DATABASES = """
        SELECT name
        FROM sys.databases
        WHERE name NOT IN ('master', 'tempdb', 'model', 'msdb')
        ORDER BY name
    """

    LIST_TABLES = """
        SELECT TABLE_NAME
        FROM INFORMATION_SCHEMA.TABLES
        WHERE TABLE_TYPE = 'BASE TABLE' AND TABLE_SCHEMA = SCHEMA_NAME()
        ORDER BY TABLE_NAME
    """

    COLUMNS = """
        SELECT c.name, TYPE_NAME(c.user_type_id), c.max_length, c.precision, c.scale,
               c.is_nullable, OBJECT_DEFINITION(c.default_object_id)
        FROM sys.columns c
        WHERE c.object_id = OBJECT_ID(?)
        ORDER BY c.column_id
    """

    INDEXES = """
        SELECT i.name, i.is_unique, i.is_primary_key, c.name
        FROM sys.indexes i
        JOIN sys.index_columns ic ON ic.object_id = i.object_id AND ic.index_id = i.index_id
        JOIN sys.columns c ON c.object_id = ic.object_id AND c.column_id = ic.column_id
        WHERE i.object_id = OBJECT_ID(?) AND i.type > 0 AND ic.is_included_column = 0
        ORDER BY i.name, ic.key_ordinal
    """

    ESTIMATE = """
        SELECT SUM(p.rows)
        FROM sys.partitions p
        WHERE p.object_id = OBJECT_ID(?) AND p.index_id IN (0, 1)
    """

    def paginate(self, select_sql, order_by, offset, limit):
        return (
            f"{select_sql} ORDER BY {order_by} "
            f"OFFSET {int(offset)} ROWS FETCH NEXT {int(limit)} ROWS ONLY"
        )

    def list_databases(self, connection):
        return [row[0] for row in connection.query(self.LIST_DATABASES)]

    def list_tables(self, connection):
        return [row[0] for row in connection.query(self.LIST_TABLES)]

    def read_columns(self, connection, table):
        rows = connection.query(self.COLUMNS, (self.quote_table(table),))
        return [
            RawColumn(name, _sqlserver_type(type_name, max_length, precision, scale),
                      bool(nullable), default)
            for name, type_name, max_length, precision, scale, nullable, default in rows
        ]

    def read_indexes(self, connection, table):
        return _group_index_rows(connection.query(self.INDEXES, (self.quote_table(table),)))

    def estimate_rows(self, connection, table):
        rows = connection.query(self.ESTIMATE, (self.quote_table(table),))
        if not rows or rows[0][0] is None:
            return None
        return int(rows[0][0])


def _sqlserver_type(type_name: str, max_length: int, precision: int, scale: int) -> str:
    """Rebuild a declared type from sys.columns fields."""
    type_name = type_name.lower()
    if type_name in ("varchar", "char", "varbinary", "binary", "nvarchar", "nchar"):
        if max_length == -1:
            return f"{type_name}(max)"
        length = max_length // 2 if type_name in ("nvarchar", "nchar") else max_length
        return f"{type_name}({length})"
    if type_name in ("decimal", "numeric"):
        return f"{type_name}({precision},{scale})"
    if type_name in ("datetime2", "datetimeoffset", "time"):
        return f"{type_name}({scale})"
    return type_name


class MySQLDialect(Dialect):
    """
    MySQL, MariaDB and TiDB through PyMySQL.

    PyMySQL interpolates parameters with the ``%`` operator, so statements
    that take parameters must not contain a literal percent sign.
    """

    name = "mysql"
    placeholder = "%s"
    quote_open = "`"
    quote_close = "`"
    maintenance_database = None

    SYSTEM_DATABASES = (
        "mysql",
        "information_schema",
        "performance_schema",
        "sys",
        "metrics_schema",
    )

    LIST_DATABASES = """
        SELECT schema_name
        FROM information_schema.schemata
        WHERE LOWER(schema_name) NOT IN ({system})
        ORDER BY schema_name
    """

    LIST_TABLES = """
        SELECT table_name
        FROM information_schema.tables
        WHERE table_schema = DATABASE() AND table_type = 'BASE TABLE'
        ORDER BY table_name
    """

    # The schema placeholder takes '' for an unqualified table
    COLUMNS = """
        SELECT column_name, column_type, is_nullable = 'YES', column_default
        FROM information_schema.columns
        WHERE table_schema = COALESCE(NULLIF(%s, ''), DATABASE()) AND table_name = %s
        ORDER BY ordinal_position
    """

    INDEXES = """
        SELECT index_name, non_unique = 0, index_name = 'PRIMARY', column_name
        FROM information_schema.statistics
        WHERE table_schema = COALESCE(NULLIF(%s, ''), DATABASE()) AND table_name = %s
        ORDER BY index_name, seq_in_index
    """

    ESTIMATE = """
        SELECT table_rows
        FROM information_schema.tables
        WHERE table_schema = COALESCE(NULLIF(%s, ''), DATABASE()) AND table_name = %s
    """

    @staticmethod
    def _qualified(table: str) -> tuple[str, str]:
        schema, _, name = table.rpartition(".")
        return schema, name

    def modulo(self, expression: str, divisor: int) -> str:
        return f"MOD({expression}, {int(divisor)})"

    def list_databases(self, connection):
        system = ", ".join(f"'{name}'" for name in self.SYSTEM_DATABASES)
        return [row[0] for row in connection.query(self.LIST_DATABASES.format(system=system))]

    def list_tables(self, connection):
        return [row[0] for row in connection.query(self.LIST_TABLES)]

    def read_columns(self, connection, table):
        return [
            RawColumn(name, data_type, bool(nullable), default)
            for name, data_type, nullable, default
            in connection.query(self.COLUMNS, self._qualified(table))
        ]

    def read_indexes(self, connection, table):
        indexes = _group_index_rows(connection.query(self.INDEXES, self._qualified(table)))
        # Functional indexes report NULL column names and cannot serve as keys
        return [index for index in indexes if None not in index.columns]

    def estimate_rows(self, connection, table):
        rows = connection.query(self.ESTIMATE, self._qualified(table))
        if not rows or rows[0][0] is None:
            return None
        return int(rows[0][0])


class SQLiteDialect(Dialect):
    """
    SQLite through the standard library driver.

    A "server" is a directory and each database is a ``<name>.db`` file in it.
    """

    name = "sqlite"
    placeholder = "?"
    maintenance_database = None
    file_suffix = ".db"

    LIST_TABLES = """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table' AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\'
        ORDER BY name
    """

    COLUMNS = 'SELECT name, type, "notnull", dflt_value, pk FROM pragma_table_info(?) ORDER BY cid'
    INDEX_LIST = 'SELECT name, "unique", origin FROM pragma_index_list(?) ORDER BY name'
    INDEX_INFO = "SELECT name FROM pragma_index_info(?) ORDER BY seqno"

    def list_databases(self, connection):
        directory = Path(connection.url.path)
        return sorted(path.stem for path in directory.glob(f"*{self.file_suffix}") if path.is_file())

    def list_tables(self, connection):
        return [row[0] for row in connection.query(self.LIST_TABLES)]

    def read_columns(self, connection, table):
        return [
            RawColumn(name, data_type or "", not notnull and not pk, default)
            for name, data_type, notnull, default, pk in connection.query(self.COLUMNS, (table,))
        ]

    def read_indexes(self, connection, table):
        indexes = []

        pk_columns = sorted(
            (pk, name) for name, _type, _notnull, _default, pk in connection.query(self.COLUMNS, (table,))
            if pk
        )
        if pk_columns:
            indexes.append(RawIndex("PRIMARY", tuple(name for _, name in pk_columns), True, True))

        for name, unique, origin in connection.query(self.INDEX_LIST, (table,)):
            if origin == "pk":
                continue
            columns = tuple(row[0] for row in connection.query(self.INDEX_INFO, (name,)))
            # Expression indexes report NULL column names and cannot serve as keys
            if any(column is None for column in columns):
                continue
            indexes.append(RawIndex(name, columns, bool(unique), False))

        return indexes


DIALECTS: dict[str, Dialect] = {
    "postgresql": PostgresDialect(),
    "sqlserver": SQLServerDialect(),
    "mysql": MySQLDialect(),
    "sqlite": SQLiteDialect(),
}


def get_dialect(name: str) -> Dialect:
    """
    Look up a dialect by name

    Raises:
        KeyError: If the dialect is unknown
    """
    return DIALECTS[name]
