"""
Unit tests for canonical row encoding and chunk checksums.
"""

import uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from unittest.mock import Mock

import pytest
from conftest import ORDERS_DDL, create_database, insert_rows, order_rows

from dbdiff.checksum import (
    MODULUS,
    ChecksumEngine,
    encode_row,
    encode_value,
    fold_rows,
    format_digest,
    resolve_checksum_mode,
    row_hash,
)
from dbdiff.dialects import PostgresDialect, SQLiteDialect, SQLServerDialect
from dbdiff.errors import ConfigError, ReadError, TransientReadError
from dbdiff.models import ColumnDescriptor, KeyRange, TableSchema
from dbdiff.schema import SchemaIntrospector
from dbdiff.utils.retry import NO_RETRY, RetryPolicy


class TestEncodeValue:
    """Canonical bytes per value type"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, None),
            (True, b"1"),
            (False, b"0"),
            (42, b"42"),
            (-7, b"-7"),
            ("héllo", "héllo".encode()),
            (b"\x00\x01", b"\x00\x01"),
            (memoryview(b"ab"), b"ab"),
            (Decimal("1.50"), b"1.5"),
            (Decimal("100"), b"100"),
            (Decimal("0.000"), b"0"),
            (1.25, b"1.25"),
            (date(2024, 2, 29), b"2024-02-29"),
            (datetime(2024, 1, 2, 3, 4, 5, 6), b"2024-01-02T03:04:05.000006"),
            (time(12, 30), b"12:30:00"),
            (timedelta(days=1, microseconds=5), b"86400000005"),
            (uuid.UUID(int=1), b"00000000-0000-0000-0000-000000000001"),
        ],
    )
    def test_encode(self, value, expected):
        assert encode_value(value) == expected

    def test_decimal_scale_does_not_matter(self):
        assert encode_value(Decimal("10.10")) == encode_value(Decimal("10.1000"))

    @pytest.mark.parametrize(
        "value,expected",
        [
            (Decimal("1.00000000000000000000000000001"), b"1.00000000000000000000000000001"),
            (
                Decimal("12345678901234567890123456789012345678"),
                b"12345678901234567890123456789012345678",
            ),
            (Decimal("-0.00"), b"0"),
            (Decimal("1E+3"), b"1000"),
        ],
    )
    def test_decimal_keeps_every_digit(self, value, expected):
        assert encode_value(value) == expected

    def test_wide_decimals_differing_in_last_digit(self):
        """NUMERIC(38) values beyond the default context precision stay distinct"""
        first = Decimal("12345678901234567890123456789012345678")
        second = Decimal("12345678901234567890123456789012345679")

        assert row_hash((1, Decimal("1.00000000000000000000000000001"))) != row_hash((1, Decimal("1")))
        assert fold_rows([(first,)]) != fold_rows([(second,)])


class TestEncodeRow:
    """Length-prefixed field layout"""

    def test_layout(self):
        assert encode_row([1, "ab", None]) == b"1:12:abN"

    def test_null_differs_from_empty_string(self):
        assert encode_row([None]) != encode_row([""])
        assert encode_row([""]) == b"0:"

    def test_field_boundaries_are_unambiguous(self):
        assert encode_row(["ab", "c"]) != encode_row(["a", "bc"])

    def test_null_differs_from_literal_n(self):
        assert encode_row([None]) != encode_row(["N"])


class TestFoldRows:
    """Order-independent multiset digest"""

    def test_empty(self):
        assert fold_rows([]) == (0, 0)
        assert format_digest(0) == "0000000000000000"

    def test_order_independent(self):
        rows = [(1, "a"), (2, "b"), (3, None)]

        assert fold_rows(rows) == fold_rows(list(reversed(rows)))

    def test_duplicates_do_not_cancel(self):
        count, total = fold_rows([(1, "a"), (1, "a")])

        assert count == 2
        assert total == (2 * row_hash((1, "a"))) % MODULUS
        assert total != 0

    def test_sensitive_to_single_value(self):
        assert fold_rows([(1, "a"), (2, "b")]) != fold_rows([(1, "a"), (2, "c")])

    def test_row_hash_is_64_bits(self):
        assert 0 <= row_hash((1,)) < MODULUS

    def test_digest_format(self):
        assert format_digest(255) == "00000000000000ff"
        assert format_digest(MODULUS + 1) == "0000000000000001"


class TestResolveChecksumMode:
    """Checksum mode negotiation between the two sides"""

    def test_auto_pushdown_same_dialect(self):
        assert resolve_checksum_mode("auto", PostgresDialect(), PostgresDialect()) == "server"

    def test_auto_mixed_dialects(self):
        assert resolve_checksum_mode("auto", PostgresDialect(), SQLServerDialect()) == "client"

    def test_auto_without_pushdown(self):
        assert resolve_checksum_mode("auto", SQLiteDialect(), SQLiteDialect()) == "client"

    def test_explicit_client(self):
        assert resolve_checksum_mode("client", PostgresDialect(), PostgresDialect()) == "client"

    def test_server_unusable(self):
        with pytest.raises(ConfigError, match="server checksums"):
            resolve_checksum_mode("server", PostgresDialect(), SQLiteDialect())

    def test_unknown_mode(self):
        with pytest.raises(ConfigError, match="unknown checksum mode"):
            resolve_checksum_mode("fast", SQLiteDialect(), SQLiteDialect())


class TestChecksumEngine:
    """ChecksumEngine against SQLite files"""

    @pytest.fixture
    def two_sides(self, side_dirs, open_connection):
        for directory in side_dirs:
            create_database(directory, "shop", [ORDERS_DDL])
            insert_rows(directory, "shop", "orders", order_rows(50))

        conn1 = open_connection(side_dirs[0], "shop", side=1)
        conn2 = open_connection(side_dirs[1], "shop", side=2)
        return conn1, conn2

    def test_identical_tables_match(self, two_sides):
        conn1, conn2 = two_sides
        schema = SchemaIntrospector(NO_RETRY).introspect(conn1, "orders")
        engine = ChecksumEngine(NO_RETRY, batch_size=7)

        left = engine.compute(conn1, schema, KeyRange.unbounded())
        right = engine.compute(conn2, schema, KeyRange.unbounded())

        assert left.row_count == 50
        assert left.matches(right)
        assert len(left.digest) == 16

    def test_range_restricts_rows(self, two_sides):
        conn1, _ = two_sides
        schema = SchemaIntrospector(NO_RETRY).introspect(conn1, "orders")
        engine = ChecksumEngine(NO_RETRY)

        checksum = engine.compute(conn1, schema, KeyRange((10,), (20,)))

        assert checksum.row_count == 10
        assert checksum.key_range == KeyRange((10,), (20,))

    def test_changed_value_detected(self, side_dirs, two_sides):
        conn1, conn2 = two_sides
        create_database(side_dirs[1], "shop", ["UPDATE orders SET note = 'changed' WHERE id = 17"])
        schema = SchemaIntrospector(NO_RETRY).introspect(conn1, "orders")
        engine = ChecksumEngine(NO_RETRY)

        assert not engine.compute(conn1, schema, KeyRange.unbounded()).matches(
            engine.compute(conn2, schema, KeyRange.unbounded())
        )
        assert engine.compute(conn1, schema, KeyRange((1,), (17,))).matches(
            engine.compute(conn2, schema, KeyRange((1,), (17,)))
        )

    def test_client_digest_matches_fold(self, two_sides):
        conn1, _ = two_sides
        schema = SchemaIntrospector(NO_RETRY).introspect(conn1, "orders")

        checksum = ChecksumEngine(NO_RETRY).compute(conn1, schema, KeyRange.unbounded())

        count, total = fold_rows(order_rows(50))
        assert checksum.row_count == count
        assert checksum.digest == format_digest(total)

    def test_transient_failure_retried(self):
        schema = TableSchema(name="orders", columns=(), comparison_key=None)
        connection = Mock(database="shop", side=1, dialect=SQLiteDialect())
        connection.iter_query.side_effect = [
            TransientReadError("OperationalError: database is locked"),
            iter([(1,), (2,)]),
        ]
        engine = ChecksumEngine(RetryPolicy(max_retries=1, sleep=Mock()))

        checksum = engine.compute(connection, schema, KeyRange.unbounded())

        assert checksum.row_count == 2
        assert connection.iter_query.call_count == 2

    def test_permanent_failure_raised(self):
        schema = TableSchema(name="orders", columns=(), comparison_key=None)
        connection = Mock(database="shop", side=1, dialect=SQLiteDialect())
        connection.iter_query.side_effect = ReadError("OperationalError: no such table: orders")

        with pytest.raises(ReadError):
            ChecksumEngine(RetryPolicy(max_retries=3, sleep=Mock())).compute(
                connection, schema, KeyRange.unbounded()
            )

        assert connection.iter_query.call_count == 1

    def test_server_mode(self):
        """Server mode runs one digest query and folds negative sums into range"""
        schema = TableSchema(
            name="orders",
            columns=(ColumnDescriptor("id", "int", False), ColumnDescriptor("note", "text", True)),
            comparison_key=("id",),
        )
        connection = Mock(database="shop", side=1, dialect=PostgresDialect())
        connection.query.return_value = [(3, -5)]

        checksum = ChecksumEngine(NO_RETRY, mode="server").compute(connection, schema, KeyRange((1,), (4,)))

        sql, params = connection.query.call_args.args
        assert sql.startswith("SELECT COUNT(*), COALESCE(SUM(")
        assert params == [1, 4]
        assert checksum.row_count == 3
        assert checksum.digest == format_digest(MODULUS - 5)

    def test_invalid_mode(self):
        with pytest.raises(ValueError):
            ChecksumEngine(mode="auto")
