"""Tests for column schema, value kinds and lazy row conversion."""

from datetime import UTC, datetime

import pytest

from core.errors.exceptions import DecodeError, UnsupportedTypeError
from logscan.kusto.schema import Row, Schema, ValueKind, convert_value


@pytest.fixture
def schema():
    return Schema.from_pairs([("Id", "long"), ("Uri", "string"), ("Finished", "datetime")])


class TestValueKind:
    @pytest.mark.parametrize(
        "declared,kind",
        [
            ("long", ValueKind.INT64),
            ("int", ValueKind.INT32),
            ("datetime", ValueKind.TIMESTAMP),
            ("string", ValueKind.TEXT),
        ],
    )
    def test_known_types(self, declared, kind):
        assert ValueKind.from_declared_type(declared) is kind

    @pytest.mark.parametrize("declared", ["dynamic", "real", "guid", "String", ""])
    def test_unknown_type_raises(self, declared):
        with pytest.raises(UnsupportedTypeError) as exc_info:
            ValueKind.from_declared_type(declared, column="Payload")

        assert exc_info.value.declared_type == declared
        assert exc_info.value.column == "Payload"
        assert f"No type mapping for type '{declared}'" in str(exc_info.value)

    def test_unsupported_type_is_decode_error(self):
        with pytest.raises(DecodeError):
            ValueKind.from_declared_type("dynamic")


class TestSchema:
    def test_field_count(self, schema):
        assert schema.field_count == 3
        assert len(schema) == 3

    @pytest.mark.parametrize("name", ["uri", "URI", "Uri", "uRi"])
    def test_ordinal_is_case_insensitive(self, schema, name):
        assert schema.ordinal(name) == 1

    def test_ordinal_not_found(self, schema):
        assert schema.ordinal("ConsoleUri") is None

    def test_first_column_wins_on_case_collision(self):
        schema = Schema.from_pairs([("uri", "string"), ("URI", "long")])

        assert schema.ordinal("Uri") == 0
        assert schema.declared_type("URI") == "string"

    def test_declared_type_by_name_and_ordinal(self, schema):
        assert schema.declared_type("finished") == "datetime"
        assert schema.declared_type(0) == "long"

    def test_name(self, schema):
        assert schema.name(2) == "Finished"
        assert schema.name("FINISHED") == "Finished"

    def test_value_kind(self, schema):
        assert schema.value_kind("Uri") is ValueKind.TEXT
        assert schema.value_kind(0) is ValueKind.INT64

    def test_value_kind_unsupported(self):
        schema = Schema.from_pairs([("Properties", "dynamic")])

        with pytest.raises(UnsupportedTypeError) as exc_info:
            schema.value_kind("Properties")

        assert exc_info.value.column == "Properties"

    def test_unknown_name_raises_key_error(self, schema):
        with pytest.raises(KeyError):
            schema.declared_type("Missing")

    def test_out_of_range_ordinal_raises_index_error(self, schema):
        with pytest.raises(IndexError):
            schema.declared_type(3)

    def test_immutable(self, schema):
        with pytest.raises(AttributeError):
            schema.columns = ()

    def test_unknown_types_allowed_until_consumed(self):
        # Declaring an unmapped type is fine, only resolving its kind fails
        schema = Schema.from_pairs([("Props", "dynamic"), ("Uri", "string")])

        assert schema.ordinal("Uri") == 1
        assert schema.value_kind("Uri") is ValueKind.TEXT


class TestConvertValue:
    def test_none_passes_through(self):
        for kind in ValueKind:
            assert convert_value(kind, None) is None

    def test_integers(self):
        assert convert_value(ValueKind.INT64, 9007199254740993) == 9007199254740993
        assert convert_value(ValueKind.INT32, "42") == 42

    def test_text(self):
        assert convert_value(ValueKind.TEXT, "http://a/log.txt") == "http://a/log.txt"

    def test_timestamp_with_ticks(self):
        value = convert_value(ValueKind.TIMESTAMP, "2024-03-01T12:30:45.1234567Z")

        assert value == datetime(2024, 3, 1, 12, 30, 45, 123456, tzinfo=UTC)

    def test_timestamp_without_zone_is_utc(self):
        value = convert_value(ValueKind.TIMESTAMP, "2024-03-01T12:30:45")

        assert value.tzinfo is UTC

    def test_bad_value_raises_decode_error(self):
        with pytest.raises(DecodeError):
            convert_value(ValueKind.INT64, "not-a-number")


class TestRow:
    def test_get_converts_only_requested_column(self, schema):
        row = Row(schema, [7, "http://a", "garbage-date"])

        assert row.get("uri") == "http://a"
        assert row.get(0) == 7
        # The bad timestamp only fails when actually read
        with pytest.raises(DecodeError):
            row.get("Finished")

    def test_raw(self, schema):
        row = Row(schema, ["7", "http://a", None])

        assert row.raw("Id") == "7"
        assert len(row) == 3
