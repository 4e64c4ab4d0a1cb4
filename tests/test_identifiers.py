"""Unit tests for db.identifiers: crew table name validation."""
import pytest

from db.identifiers import (
    crew_table_type,
    droppable_table_name,
    quote_identifier,
    sanitize_table_name,
    validate_identifier,
)
from errors import ErrorCode, TableNameError


class TestSanitizeTableName:
    @pytest.mark.parametrize("name", [
        "__acme_001_support_vector_001",
        "__acme_001_support_histories_002",
        "__globex_42_leadgen_vector_999",
    ])
    def test_accepts_well_formed_names(self, name):
        assert sanitize_table_name(name) == name

    def test_rejects_names_over_63_characters(self):
        name = "__" + "a" * 50 + "_001_support_vector_001"
        with pytest.raises(TableNameError, match="exceeds PostgreSQL limit"):
            sanitize_table_name(name)

    def test_rejects_missing_prefix(self):
        with pytest.raises(TableNameError, match="Must start with __"):
            sanitize_table_name("acme_001_support_vector_001")

    @pytest.mark.parametrize("name", [
        "__ACME_001_support_vector_001",
        "__acme-001_support_vector_001",
        '__acme_001_support_vector_001"; DROP TABLE crews; --',
    ])
    def test_rejects_bad_characters(self, name):
        with pytest.raises(TableNameError):
            sanitize_table_name(name)

    @pytest.mark.parametrize("name", [
        "__acme_001_support_vector_1",
        "__acme_001_billing_vector_001",
        "__acme_001_support_embeddings_001",
        "__acme_support_vector_001",
    ])
    def test_rejects_wrong_structure(self, name):
        with pytest.raises(TableNameError, match="doesn't match expected format"):
            sanitize_table_name(name)

    def test_error_is_a_validation_failure(self):
        with pytest.raises(TableNameError) as exc_info:
            sanitize_table_name("nope")
        assert exc_info.value.code == ErrorCode.VALIDATION_FAILED
        assert exc_info.value.status == 400


class TestValidateIdentifier:
    def test_accepts_legacy_names(self):
        assert validate_identifier("n8n_chat_histories") == "n8n_chat_histories"

    @pytest.mark.parametrize("value", [None, 42, "", "Robert'); DROP", "a.b", "x" * 64])
    def test_rejects_unsafe_values(self, value):
        with pytest.raises(TableNameError):
            validate_identifier(value)


class TestDroppableTableName:
    def test_allows_crew_tables(self):
        assert droppable_table_name("__acme_001_support_vector_001") is None
        assert droppable_table_name("legacy_histories") is None

    def test_refuses_non_crew_tables(self):
        reason = droppable_table_name("crews")
        assert reason is not None
        assert "non-crew" in reason

    @pytest.mark.parametrize("value", [None, "", 7, "__vector;drop", "x_vector_" + "y" * 60])
    def test_refuses_malformed_names(self, value):
        assert droppable_table_name(value) is not None


def test_crew_table_type():
    assert crew_table_type("__acme_001_support_vector_001") == "vector"
    assert crew_table_type("__acme_001_support_histories_001") == "histories"


def test_quote_identifier():
    assert quote_identifier("__a_1_support_vector_001") == '"__a_1_support_vector_001"'
