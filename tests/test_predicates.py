import pytest

from jsondoc.storage.errors import ContractViolation, InvalidPathError
from jsondoc.storage.predicates import (
    QueryOptions,
    build_options,
    build_predicate,
    id_predicate,
    json_param,
    normalize_predicate,
)


class TestBuildPredicate:
    def test_single_path(self):
        fragment, params = build_predicate({"$.name": "Alice"})

        assert fragment == "data #> %s::text[] = %s::jsonb"
        assert params == [["name"], '"Alice"']

    def test_id_uses_lookup_column(self):
        fragment, params = build_predicate(id_predicate("u1"), lookup_column="doc_id")

        assert fragment == "doc_id = %s::jsonb"
        assert params == ['"u1"']

    def test_id_without_lookup_column(self):
        fragment, params = build_predicate(id_predicate(7))

        assert fragment == "data #> %s::text[] = %s::jsonb"
        assert params == [["id"], "7"]

    def test_pairs_keep_their_order(self):
        pairs = [("$.b", 1), ("$.a.c", True)]

        first = build_predicate(pairs)
        second = build_predicate(pairs)

        assert first == second
        assert first[0] == "data #> %s::text[] = %s::jsonb AND data #> %s::text[] = %s::jsonb"
        assert first[1] == [["b"], "1", ["a", "c"], "true"]

    def test_values_are_json_encoded(self):
        _, params = build_predicate(
            [("$.n", None), ("$.tags", ["x", "y"]), ("$.label", "é")]
        )

        assert params[1::2] == ["null", '["x", "y"]', '"é"']

    def test_custom_column(self):
        fragment, _ = build_predicate({"$.x": 1}, column="payload")

        assert fragment.startswith("payload #> ")

    def test_empty(self):
        assert build_predicate({}) == ("", [])
        assert build_predicate(None) == ("", [])

    def test_invalid_path(self):
        with pytest.raises(InvalidPathError):
            build_predicate({"name": "x"})

    def test_unserializable_value(self):
        with pytest.raises(ContractViolation):
            build_predicate({"$.x": object()})


class TestNormalizePredicate:
    def test_mapping_becomes_pairs(self):
        assert normalize_predicate({"$.a": 1, "$.b": 2}) == [("$.a", 1), ("$.b", 2)]

    def test_rejects_strings(self):
        with pytest.raises(ContractViolation):
            normalize_predicate("$.a = 1")

    def test_rejects_bad_entries(self):
        with pytest.raises(ContractViolation):
            normalize_predicate([("$.a", 1, 2)])


def test_json_param_rejects_sets():
    with pytest.raises(ContractViolation):
        json_param({1, 2})


class TestQueryOptions:
    def test_full_options(self):
        tail, params = build_options(
            QueryOptions(order_by="$.name", descending=True, limit=10, offset=5)
        )

        assert tail == "ORDER BY data #> %s::text[] DESC LIMIT %s OFFSET %s"
        assert params == [["name"], 10, 5]

    def test_ascending_only(self):
        tail, params = build_options(QueryOptions(order_by="$.profile.age"))

        assert tail == "ORDER BY data #> %s::text[] ASC"
        assert params == [["profile", "age"]]

    def test_none(self):
        assert build_options(None) == ("", [])

    def test_validation(self):
        with pytest.raises(ContractViolation):
            QueryOptions(limit=-1)
        with pytest.raises(ContractViolation):
            QueryOptions(offset=-3)
        with pytest.raises(InvalidPathError):
            QueryOptions(order_by="name")
