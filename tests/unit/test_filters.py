"""Unit tests for filter, sort and projection evaluation."""

import pytest

from llamaio.core.filters import (
    matches,
    project_record,
    sort_records,
    validate_predicate,
    validate_projection,
    validate_sort,
)


@pytest.fixture
def tasks():
    """Sample task documents."""
    return [
        {"_id": "a", "name": "Laundry", "completed": False, "priority": 2, "tags": ["home"]},
        {"_id": "b", "name": "Taxes", "completed": True, "priority": 5, "tags": ["money", "home"]},
        {"_id": "c", "name": "groceries", "completed": False, "priority": 1, "tags": []},
    ]


@pytest.mark.unit
class TestValidatePredicate:
    """Tests for validate_predicate function."""

    def test_accepts_equality_and_operators(self):
        predicate = {"completed": False, "priority": {"$gte": 2, "$lt": 5}, "$or": [{"name": "a"}, {"name": "b"}]}

        assert validate_predicate(predicate) == predicate

    def test_rejects_non_object(self):
        with pytest.raises(ValueError, match="must be an object"):
            validate_predicate(["completed"])

    def test_rejects_unknown_operator(self):
        with pytest.raises(ValueError, match="Unsupported operator"):
            validate_predicate({"priority": {"$near": 1}})

    def test_rejects_in_without_array(self):
        with pytest.raises(ValueError, match="requires an array"):
            validate_predicate({"_id": {"$in": "abc"}})

    def test_rejects_empty_logical_clause(self):
        with pytest.raises(ValueError, match="non-empty array"):
            validate_predicate({"$or": []})

    def test_rejects_invalid_regex(self):
        with pytest.raises(ValueError, match=r"Invalid \$regex"):
            validate_predicate({"name": {"$regex": "("}})

    @pytest.mark.parametrize("pattern", ["^(a+)+$", "(a*)*b", "(a|aa)+", "((ab)*c)+", "(?:x+y){2,}"])
    def test_rejects_repeated_repeating_group(self, pattern):
        with pytest.raises(ValueError, match="repeats a group"):
            validate_predicate({"name": {"$regex": pattern}})

    @pytest.mark.parametrize("pattern", ["^g", "a+b*", "(ab)+", "(a+)?", r"\(a+\)+", "[(a+)]+", "^(Ada|Grace) "])
    def test_accepts_regex_without_nested_repetition(self, pattern):
        assert validate_predicate({"name": {"$regex": pattern}})

    def test_rejects_overlong_regex(self):
        with pytest.raises(ValueError, match="exceeds 100 characters"):
            validate_predicate({"name": {"$regex": "a" * 101}})

    def test_rejects_mixed_operator_and_field(self):
        with pytest.raises(ValueError, match="Cannot mix"):
            validate_predicate({"meta": {"$eq": 1, "plain": 2}})


@pytest.mark.unit
class TestMatches:
    """Tests for matches function."""

    def test_empty_predicate_matches_everything(self, tasks):
        assert all(matches(task, {}) for task in tasks)

    def test_equality(self, tasks):
        assert [t["_id"] for t in tasks if matches(t, {"completed": False})] == ["a", "c"]

    def test_boolean_does_not_equal_integer(self):
        assert not matches({"completed": 0}, {"completed": False})

    def test_array_contains(self, tasks):
        assert [t["_id"] for t in tasks if matches(t, {"tags": "money"})] == ["b"]

    def test_comparison_operators(self, tasks):
        assert [t["_id"] for t in tasks if matches(t, {"priority": {"$gt": 1, "$lte": 5}})] == ["a", "b"]

    def test_comparison_across_types_never_matches(self, tasks):
        assert not any(matches(t, {"priority": {"$gt": "1"}}) for t in tasks)

    def test_in_and_nin(self, tasks):
        assert [t["_id"] for t in tasks if matches(t, {"_id": {"$in": ["a", "c"]}})] == ["a", "c"]
        assert [t["_id"] for t in tasks if matches(t, {"_id": {"$nin": ["a", "c"]}})] == ["b"]

    def test_exists(self):
        assert matches({"name": "x"}, {"name": {"$exists": True}})
        assert matches({"name": "x"}, {"description": {"$exists": False}})

    def test_regex_with_options(self, tasks):
        assert [t["_id"] for t in tasks if matches(t, {"name": {"$regex": "^g", "$options": "i"}})] == ["c"]

    def test_logical_operators(self, tasks):
        assert [t["_id"] for t in tasks if matches(t, {"$or": [{"_id": "a"}, {"priority": 5}]})] == ["a", "b"]
        assert [t["_id"] for t in tasks if matches(t, {"$nor": [{"_id": "a"}, {"priority": 5}]})] == ["c"]
        assert [t["_id"] for t in tasks if matches(t, {"$and": [{"completed": False}, {"tags": "home"}]})] == ["a"]


@pytest.mark.unit
class TestSort:
    """Tests for validate_sort and sort_records functions."""

    def test_validate_sort_directions(self):
        assert validate_sort({"a": 1, "b": -1, "c": "asc", "d": "DESC"}) == [("a", 1), ("b", -1), ("c", 1), ("d", -1)]

    def test_validate_sort_rejects_bad_direction(self):
        with pytest.raises(ValueError, match="Invalid sort direction"):
            validate_sort({"a": 2})
        with pytest.raises(ValueError, match="Invalid sort direction"):
            validate_sort({"a": True})

    def test_sort_descending(self, tasks):
        ordered = sort_records(tasks, [("priority", -1)])

        assert [t["_id"] for t in ordered] == ["b", "a", "c"]

    def test_multi_key_sort_is_stable(self):
        records = [
            {"_id": "1", "group": "x", "rank": 2},
            {"_id": "2", "group": "y", "rank": 1},
            {"_id": "3", "group": "x", "rank": 1},
        ]

        ordered = sort_records(records, [("group", 1), ("rank", 1)])

        assert [r["_id"] for r in ordered] == ["3", "1", "2"]

    def test_missing_values_sort_first(self):
        records = [{"_id": "1", "n": 3}, {"_id": "2"}, {"_id": "3", "n": 1}]

        assert [r["_id"] for r in sort_records(records, [("n", 1)])] == ["2", "3", "1"]


@pytest.mark.unit
class TestProjection:
    """Tests for validate_projection and project_record functions."""

    def test_inclusion_keeps_id_by_default(self, tasks):
        assert project_record(tasks[0], {"name": True}) == {"_id": "a", "name": "Laundry"}

    def test_inclusion_can_drop_id(self, tasks):
        assert project_record(tasks[0], {"name": True, "_id": False}) == {"name": "Laundry"}

    def test_exclusion(self, tasks):
        projected = project_record(tasks[0], {"tags": False, "priority": False})

        assert projected == {"_id": "a", "name": "Laundry", "completed": False}

    def test_validate_projection_rejects_mixed_modes(self):
        with pytest.raises(ValueError, match="cannot mix"):
            validate_projection({"name": 1, "tags": 0})

    def test_validate_projection_allows_id_exclusion_with_inclusion(self):
        assert validate_projection({"name": 1, "_id": 0}) == {"name": True, "_id": False}

    def test_validate_projection_rejects_bad_flag(self):
        with pytest.raises(ValueError, match="Invalid select flag"):
            validate_projection({"name": "yes"})
