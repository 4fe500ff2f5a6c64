from __future__ import annotations

from toolwire.tools.validation import validate_arguments

SCHEMA = {
    "type": "object",
    "properties": {"query": {"type": "string"}, "pageLimit": {"type": "integer", "minimum": 1}},
    "required": ["query"],
}


def test_valid_arguments():
    assert validate_arguments({"query": "x", "pageLimit": 5}, SCHEMA) == []


def test_missing_schema_accepts_anything():
    assert validate_arguments({"anything": object()}, None) == []
    assert validate_arguments({"anything": 1}, {}) == []


def test_violations_are_located():
    problems = validate_arguments({"pageLimit": 0}, SCHEMA)
    assert "'query' is a required property" in problems
    assert any(p.startswith("pageLimit:") for p in problems)


def test_broken_schema_is_reported_not_raised():
    problems = validate_arguments({"query": "x"}, {"type": "no-such-type"})
    assert len(problems) == 1
    assert problems[0].startswith("Invalid input schema")
