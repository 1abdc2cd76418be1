"""Unit tests for endpoint field validation."""

from __future__ import annotations

from gateway.validators.endpoint import validate_endpoint_fields


def fields(violations) -> list[str]:
    return [v.field for v in violations]


class TestCreateValidation:
    def test_valid_definition(self):
        assert validate_endpoint_fields({
            "name": "Orders",
            "type": "stored_procedure",
            "target": "sp_orders",
            "method": "post",
            "path": "orders_v2-eu",
            "rate_limit": 10000,
            "parameters": [{"name": "region", "type": "string"}],
        }) == []

    def test_required_fields(self):
        assert fields(validate_endpoint_fields({})) == ["name", "type", "target"]

    def test_rate_limit_bounds(self):
        base = {"name": "n", "type": "query", "target": "t"}

        assert fields(validate_endpoint_fields({**base, "rate_limit": 0})) == ["rate_limit"]
        assert fields(validate_endpoint_fields({**base, "rate_limit": 10001})) == ["rate_limit"]
        assert validate_endpoint_fields({**base, "rate_limit": 1}) == []

    def test_path_pattern(self):
        base = {"name": "n", "type": "query", "target": "t"}

        for path in ("a/b", "with space", "dots.not.allowed", "ümlaut"):
            assert fields(validate_endpoint_fields({**base, "path": path})) == ["path"]

    def test_parameter_rules(self):
        violations = validate_endpoint_fields({
            "name": "n",
            "type": "query",
            "target": "t",
            "parameters": [
                {"name": "1bad", "type": "string"},
                {"name": "ok", "type": "decimal"},
                {"name": "ok", "type": "integer"},
            ],
        })

        assert fields(violations) == [
            "parameters[0].name",
            "parameters[1].type",
            "parameters[2].name",
        ]


class TestPartialValidation:
    def test_absent_fields_are_fine(self):
        assert validate_endpoint_fields({"rate_limit": 5}, partial=True) == []

    def test_clearing_non_nullable(self):
        violations = validate_endpoint_fields(
            {"name": None, "method": None, "description": None, "path": None},
            partial=True,
        )

        assert fields(violations) == ["name", "method"]

    def test_blank_required_string(self):
        assert fields(validate_endpoint_fields({"target": " "}, partial=True)) == ["target"]
