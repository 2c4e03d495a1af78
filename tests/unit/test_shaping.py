"""
Unit tests for ResponseShaper
"""

from datetime import datetime, timezone

import pytest

from mcp_gateway.shaping import ResponseShaper, ShapeMode, ShapingRequest


@pytest.fixture
def resource():
    return {
        "id": "m1",
        "subject": "Quarterly report",
        "body": "word " * 100,
        "labels": ["finance", "q3"],
        "sender": {"name": "Ops", "address": "ops@example.com"},
        "receivedAt": datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc),
    }


class TestModes:
    """Mode selection and precedence"""

    def test_default_is_full(self):
        assert ShapingRequest().mode is ShapeMode.FULL

    def test_return_only_ids_wins(self):
        request = ShapingRequest(return_only_ids=True, compact=True, fields=("subject",))
        assert request.mode is ShapeMode.IDS

    def test_compact_beats_fields(self):
        assert ShapingRequest(compact=True, fields=("subject",)).mode is ShapeMode.COMPACT

    def test_empty_fields_means_full(self):
        assert ShapingRequest(fields=()).mode is ShapeMode.FULL


class TestShape:
    """Projection of a single resource"""

    def setup_method(self):
        self.shaper = ResponseShaper(text_limit=20)

    def test_full_serializes_datetimes(self, resource):
        shaped = self.shaper.shape(resource, ShapingRequest())
        assert shaped["receivedAt"] == "2025-03-01T12:00:00+00:00"
        assert shaped["labels"] == ["finance", "q3"]

    def test_ids_only(self, resource):
        assert self.shaper.shape(resource, ShapingRequest(return_only_ids=True)) == {"id": "m1"}

    def test_fields_keeps_id_and_ignores_unknown(self, resource):
        shaped = self.shaper.shape(resource, ShapingRequest(fields=("subject", "doesNotExist")))
        assert shaped == {"id": "m1", "subject": "Quarterly report"}

    def test_compact_truncates_and_drops_nested(self, resource):
        shaped = self.shaper.shape(resource, ShapingRequest(compact=True))

        assert "labels" not in shaped
        assert "sender" not in shaped
        assert shaped["subject"] == "Quarterly report"
        assert shaped["body"].endswith("...")
        assert len(shaped["body"]) <= 20 + 3
        assert shaped["truncated"] is True
        assert shaped["originalLength"] == {"body": 500}

    def test_compact_keeps_timestamps_whole(self, resource):
        shaped = self.shaper.shape(resource, ShapingRequest(compact=True))
        assert shaped["receivedAt"] == "2025-03-01T12:00:00+00:00"

    def test_compact_never_truncates_the_id(self):
        long_id = "msg-" + "a" * 40
        shaped = self.shaper.shape({"id": long_id, "title": "short"}, ShapingRequest(compact=True))
        assert shaped == {"id": long_id, "title": "short"}

    def test_compact_without_long_text_has_no_marker(self):
        shaped = self.shaper.shape({"id": "1", "title": "short"}, ShapingRequest(compact=True))
        assert shaped == {"id": "1", "title": "short"}

    def test_compact_fields_override(self, resource):
        shaper = ResponseShaper(text_limit=200, compact_fields=["subject"])
        shaped = shaper.shape(resource, ShapingRequest(compact=True))
        assert shaped == {"id": "m1", "subject": "Quarterly report"}

    def test_shape_does_not_mutate_input(self, resource):
        before = dict(resource)
        self.shaper.shape(resource, ShapingRequest(compact=True))
        assert resource == before

    def test_shape_many(self, resource):
        shaped = self.shaper.shape_many([resource, {"id": "m2"}], ShapingRequest(return_only_ids=True))
        assert shaped == [{"id": "m1"}, {"id": "m2"}]

    def test_invalid_text_limit(self):
        with pytest.raises(ValueError):
            ResponseShaper(text_limit=0)
