"""
Tests unitarios para las entidades del dominio (registros y watermark).
"""
from __future__ import annotations

from datetime import date

import pytest

from jdy_sync.domain.entities import (
    DecisionKind,
    KeyCondition,
    RawRecord,
    ReconciliationDecision,
    SyncSummary,
    TransformedRecord,
    Watermark,
    describe_key,
)


class TestRawRecord:
    def test_from_row_splits_identifier(self) -> None:
        record = RawRecord.from_row({"id": 7, "job_num": " J-1 ", "qty": None})

        assert record.id == 7
        assert "id" not in record.values
        assert record.text("job_num") == "J-1"

    def test_from_row_without_identifier(self) -> None:
        with pytest.raises(ValueError):
            RawRecord.from_row({"job_num": "J-1"})

    def test_lookup_distinguishes_missing_from_null(self) -> None:
        record = RawRecord(id=1, values={"qty": None})

        assert record.lookup("qty") == (None, True)
        assert record.lookup("nope") == (None, False)
        assert record.lookup("id") == (1, True)
        assert record.text("qty") == ""
        assert record.text("nope") == ""

    def test_values_are_read_only_copy(self) -> None:
        source = {"job_num": "J-1"}
        record = RawRecord(id=1, values=source)
        source["job_num"] = "J-2"

        assert record.text("job_num") == "J-1"
        with pytest.raises(TypeError):
            record.values["job_num"] = "J-3"  # type: ignore[index]

    def test_mark_delayed_returns_tagged_copy(self) -> None:
        record = RawRecord(id=1, values={})
        delayed = record.mark_delayed()

        assert delayed.delayed_update is True
        assert record.delayed_update is False


class TestTransformedRecord:
    def test_without_removes_only_given_fields(self) -> None:
        record = TransformedRecord(source_id=1, fields={"a": {"value": "1"}, "b": {"value": ""}})

        stripped = record.without(["a", "zzz"])

        assert stripped.payload() == {"b": {"value": ""}}
        assert record.payload() == {"a": {"value": "1"}, "b": {"value": ""}}

    def test_with_field_and_value_of(self) -> None:
        record = TransformedRecord(source_id=1, fields={}).with_field("seq", "A")

        assert record.value_of("seq") == "A"
        assert record.value_of("missing") is None


class TestDecisionsAndSummary:
    def test_update_requires_external_id(self) -> None:
        with pytest.raises(ValueError):
            ReconciliationDecision.update("")

    def test_decision_kinds(self) -> None:
        assert ReconciliationDecision.create().is_create
        update = ReconciliationDecision.update("abc")
        assert update.kind is DecisionKind.UPDATE
        assert not update.is_create

    def test_describe_key(self) -> None:
        key = (KeyCondition("w_job", "J-1"), KeyCondition("w_item", "I-9"))

        assert describe_key(key) == "w_job=J-1, w_item=I-9"
        assert describe_key(None) == "<sin clave>"

    def test_summary_log_line_contains_counts(self) -> None:
        summary = SyncSummary(entity="orders", total=5, created=3, failed=2)

        line = summary.log_line()

        assert "[orders]" in line
        assert "total=5" in line
        assert "creados=3" in line
        assert "fallidos=2" in line


class TestWatermark:
    def test_for_day_resets_counter_on_new_day(self) -> None:
        wm = Watermark(entity="orders", last_id=10, sync_date=date(2025, 6, 1), sequence_count=12)

        today = wm.for_day(date(2025, 6, 2))

        assert today.sequence_count == 0
        assert today.sync_date == date(2025, 6, 2)
        assert today.last_id == 10

    def test_for_day_keeps_counter_same_day(self) -> None:
        wm = Watermark(entity="orders", sync_date=date(2025, 6, 2), sequence_count=4)

        assert wm.for_day(date(2025, 6, 2)) is wm

    def test_advanced_to_never_decreases(self) -> None:
        wm = Watermark(entity="orders", last_id=100)

        assert wm.advanced_to(105, 2, date(2025, 6, 2)).last_id == 105
        assert wm.advanced_to(90, 2, date(2025, 6, 2)).last_id == 100

    def test_advanced_to_from_never_synced(self) -> None:
        wm = Watermark(entity="items")

        advanced = wm.advanced_to(3, 0, date(2025, 6, 2))

        assert advanced.last_id == 3
        assert advanced.sync_date == date(2025, 6, 2)
