import pytest
from conftest import KB_DOCUMENTS, FailingAppendLog, FakeCalendar

from kb_concierge.agent.registry import ToolRegistry
from kb_concierge.agent.tools import register_builtin_tools
from kb_concierge.config import LeadConfig
from kb_concierge.services.append_log import InMemoryAppendLog
from kb_concierge.types import SourceDocument

LEAD = {"full_name": "Ana Ruiz", "email": "ana@example.com", "phone": "+52 55 1234 5678"}
CONTACT = {"name": "Ana Ruiz", "email": "ana@example.com", "phone": "+52 55 1234 5678"}


def _registry(searcher, *, append_log, calendar=None, lead=None, scheduling=None) -> ToolRegistry:
    registry = ToolRegistry()
    register_builtin_tools(
        registry,
        searcher,
        append_log=append_log,
        calendar=calendar,
        scheduling=scheduling,
        lead=lead,
    )
    return registry


class TestCaptureLead:
    def test_valid_lead_appends_one_row(self, registry, append_log):
        result = registry.execute("capture_lead", {**LEAD, "interest": "membership"})

        assert result.as_dict() == {"ok": True}
        rows = append_log.rows("leads")
        assert len(rows) == 1
        assert rows[0]["full_name"] == "Ana Ruiz"
        assert rows[0]["interest"] == "membership"

    @pytest.mark.parametrize("missing", ["full_name", "email", "phone"])
    def test_missing_required_field_is_rejected_without_side_effect(self, registry, append_log, missing):
        payload = {key: value for key, value in LEAD.items() if key != missing}

        result = registry.execute("capture_lead", payload)

        assert result.ok is False
        assert result.payload["status"] == 400
        assert result.payload["code"] == "invalid_arguments"
        assert append_log.rows("leads") == []

    def test_blank_field_counts_as_missing(self, registry, append_log):
        result = registry.execute("capture_lead", {**LEAD, "phone": "   "})

        assert result.payload["status"] == 400
        assert append_log.rows("leads") == []

    def test_configured_extra_fields_are_required(self, searcher):
        log = InMemoryAppendLog()
        registry = _registry(searcher, append_log=log, lead=LeadConfig(required_fields=["city"]))

        rejected = registry.execute("capture_lead", LEAD)
        accepted = registry.execute("capture_lead", {**LEAD, "city": "Monterrey"})

        assert rejected.payload == {
            "code": "invalid_arguments",
            "status": 400,
            "detail": "Missing required fields: city",
        }
        assert accepted.ok is True
        assert log.rows("leads")[0]["extra"] == {"city": "Monterrey"}

    def test_persistence_failure_degrades_to_manual_followup(self, searcher):
        registry = _registry(searcher, append_log=FailingAppendLog())

        result = registry.execute("capture_lead", LEAD)

        assert result.as_dict() == {"ok": False, "status": "manual_followup"}


class TestScheduleVisit:
    def test_booked_visit_logs_created(self, registry, append_log, calendar):
        result = registry.execute(
            "schedule_visit",
            {"modality": "in_person", "preferred_dt_local": "2026-11-03T10:00:00", "contact": CONTACT},
        )

        assert result.ok is True
        assert result.payload["event_id"] == "evt-123"
        assert result.payload["start"] == "2026-11-03T10:00:00-06:00"
        assert result.payload["end"] == "2026-11-03T11:00:00-06:00"
        rows = append_log.rows("visits")
        assert [row["status"] for row in rows] == ["created"]
        assert rows[0]["event_id"] == "evt-123"
        assert calendar.events[0]["timezone"] == "America/Mexico_City"
        assert "Ana Ruiz" in calendar.events[0]["summary"]

    def test_unreachable_calendar_logs_manual_followup_once(self, searcher):
        log = InMemoryAppendLog()
        registry = _registry(searcher, append_log=log, calendar=FakeCalendar(fail=True))

        result = registry.execute(
            "schedule_visit",
            {"modality": "video", "preferred_dt_local": "2026-11-03T10:00:00", "contact": CONTACT},
        )

        assert result.ok is False
        assert result.payload["status"] == "manual_followup"
        rows = log.rows("visits")
        assert len(rows) == 1
        assert rows[0]["status"] == "manual_followup"
        assert rows[0]["event_id"] == ""

    def test_no_calendar_configured_logs_manual_followup(self, searcher):
        log = InMemoryAppendLog()
        registry = _registry(searcher, append_log=log, calendar=None)

        result = registry.execute(
            "schedule_visit",
            {"modality": "video", "preferred_dt_local": "3/11/2026 4pm", "contact": CONTACT},
        )

        assert result.payload["status"] == "manual_followup"
        assert result.payload["start"] == "2026-11-03T16:00:00-06:00"
        assert [row["status"] for row in log.rows("visits")] == ["manual_followup"]

    def test_unparseable_datetime_is_bad_request_without_side_effects(self, registry, append_log, calendar):
        result = registry.execute(
            "schedule_visit",
            {"modality": "video", "preferred_dt_local": "some day soon", "contact": CONTACT},
        )

        assert result.payload["code"] == "invalid_datetime"
        assert result.payload["status"] == 400
        assert append_log.rows("visits") == []
        assert calendar.events == []

    def test_incomplete_contact_is_rejected(self, registry, append_log):
        result = registry.execute(
            "schedule_visit",
            {
                "modality": "video",
                "preferred_dt_local": "2026-11-03T10:00:00",
                "contact": {"name": "Ana", "email": "ana@example.com"},
            },
        )

        assert result.payload["code"] == "invalid_arguments"
        assert append_log.rows("visits") == []

    def test_booking_survives_log_failure(self, searcher, calendar):
        registry = _registry(searcher, append_log=FailingAppendLog(), calendar=calendar)

        result = registry.execute(
            "schedule_visit",
            {"modality": "video", "preferred_dt_local": "2026-11-03T10:00:00", "contact": CONTACT},
        )

        assert result.ok is True
        assert result.payload["event_id"] == "evt-123"


class TestSearchKb:
    def test_returns_hits_in_tool_surface_shape(self, registry, builder):
        builder.build(KB_DOCUMENTS)

        result = registry.execute("search_kb", {"query": "Where is the studio located?", "top_k": 2})

        assert result.ok is True
        hits = result.payload["hits"]
        assert len(hits) == 2
        assert set(hits[0]) == {"title", "canonical_url", "updated_at", "snippet", "score"}

    def test_top_k_is_clamped(self, registry, builder, index_config):
        documents = [
            SourceDocument(title=f"Note {n}", body=f"Parking note number {n} for visitors.")
            for n in range(index_config.max_top_k + 4)
        ]
        builder.build(documents)

        result = registry.execute("search_kb", {"query": "parking", "top_k": 100})

        assert len(result.payload["hits"]) == index_config.max_top_k

    def test_empty_index_yields_no_hits(self, registry):
        result = registry.execute("search_kb", {"query": "anything"})

        assert result.as_dict() == {"ok": True, "hits": []}
