"""Built-in tools: KB search, lead capture and visit scheduling."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kb_concierge.agent.registry import ToolRegistry, ToolSpec, with_fallback
from kb_concierge.agent.scheduling import parse_preferred_datetime, visit_slot
from kb_concierge.config import LeadConfig, SchedulingConfig
from kb_concierge.errors import PersistenceFailure, ToolInputError
from kb_concierge.retrieval.retriever import KnowledgeSearcher
from kb_concierge.services.append_log import AppendLog
from kb_concierge.services.calendar_client import CalendarClient
from kb_concierge.types import ToolResult

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class SearchKbInput(BaseModel):
    query: str = Field(min_length=1, description="What to look up in the knowledge base.")
    top_k: int | None = Field(default=None, description="How many passages to return.")


class CaptureLeadInput(BaseModel):
    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)

    full_name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=254, pattern=_EMAIL_PATTERN)
    phone: str = Field(min_length=1, max_length=40)
    interest: str | None = Field(default=None, description="What the person is interested in.")
    message: str | None = Field(default=None, description="Free-form note from the person.")
    source: str | None = Field(default=None, description="Where the lead came from.")


class ContactInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=254, pattern=_EMAIL_PATTERN)
    phone: str = Field(min_length=1, max_length=40)


class ScheduleVisitInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    modality: str = Field(min_length=1, description="How the visit happens, e.g. in_person or video.")
    preferred_dt_local: str = Field(
        min_length=1,
        description="Requested start, ISO-8601 or 'day/month [year] hour[am/pm]'.",
    )
    contact: ContactInput
    notes: str | None = None


def register_builtin_tools(
    registry: ToolRegistry,
    searcher: KnowledgeSearcher,
    *,
    append_log: AppendLog,
    calendar: CalendarClient | None = None,
    scheduling: SchedulingConfig | None = None,
    lead: LeadConfig | None = None,
) -> None:
    """Register the tool set exposed to the model.

    Tools:
    - `search_kb`: cosine search over the knowledge base.
    - `capture_lead`: append a contact request to the `leads` log.
    - `schedule_visit`: book a one-hour slot, or log it for manual follow-up.
    """

    scheduling = scheduling or SchedulingConfig()
    lead = lead or LeadConfig()

    def _search_kb(input_data: SearchKbInput) -> ToolResult:
        hits = searcher.search(input_data.query, searcher.clamp_top_k(input_data.top_k))
        return ToolResult.success(hits=[hit.as_payload() for hit in hits])

    def _capture_lead(input_data: CaptureLeadInput) -> ToolResult:
        extra = dict(input_data.model_extra or {})
        missing = [
            name
            for name in lead.required_fields
            if not str(getattr(input_data, name, None) or extra.get(name) or "").strip()
        ]
        if missing:
            raise ToolInputError(f"Missing required fields: {', '.join(missing)}")

        row = {
            "timestamp_utc": _utc_now(),
            "full_name": input_data.full_name,
            "email": input_data.email,
            "phone": input_data.phone,
            "interest": input_data.interest,
            "message": input_data.message,
            "source": input_data.source,
            "extra": extra or None,
        }

        def _record() -> ToolResult:
            _append(append_log, "leads", row)
            return ToolResult.success()

        return with_fallback(
            _record,
            lambda _exc: ToolResult.manual_followup(),
            operation="capture_lead",
        )

    def _schedule_visit(input_data: ScheduleVisitInput) -> ToolResult:
        requested = parse_preferred_datetime(input_data.preferred_dt_local, scheduling)
        start, end = visit_slot(requested, scheduling)
        contact = input_data.contact
        slot = {"start": start.isoformat(), "end": end.isoformat()}

        def _visit_row(status: str, event_id: str = "") -> dict[str, Any]:
            return {
                "timestamp_utc": _utc_now(),
                "status": status,
                "modality": input_data.modality,
                "start_local": slot["start"],
                "end_local": slot["end"],
                "timezone": scheduling.timezone,
                "contact_name": contact.name,
                "contact_email": contact.email,
                "contact_phone": contact.phone,
                "notes": input_data.notes,
                "event_id": event_id,
            }

        def _book() -> ToolResult:
            if calendar is None:
                raise PersistenceFailure("calendar.create_event", "no calendar configured")
            event_id = _create_event(
                calendar,
                summary=f"{scheduling.summary_prefix}: {contact.name} ({input_data.modality})",
                description=_event_description(input_data),
                start=start,
                end=end,
                timezone=scheduling.timezone,
            )
            booked = ToolResult.success(event_id=event_id, **slot)

            def _record_created() -> ToolResult:
                _append(append_log, "visits", _visit_row("created", event_id))
                return booked

            return with_fallback(
                _record_created,
                lambda _exc: booked,
                operation="schedule_visit.log_created",
            )

        def _manual_followup(_exc: PersistenceFailure) -> ToolResult:
            _append(append_log, "visits", _visit_row("manual_followup"))
            return ToolResult.manual_followup(**slot)

        return with_fallback(_book, _manual_followup, operation="schedule_visit")

    registry.register(
        ToolSpec(
            name="search_kb",
            description=(
                "Search the private knowledge base. Use it before answering any "
                "question about services, prices, policies or locations."
            ),
            args_schema=SearchKbInput,
            handler=_search_kb,
            tags=["retrieval", "rag"],
        )
    )
    registry.register(
        ToolSpec(
            name="capture_lead",
            description=(
                "Record a person's contact details so the team can follow up. "
                "Requires full_name, email and phone."
            ),
            args_schema=CaptureLeadInput,
            handler=_capture_lead,
            tags=["side_effect", "leads"],
        )
    )
    registry.register(
        ToolSpec(
            name="schedule_visit",
            description=(
                "Book a one-hour visit. Requires modality, preferred_dt_local and "
                "a contact with name, email and phone."
            ),
            args_schema=ScheduleVisitInput,
            handler=_schedule_visit,
            tags=["side_effect", "calendar"],
        )
    )


def _append(log: AppendLog, table: str, row: dict[str, Any]) -> None:
    try:
        log.append(table, row)
    except PersistenceFailure:
        raise
    except Exception as exc:
        raise PersistenceFailure(f"append:{table}", exc) from exc


def _create_event(calendar: CalendarClient, **kwargs: Any) -> str:
    try:
        return calendar.create_event(**kwargs)
    except PersistenceFailure:
        raise
    except Exception as exc:
        raise PersistenceFailure("calendar.create_event", exc) from exc


def _event_description(input_data: ScheduleVisitInput) -> str:
    contact = input_data.contact
    lines = [
        f"Modality: {input_data.modality}",
        f"Contact: {contact.name}",
        f"Email: {contact.email}",
        f"Phone: {contact.phone}",
    ]
    if input_data.notes:
        lines.append(f"Notes: {input_data.notes}")
    return "\n".join(lines)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
