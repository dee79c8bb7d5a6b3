from kb_concierge.agent.orchestrator import SYSTEM_PROMPT


def test_prompt_names_every_tool_and_the_followup_status() -> None:
    for name in ("search_kb", "capture_lead", "schedule_visit"):
        assert f"`{name}`" in SYSTEM_PROMPT
    assert "manual_followup" in SYSTEM_PROMPT


def test_exported_schemas_match_tool_surface(registry) -> None:
    tools = {tool.name: tool for tool in registry.as_langchain_tools()}

    search_schema = tools["search_kb"].args_schema.model_json_schema()
    assert search_schema["required"] == ["query"]
    assert set(search_schema["properties"]) == {"query", "top_k"}

    lead_schema = tools["capture_lead"].args_schema.model_json_schema()
    assert set(lead_schema["required"]) == {"full_name", "email", "phone"}

    visit_schema = tools["schedule_visit"].args_schema.model_json_schema()
    assert set(visit_schema["required"]) == {"modality", "preferred_dt_local", "contact"}
