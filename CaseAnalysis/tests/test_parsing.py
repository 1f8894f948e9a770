"""
Tests for classifying agent answers into tagged outputs.
"""

import json

from CaseAnalysis.parsing import (
    ParseFailedOutput,
    RawTextOutput,
    StructuredOutput,
    parse_agent_output,
)


class TestParseAgentOutput:
    def test_plain_prose_is_raw_text(self):
        result = parse_agent_output("The materials contain no evidence of note.")
        assert isinstance(result, RawTextOutput)
        assert result.kind == "raw_text"
        assert result.text.startswith("The materials")

    def test_empty_answer_is_raw_text(self):
        result = parse_agent_output(None)
        assert isinstance(result, RawTextOutput)
        assert result.text == ""

    def test_valid_json_is_structured(self):
        text = json.dumps({
            "summary": "One violation.",
            "findings": [{"severity": "HIGH", "title": "Late notice", "evidence_refs": "E-3"}],
        })
        result = parse_agent_output(text)
        assert isinstance(result, StructuredOutput)
        finding = result.payload.findings[0]
        assert finding.severity == "high"
        assert finding.evidence_refs == ["E-3"]
        assert finding.finding_type == "general"

    def test_code_fenced_json_is_structured(self):
        text = "```json\n" + json.dumps({"summary": "ok"}) + "\n```"
        result = parse_agent_output(text)
        assert isinstance(result, StructuredOutput)
        assert result.payload.summary == "ok"

    def test_json_surrounded_by_prose(self):
        text = "Here you go: " + json.dumps({"summary": "ok"}) + " Hope this helps."
        assert isinstance(parse_agent_output(text), StructuredOutput)

    def test_broken_json_is_parse_failed(self):
        text = '{"summary": "ok", "findings": [}'
        result = parse_agent_output(text)
        assert isinstance(result, ParseFailedOutput)
        assert result.error.startswith("Invalid JSON")
        assert result.raw_text == text

    def test_prose_with_braces_is_raw_text(self):
        text = "The court {sic} ruled that the search was lawful."
        result = parse_agent_output(text)
        assert isinstance(result, RawTextOutput)
        assert result.text == text

    def test_broken_fenced_json_is_parse_failed(self):
        text = "```json\n{\"summary\": \"ok\",}\n```"
        assert isinstance(parse_agent_output(text), ParseFailedOutput)

    def test_schema_violation_is_parse_failed(self):
        text = json.dumps({"findings": [{"severity": "apocalyptic", "title": "x"}]})
        result = parse_agent_output(text)
        assert isinstance(result, ParseFailedOutput)
        assert "Schema validation failed" in result.error

    def test_unknown_keys_ignored(self):
        result = parse_agent_output(json.dumps({"summary": "ok", "mood": "grim"}))
        assert isinstance(result, StructuredOutput)

    def test_null_arrays_become_empty(self):
        result = parse_agent_output(json.dumps({"summary": None, "findings": None}))
        assert isinstance(result, StructuredOutput)
        assert result.payload.findings == []
        assert result.payload.summary == ""


class TestEvidenceCandidates:
    def test_camel_case_key_and_type_aliases(self):
        text = json.dumps({
            "evidenceItems": [
                {"title": "Expert report", "evidence_type": "expert_opinion"},
                {"title": "CCTV", "evidence_type": "digital"},
                {"title": "Something", "evidence_type": "mystery"},
            ]
        })
        items = parse_agent_output(text).payload.evidence_items
        assert [i.evidence_type for i in items] == ["expert_conclusion", "audio_video", "other"]


class TestReportSections:
    def test_no_sections_for_ordinary_agent(self):
        payload = parse_agent_output(json.dumps({"summary": "ok"})).payload
        assert payload.report_sections() is None

    def test_sections_from_camel_case(self):
        payload = parse_agent_output(json.dumps({
            "executiveSummary": "Exec",
            "fullReport": "Full",
            "recommendations": ["First", "Second"],
        })).payload
        sections = payload.report_sections()
        assert sections.executive_summary == "Exec"
        assert sections.full_report == "Full"
        assert sections.recommendations == "- First\n- Second"
        assert sections.title == "Aggregated Analysis"
