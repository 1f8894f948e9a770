"""
Tests for assembling and rendering the material each agent reads.
"""

from unittest.mock import patch

from CaseAnalysis.context import build_agent_context, parse_user_sources, render_context
from CaseAnalysis.state import AgentAnalysisRun, AgentFinding, EvidenceItem


def _evidence(case_id, n=1):
    return EvidenceItem(
        case_id=case_id, evidence_number=n, evidence_key=f"E-{n}", title=f"Item {n}"
    )


class TestParseUserSources:
    def test_bullets_blanks_and_duplicates(self):
        refs, omitted = parse_user_sources("- CPC\n\n* ECHR\nCPC\n  Constitution  ")
        assert refs == ["CPC", "ECHR", "Constitution"]
        assert omitted == 0

    def test_cap(self):
        text = "\n".join(f"Source {i}" for i in range(14))
        refs, omitted = parse_user_sources(text, limit=10)
        assert len(refs) == 10
        assert omitted == 4

    def test_empty(self):
        assert parse_user_sources("") == ([], 0)


class TestBuildAgentContext:
    def test_collector_does_not_see_registry(self, store, case):
        store.insert_evidence(_evidence(case.id))
        ctx = build_agent_context(store, case.id, "evidence_collector")
        assert ctx.evidence == []
        assert len(ctx.volumes) == 1

    def test_other_agents_see_registry(self, store, case):
        store.insert_evidence(_evidence(case.id))
        ctx = build_agent_context(store, case.id, "evidence_admissibility")
        assert [i.evidence_key for i in ctx.evidence] == ["E-1"]
        assert ctx.prior_runs == []

    def test_aggregator_reads_latest_completed_runs(self, store, case):
        done = AgentAnalysisRun(case_id=case.id, agent_type="defense_strategy", status="completed")
        failed = AgentAnalysisRun(case_id=case.id, agent_type="rights_violations", status="failed")
        store.insert_run(done)
        store.insert_run(failed)

        ctx = build_agent_context(store, case.id, "aggregator")
        assert [r.id for r in ctx.prior_runs] == [done.id]

    def test_user_sources_from_case(self, store, case):
        ctx = build_agent_context(store, case.id, "defense_strategy")
        assert ctx.user_sources == ["Criminal Procedure Code", "ECHR Art. 6"]


class TestRenderContext:
    def test_header_and_volume(self, store, case):
        text = render_context(build_agent_context(store, case.id, "evidence_collector"))
        assert "CASE: State v. Doe" in text
        assert "LEGAL QUESTION: Is the search protocol admissible?" in text
        assert "--- VOLUME 1: Investigation file ---" in text
        assert "Protocol of search" in text

    @patch("CaseAnalysis.config.MAX_VOLUME_CHARS", 10)
    def test_volume_text_truncated(self, store, case):
        store.create_volume(case.id, ocr_text="x" * 50)
        text = render_context(build_agent_context(store, case.id, "evidence_collector"))
        assert "x" * 10 + "\n[... truncated]" in text
        assert "x" * 11 not in text

    def test_registry_listing(self, store, case):
        store.insert_evidence(_evidence(case.id))
        text = render_context(build_agent_context(store, case.id, "procedural_violations"))
        assert "EVIDENCE REGISTRY:" in text
        assert "#1 [E-1]: Item 1" in text

    def test_prior_runs_in_catalog_order(self, store, case):
        later = AgentAnalysisRun(
            case_id=case.id, agent_type="defense_strategy", status="completed", summary="Defense"
        )
        earlier = AgentAnalysisRun(
            case_id=case.id,
            agent_type="evidence_collector",
            status="completed",
            summary="Collected",
            findings=[AgentFinding(severity="high", title="Gap", description="Missing page")],
        )
        ctx = build_agent_context(store, case.id, "aggregator", prior_runs=[later, earlier])
        text = render_context(ctx)
        assert text.index("--- evidence_collector ---") < text.index("--- defense_strategy ---")
        assert "* [high] Gap: Missing page" in text

    def test_omitted_sources_note(self, store, case):
        case.references_text = "\n".join(f"Source {i}" for i in range(12))
        store.save_case(case)
        text = render_context(build_agent_context(store, case.id, "defense_strategy"))
        assert "10. Source 9" in text
        assert "NOTE: 2 further source(s) omitted" in text
