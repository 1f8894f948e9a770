"""
Tests for quorum-gated report synthesis.
"""

from unittest.mock import patch

import pytest

from CaseAnalysis.errors import CaseNotFoundError
from CaseAnalysis.report import AggregatedReportSynthesizer, compute_statistics, synthesis_inputs
from CaseAnalysis.state import AgentAnalysisRun, AgentFinding, EvidenceItem


@pytest.fixture
def synthesizer(store, controller):
    return AggregatedReportSynthesizer(store, controller, quorum=3)


def _complete(store, case_id, agent_type, status="completed", findings=()):
    run = AgentAnalysisRun(
        case_id=case_id,
        agent_type=agent_type,
        status=status,
        summary=f"{agent_type} summary",
        findings=list(findings),
    )
    store.insert_run(run)
    return run


class TestSynthesisInputs:
    def test_latest_completed_analysis_runs_in_catalog_order(self, store, case):
        _complete(store, case.id, "defense_strategy")
        _complete(store, case.id, "evidence_collector")
        _complete(store, case.id, "aggregator")
        _complete(store, case.id, "rights_violations", status="failed")
        runs = synthesis_inputs(store, case.id)
        assert [r.agent_type for r in runs] == ["evidence_collector", "defense_strategy"]

    def test_failed_retry_hides_older_success(self, store, case):
        _complete(store, case.id, "defense_strategy")
        _complete(store, case.id, "defense_strategy", status="failed")
        assert synthesis_inputs(store, case.id) == []

    def test_statistics(self, case):
        evidence = [
            EvidenceItem(case_id=case.id, evidence_number=1, evidence_key="a", title="a",
                         admissibility_status="admissible"),
            EvidenceItem(case_id=case.id, evidence_number=2, evidence_key="b", title="b"),
        ]
        runs = [AgentAnalysisRun(case_id=case.id, agent_type="procedural_violations", findings=[
            AgentFinding(severity="critical", title="x"),
            AgentFinding(severity="high", title="y"),
            AgentFinding(severity="high", title="z"),
        ])]
        stats = compute_statistics(evidence, runs)
        assert stats.total_evidence == 2
        assert stats.admissible_evidence == 1
        assert stats.critical_findings == 1
        assert stats.high_findings == 2


class TestQuorumGate:
    def test_two_completed_is_insufficient(self, store, case, synthesizer, invoker):
        _complete(store, case.id, "evidence_collector")
        _complete(store, case.id, "evidence_admissibility")

        outcome = synthesizer.generate(case.id)

        assert outcome.status == "insufficient_input"
        assert "2 of 3" in outcome.reason
        assert outcome.report is None and outcome.run is None
        assert store.list_reports(case.id) == []
        assert store.latest_run(case.id, "aggregator") is None
        assert invoker.calls == []

    def test_three_completed_generates(self, store, case, synthesizer):
        inputs = [
            _complete(store, case.id, agent)
            for agent in ("evidence_collector", "evidence_admissibility", "charge_qualification")
        ]

        outcome = synthesizer.generate(case.id)

        assert outcome.status == "generated"
        report = outcome.report
        assert report.agent_runs == [r.id for r in inputs]
        assert report.aggregator_run_id == outcome.run.id
        assert report.executive_summary == "The prosecution relies on tainted evidence."
        assert report.recommendations == "- File exclusion motion\n- Request re-examination"
        assert store.latest_report(case.id).id == report.id

    def test_check_quorum(self, store, case, synthesizer):
        _complete(store, case.id, "evidence_collector")
        met, inputs = synthesizer.check_quorum(case.id)
        assert met is False
        assert [r.agent_type for r in inputs] == ["evidence_collector"]

        _complete(store, case.id, "defense_strategy")
        _complete(store, case.id, "rights_violations")
        met, inputs = synthesizer.check_quorum(case.id)
        assert met is True
        assert len(inputs) == 3

    def test_generate_refuses_when_check_quorum_not_met(self, store, case, synthesizer, controller):
        _complete(store, case.id, "evidence_collector")
        with patch.object(controller, "run") as mock_run:
            outcome = synthesizer.generate(case.id)
        assert outcome.status == "insufficient_input"
        assert outcome.reason == "Insufficient input: 1 of 3 required analysis agents completed"
        mock_run.assert_not_called()

    def test_configurable_quorum(self, store, case, controller):
        _complete(store, case.id, "evidence_collector")
        outcome = AggregatedReportSynthesizer(store, controller, quorum=1).generate(case.id)
        assert outcome.status == "generated"

    def test_unknown_case_raises(self, synthesizer):
        with pytest.raises(CaseNotFoundError):
            synthesizer.generate("missing")


class TestRegenerationAndFailure:
    @pytest.fixture(autouse=True)
    def _quorum(self, store, case):
        for agent in ("evidence_collector", "evidence_admissibility", "charge_qualification"):
            _complete(store, case.id, agent)

    def test_regeneration_keeps_previous(self, store, case, synthesizer):
        first = synthesizer.generate(case.id).report
        second = synthesizer.generate(case.id).report

        reports = store.list_reports(case.id)
        assert len(reports) == 2
        assert store.latest_report(case.id).id == second.id
        old = next(r for r in reports if r.id == first.id)
        assert old.superseded is True
        assert old.executive_summary == first.executive_summary

    def test_failed_aggregator_leaves_previous_report(self, store, case, synthesizer, invoker):
        first = synthesizer.generate(case.id).report
        invoker.errors["aggregator"] = "quota exceeded"

        outcome = synthesizer.generate(case.id)

        assert outcome.status == "failed"
        assert outcome.reason == "quota exceeded"
        assert outcome.run.status == "failed"
        assert store.latest_report(case.id).id == first.id
        assert store.latest_report(case.id).superseded is False

    def test_prose_aggregator_answer_fills_full_report(self, store, case, synthesizer, invoker):
        invoker.responses["aggregator"] = "Overall the defense has a strong position."
        report = synthesizer.generate(case.id).report
        assert report.full_report == "Overall the defense has a strong position."
        assert report.title == "Aggregated Analysis"

    def test_statistics_from_inputs(self, store, case, synthesizer):
        _complete(store, case.id, "rights_violations", findings=[
            AgentFinding(severity="critical", title="Coerced confession"),
        ])
        report = synthesizer.generate(case.id).report
        assert report.statistics.critical_findings == 1
