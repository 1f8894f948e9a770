"""
base.py

Abstract persistence boundary for cases, volumes, runs, findings,
evidence items and aggregated reports.

Every write is a single-record insert or update keyed by the record id;
no operation spans more than one record. Implementations must return
copies so that callers never mutate stored records in place.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from CaseAnalysis.state import (
    AgentAnalysisRun,
    AgentFinding,
    AggregatedReport,
    CaseRecord,
    CaseVolume,
    EvidenceItem,
)


class RunStore(ABC):
    """Uniform interface the orchestrator core persists through."""

    # -- Cases and volumes --------------------------------------------------

    @abstractmethod
    def get_case(self, case_id: str) -> CaseRecord:
        """Return the case or raise ``CaseNotFoundError``."""

    @abstractmethod
    def save_case(self, case: CaseRecord) -> CaseRecord:
        ...

    @abstractmethod
    def list_volumes(self, case_id: str) -> List[CaseVolume]:
        """Volumes of the case ordered by ``volume_number``."""

    @abstractmethod
    def create_volume(
        self,
        case_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        page_count: Optional[int] = None,
        ocr_text: Optional[str] = None,
        ocr_completed: bool = False,
    ) -> CaseVolume:
        """Create a volume numbered one past the highest existing number."""

    @abstractmethod
    def update_volume(self, volume_id: str, changes: Dict[str, Any]) -> CaseVolume:
        ...

    @abstractmethod
    def delete_volume(self, volume_id: str) -> None:
        ...

    # -- Runs and findings --------------------------------------------------

    @abstractmethod
    def insert_run(self, run: AgentAnalysisRun) -> AgentAnalysisRun:
        ...

    @abstractmethod
    def update_run(self, run: AgentAnalysisRun) -> AgentAnalysisRun:
        ...

    @abstractmethod
    def get_run(self, run_id: str) -> AgentAnalysisRun:
        ...

    @abstractmethod
    def list_runs(self, case_id: str) -> List[AgentAnalysisRun]:
        """All runs of the case, newest first."""

    @abstractmethod
    def insert_findings(self, findings: List[AgentFinding]) -> None:
        ...

    @abstractmethod
    def list_findings(
        self, case_id: str, run_id: Optional[str] = None
    ) -> List[AgentFinding]:
        ...

    # -- Evidence registry --------------------------------------------------

    @abstractmethod
    def list_evidence(self, case_id: str) -> List[EvidenceItem]:
        """Registry items of the case ordered by ``evidence_number``."""

    @abstractmethod
    def get_evidence(self, item_id: str) -> EvidenceItem:
        ...

    @abstractmethod
    def insert_evidence(self, item: EvidenceItem) -> EvidenceItem:
        ...

    @abstractmethod
    def update_evidence(self, item: EvidenceItem) -> EvidenceItem:
        ...

    # -- Reports ------------------------------------------------------------

    @abstractmethod
    def insert_report(self, report: AggregatedReport) -> AggregatedReport:
        ...

    @abstractmethod
    def update_report(self, report: AggregatedReport) -> AggregatedReport:
        ...

    @abstractmethod
    def list_reports(self, case_id: str) -> List[AggregatedReport]:
        """All reports of the case, newest first."""

    # -- Projections --------------------------------------------------------

    def latest_runs(self, case_id: str) -> Dict[str, AgentAnalysisRun]:
        """Latest run per agent type (authoritative for display)."""
        latest: Dict[str, AgentAnalysisRun] = {}
        for run in self.list_runs(case_id):
            latest.setdefault(run.agent_type, run)
        return latest

    def latest_run(self, case_id: str, agent_type: str) -> Optional[AgentAnalysisRun]:
        return self.latest_runs(case_id).get(agent_type)

    def completed_runs(self, case_id: str) -> List[AgentAnalysisRun]:
        return [r for r in self.list_runs(case_id) if r.status == "completed"]

    def latest_report(self, case_id: str) -> Optional[AggregatedReport]:
        reports = self.list_reports(case_id)
        return reports[0] if reports else None
