"""
memory.py

Thread-safe in-process RunStore, with JSON snapshot support for the CLI.
"""

import json
import logging
import threading
from itertools import count
from typing import Any, Dict, List, Optional, Tuple

from CaseAnalysis.errors import CaseNotFoundError, RecordNotFoundError
from CaseAnalysis.state import (
    AgentAnalysisRun,
    AgentFinding,
    AggregatedReport,
    CaseRecord,
    CaseVolume,
    EvidenceItem,
    utcnow,
)
from CaseAnalysis.store.base import RunStore

logger = logging.getLogger(__name__)

_VOLUME_FIELDS = {"title", "description", "page_count", "ocr_text", "ocr_completed"}


class InMemoryRunStore(RunStore):
    """Dict-backed store. Records are copied on the way in and out."""

    def __init__(self):
        self._lock = threading.RLock()
        self._seq = count()
        self._cases: Dict[str, CaseRecord] = {}
        self._volumes: Dict[str, CaseVolume] = {}
        # run id -> (insertion sequence, run); the sequence breaks
        # created_at ties so "latest" is always well defined.
        self._runs: Dict[str, Tuple[int, AgentAnalysisRun]] = {}
        self._findings: List[AgentFinding] = []
        self._evidence: Dict[str, EvidenceItem] = {}
        self._reports: Dict[str, Tuple[int, AggregatedReport]] = {}

    # -- Cases and volumes --------------------------------------------------

    def get_case(self, case_id: str) -> CaseRecord:
        with self._lock:
            case = self._cases.get(case_id)
            if case is None:
                raise CaseNotFoundError(case_id)
            return case.model_copy(deep=True)

    def save_case(self, case: CaseRecord) -> CaseRecord:
        with self._lock:
            self._cases[case.id] = case.model_copy(deep=True)
        return case

    def list_volumes(self, case_id: str) -> List[CaseVolume]:
        with self._lock:
            volumes = [v for v in self._volumes.values() if v.case_id == case_id]
            volumes.sort(key=lambda v: v.volume_number)
            return [v.model_copy(deep=True) for v in volumes]

    def create_volume(
        self,
        case_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        page_count: Optional[int] = None,
        ocr_text: Optional[str] = None,
        ocr_completed: bool = False,
    ) -> CaseVolume:
        with self._lock:
            if case_id not in self._cases:
                raise CaseNotFoundError(case_id)
            numbers = [v.volume_number for v in self._volumes.values() if v.case_id == case_id]
            next_number = max(numbers, default=0) + 1
            volume = CaseVolume(
                case_id=case_id,
                volume_number=next_number,
                title=title or f"Volume {next_number}",
                description=description,
                page_count=page_count,
                ocr_text=ocr_text,
                ocr_completed=ocr_completed,
            )
            self._volumes[volume.id] = volume
            logger.info("Created volume %d for case %s", next_number, case_id)
            return volume.model_copy(deep=True)

    def update_volume(self, volume_id: str, changes: Dict[str, Any]) -> CaseVolume:
        with self._lock:
            volume = self._volumes.get(volume_id)
            if volume is None:
                raise RecordNotFoundError("Volume", volume_id)
            allowed = {k: v for k, v in changes.items() if k in _VOLUME_FIELDS}
            updated = volume.model_copy(update={**allowed, "updated_at": utcnow()})
            # Round-trip through validation so bad values are rejected.
            updated = CaseVolume.model_validate(updated.model_dump())
            self._volumes[volume_id] = updated
            return updated.model_copy(deep=True)

    def delete_volume(self, volume_id: str) -> None:
        with self._lock:
            if self._volumes.pop(volume_id, None) is None:
                raise RecordNotFoundError("Volume", volume_id)

    # -- Runs and findings --------------------------------------------------

    def insert_run(self, run: AgentAnalysisRun) -> AgentAnalysisRun:
        with self._lock:
            self._runs[run.id] = (next(self._seq), run.model_copy(deep=True))
        return run

    def update_run(self, run: AgentAnalysisRun) -> AgentAnalysisRun:
        with self._lock:
            entry = self._runs.get(run.id)
            if entry is None:
                raise RecordNotFoundError("Run", run.id)
            self._runs[run.id] = (entry[0], run.model_copy(deep=True))
        return run

    def get_run(self, run_id: str) -> AgentAnalysisRun:
        with self._lock:
            entry = self._runs.get(run_id)
            if entry is None:
                raise RecordNotFoundError("Run", run_id)
            return entry[1].model_copy(deep=True)

    def list_runs(self, case_id: str) -> List[AgentAnalysisRun]:
        with self._lock:
            entries = [e for e in self._runs.values() if e[1].case_id == case_id]
            entries.sort(key=lambda e: (e[1].created_at, e[0]), reverse=True)
            return [run.model_copy(deep=True) for _, run in entries]

    def insert_findings(self, findings: List[AgentFinding]) -> None:
        with self._lock:
            self._findings.extend(f.model_copy(deep=True) for f in findings)

    def list_findings(
        self, case_id: str, run_id: Optional[str] = None
    ) -> List[AgentFinding]:
        with self._lock:
            return [
                f.model_copy(deep=True)
                for f in self._findings
                if f.case_id == case_id and (run_id is None or f.run_id == run_id)
            ]

    # -- Evidence registry --------------------------------------------------

    def list_evidence(self, case_id: str) -> List[EvidenceItem]:
        with self._lock:
            items = [i for i in self._evidence.values() if i.case_id == case_id]
            items.sort(key=lambda i: i.evidence_number)
            return [i.model_copy(deep=True) for i in items]

    def get_evidence(self, item_id: str) -> EvidenceItem:
        with self._lock:
            item = self._evidence.get(item_id)
            if item is None:
                raise RecordNotFoundError("Evidence item", item_id)
            return item.model_copy(deep=True)

    def insert_evidence(self, item: EvidenceItem) -> EvidenceItem:
        with self._lock:
            self._evidence[item.id] = item.model_copy(deep=True)
        return item

    def update_evidence(self, item: EvidenceItem) -> EvidenceItem:
        with self._lock:
            if item.id not in self._evidence:
                raise RecordNotFoundError("Evidence item", item.id)
            self._evidence[item.id] = item.model_copy(deep=True)
        return item

    # -- Reports ------------------------------------------------------------

    def insert_report(self, report: AggregatedReport) -> AggregatedReport:
        with self._lock:
            self._reports[report.id] = (next(self._seq), report.model_copy(deep=True))
        return report

    def update_report(self, report: AggregatedReport) -> AggregatedReport:
        with self._lock:
            entry = self._reports.get(report.id)
            if entry is None:
                raise RecordNotFoundError("Report", report.id)
            self._reports[report.id] = (entry[0], report.model_copy(deep=True))
        return report

    def list_reports(self, case_id: str) -> List[AggregatedReport]:
        with self._lock:
            entries = [e for e in self._reports.values() if e[1].case_id == case_id]
            entries.sort(key=lambda e: (e[1].generated_at, e[0]), reverse=True)
            return [r.model_copy(deep=True) for _, r in entries]

    # -- Snapshots ----------------------------------------------------------

    def to_snapshot(self) -> Dict[str, Any]:
        """Serialise every record to JSON-compatible dicts."""
        with self._lock:
            runs = sorted(self._runs.values(), key=lambda e: e[0])
            reports = sorted(self._reports.values(), key=lambda e: e[0])
            return {
                "cases": [c.model_dump(mode="json") for c in self._cases.values()],
                "volumes": [v.model_dump(mode="json") for v in self._volumes.values()],
                "runs": [r.model_dump(mode="json") for _, r in runs],
                "findings": [f.model_dump(mode="json") for f in self._findings],
                "evidence": [i.model_dump(mode="json") for i in self._evidence.values()],
                "reports": [r.model_dump(mode="json") for _, r in reports],
            }

    @classmethod
    def from_snapshot(cls, data: Dict[str, Any]) -> "InMemoryRunStore":
        store = cls()
        for raw in data.get("cases", []):
            store.save_case(CaseRecord.model_validate(raw))
        for raw in data.get("volumes", []):
            volume = CaseVolume.model_validate(raw)
            store._volumes[volume.id] = volume
        for raw in data.get("runs", []):
            store.insert_run(AgentAnalysisRun.model_validate(raw))
        store.insert_findings([AgentFinding.model_validate(raw) for raw in data.get("findings", [])])
        for raw in data.get("evidence", []):
            store.insert_evidence(EvidenceItem.model_validate(raw))
        for raw in data.get("reports", []):
            store.insert_report(AggregatedReport.model_validate(raw))
        return store

    def dump(self, path: str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_snapshot(), f, ensure_ascii=False, indent=2)
        logger.info("Store snapshot written to %s", path)

    @classmethod
    def load(cls, path: str) -> "InMemoryRunStore":
        with open(path, encoding="utf-8") as f:
            return cls.from_snapshot(json.load(f))
