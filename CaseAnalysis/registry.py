"""
registry.py

Evidence Registry Aggregator.

Merges the evidence candidates and findings of completed runs into a
deduplicated, case-scoped list of EvidenceItems.

Merge policy
------------
* An item is identified by (case, volume, evidence key). Candidates
  without a key get a deterministic fingerprint of type, title, page
  reference and source document.
* A finding joins every item its ``evidence_refs`` name; a reference
  with no matching item creates one. Findings naming no evidence stay on
  their run only.
* Admissibility may be refined towards a more specific value but is
  never moved to a less specific one. Conflicting assessments of equal
  specificity leave the status alone and are kept side by side in the
  item's assessments and notes. Only a practitioner edit overrides.
"""

import hashlib
import logging
import re
import threading
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from CaseAnalysis.catalog import get_agent
from CaseAnalysis.errors import CaseAnalysisError
from CaseAnalysis.state import (
    AdmissibilityAssessment,
    AgentAnalysisRun,
    AgentFinding,
    EvidenceCandidate,
    EvidenceItem,
    utcnow,
)
from CaseAnalysis.store.base import RunStore

logger = logging.getLogger(__name__)

# Higher means more specific.
STATUS_RANK = {
    "pending_review": 0,
    "questionable": 1,
    "admissible": 2,
    "inadmissible": 2,
}

EDITABLE_FIELDS = {
    "title",
    "description",
    "evidence_type",
    "page_reference",
    "source_document",
    "admissibility_status",
    "admissibility_notes",
    "related_articles",
    "violations_found",
    "metadata",
}

_WS_RE = re.compile(r"\s+")


class RegistryMergeResult(BaseModel):
    """Ids of registry items touched by one merge."""

    run_id: str
    created: List[str] = Field(default_factory=list)
    updated: List[str] = Field(default_factory=list)


def normalize_key(key: str) -> str:
    return _WS_RE.sub(" ", key.strip()).casefold()


def fingerprint(candidate: EvidenceCandidate) -> str:
    """Deterministic key for a candidate the agent gave no key for."""
    parts = [
        candidate.evidence_type,
        candidate.title,
        candidate.page_reference or "",
        candidate.source_document or "",
    ]
    digest = hashlib.sha1(
        "|".join(normalize_key(p) for p in parts).encode("utf-8")
    ).hexdigest()
    return f"auto:{digest[:12]}"


def _extend_unique(target: List[str], values: List[str]) -> bool:
    changed = False
    for value in values:
        if value and value not in target:
            target.append(value)
            changed = True
    return changed


def _assessed_status(agent_type: str, finding: AgentFinding) -> Optional[str]:
    """Admissibility status a finding asserts, if any."""
    label = finding.finding_type.strip().lower()
    if label in STATUS_RANK and label != "pending_review":
        return label
    if agent_type == "evidence_admissibility" and label in ("pending", "pending_review"):
        return "pending_review"
    return None


def _is_violation(agent_type: str, finding: AgentFinding) -> bool:
    return get_agent(agent_type).role == "violations" or "violation" in finding.finding_type


class _RegistryIndex:
    """Per-merge lookup of a case's items by (volume, key)."""

    def __init__(self, items: List[EvidenceItem]):
        self.items: Dict[str, EvidenceItem] = {i.id: i for i in items}
        self._by_key: Dict[Tuple[Optional[str], str], str] = {}
        for item in items:
            self._by_key[(item.volume_id, normalize_key(item.evidence_key))] = item.id
        self.next_number = max((i.evidence_number for i in items), default=0) + 1

    def find(self, key: str, volume_id: Optional[str] = None) -> Optional[EvidenceItem]:
        norm = normalize_key(key)
        item_id = self._by_key.get((volume_id, norm))
        if item_id is not None:
            return self.items[item_id]
        # A reference without a volume matches the key when unambiguous.
        matches = [iid for (vol, k), iid in self._by_key.items() if k == norm]
        if len(matches) == 1 and (volume_id is None or self.items[matches[0]].volume_id is None):
            return self.items[matches[0]]
        return None

    def add(self, item: EvidenceItem) -> None:
        self.items[item.id] = item
        self._by_key[(item.volume_id, normalize_key(item.evidence_key))] = item.id
        self.next_number = max(self.next_number, item.evidence_number + 1)


class EvidenceRegistryAggregator:
    """Maintains the evidence registry of every case."""

    def __init__(self, store: RunStore):
        self.store = store
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _case_lock(self, case_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(case_id, threading.Lock())

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def merge_run(self, run: AgentAnalysisRun) -> RegistryMergeResult:
        """Fold a completed run's evidence and findings into the registry.

        The read-modify-write of one case is serialised so that two runs
        completing together cannot both allocate the same number or miss
        each other's items.
        """
        result = RegistryMergeResult(run_id=run.id)
        if run.status != "completed":
            logger.debug("Run %s is %s; nothing to merge", run.id, run.status)
            return result
        if get_agent(run.agent_type).role == "synthesis":
            return result

        with self._case_lock(run.case_id):
            index = _RegistryIndex(self.store.list_evidence(run.case_id))
            volume_ids = self._volume_lookup(run.case_id)
            created: Dict[str, EvidenceItem] = {}
            updated: Dict[str, EvidenceItem] = {}

            def track(item: EvidenceItem, is_new: bool) -> None:
                if is_new or item.id in created:
                    created[item.id] = item
                else:
                    updated[item.id] = item

            for candidate in run.evidence_items:
                track(*self._merge_candidate(run, candidate, index, volume_ids))

            for finding in run.findings:
                for ref in finding.evidence_refs:
                    if ref and ref.strip():
                        track(*self._merge_finding(run, finding, ref, index))

            for item in created.values():
                self.store.insert_evidence(item)
            for item in updated.values():
                item.updated_at = utcnow()
                self.store.update_evidence(item)

        result.created = list(created)
        result.updated = list(updated)
        logger.info(
            "Registry merge for run %s (%s): %d created, %d updated",
            run.id, run.agent_type, len(result.created), len(result.updated),
        )
        return result

    def _volume_lookup(self, case_id: str) -> Dict[int, str]:
        return {v.volume_number: v.id for v in self.store.list_volumes(case_id)}

    def _merge_candidate(
        self,
        run: AgentAnalysisRun,
        candidate: EvidenceCandidate,
        index: _RegistryIndex,
        volume_ids: Dict[int, str],
    ) -> Tuple[EvidenceItem, bool]:
        volume_id = candidate.volume_id
        if volume_id is None and candidate.volume_number is not None:
            volume_id = volume_ids.get(candidate.volume_number)
        key = candidate.evidence_key or fingerprint(candidate)

        existing = index.find(key, volume_id)
        if existing is None:
            item = EvidenceItem(
                case_id=run.case_id,
                volume_id=volume_id,
                evidence_number=index.next_number,
                evidence_key=key,
                evidence_type=candidate.evidence_type,
                title=candidate.title,
                description=candidate.description,
                page_reference=candidate.page_reference,
                source_document=candidate.source_document,
                related_articles=list(candidate.related_articles),
                ai_analysis=candidate.ai_analysis,
                source_run_ids=[run.id],
            )
            index.add(item)
            return item, True

        # Fill gaps only; what an earlier run recorded is kept.
        if existing.evidence_type == "other":
            existing.evidence_type = candidate.evidence_type
        for field in ("description", "page_reference", "source_document", "ai_analysis"):
            if not getattr(existing, field) and getattr(candidate, field):
                setattr(existing, field, getattr(candidate, field))
        if existing.volume_id is None and volume_id is not None:
            existing.volume_id = volume_id
        _extend_unique(existing.related_articles, candidate.related_articles)
        _extend_unique(existing.source_run_ids, [run.id])
        return existing, False

    def _merge_finding(
        self,
        run: AgentAnalysisRun,
        finding: AgentFinding,
        ref: str,
        index: _RegistryIndex,
    ) -> Tuple[EvidenceItem, bool]:
        item = index.find(ref)
        is_new = item is None
        if item is None:
            item = EvidenceItem(
                case_id=run.case_id,
                evidence_number=index.next_number,
                evidence_key=ref.strip(),
                title=finding.title,
                description=finding.description or None,
                page_reference=finding.page_references[0] if finding.page_references else None,
            )
            index.add(item)

        _extend_unique(item.related_findings, [finding.id])
        _extend_unique(item.source_run_ids, [run.id])
        _extend_unique(item.related_articles, finding.legal_basis)
        if _is_violation(run.agent_type, finding):
            _extend_unique(item.violations_found, [finding.title])

        status = _assessed_status(run.agent_type, finding)
        if status is not None:
            apply_assessment(
                item,
                AdmissibilityAssessment(
                    status=status,
                    agent_type=run.agent_type,
                    run_id=run.id,
                    finding_id=finding.id,
                    note=finding.description,
                ),
            )
        return item, is_new

    # ------------------------------------------------------------------
    # Practitioner edits
    # ------------------------------------------------------------------

    def update_evidence_item(self, item_id: str, changes: Dict[str, Any]) -> EvidenceItem:
        """Apply a practitioner edit; a status set here is an explicit override."""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise CaseAnalysisError(f"Fields not editable: {', '.join(sorted(unknown))}")

        item = self.store.get_evidence(item_id)
        with self._case_lock(item.case_id):
            item = self.store.get_evidence(item_id)
            data = item.model_dump()
            data.update(changes)
            updated = EvidenceItem.model_validate(data)
            if "admissibility_status" in changes:
                updated.status_overridden = True
                updated.assessments.append(
                    AdmissibilityAssessment(
                        status=updated.admissibility_status,
                        agent_type="practitioner",
                        note="Manual override",
                    )
                )
            updated.updated_at = utcnow()
            self.store.update_evidence(updated)
        logger.info("Evidence item %s updated by practitioner", item_id)
        return updated

    def load(self, case_id: str) -> List[EvidenceItem]:
        return self.store.list_evidence(case_id)


def apply_assessment(item: EvidenceItem, assessment: AdmissibilityAssessment) -> None:
    """Record *assessment* on *item* and refine its status if allowed."""
    item.assessments.append(assessment)
    source = assessment.agent_type or "unknown"
    note = f"[{source}] {assessment.status}"
    if assessment.note:
        note += f": {assessment.note}"

    current = item.admissibility_status
    new = assessment.status

    if item.status_overridden:
        note += " (status fixed by practitioner)"
    elif STATUS_RANK[new] > STATUS_RANK[current]:
        item.admissibility_status = new
    elif new != current and STATUS_RANK[new] == STATUS_RANK[current]:
        item.metadata["conflicting_assessments"] = True
        note = f"CONFLICT {note} (kept {current})"
        logger.warning(
            "Conflicting admissibility for evidence %s: %s vs %s",
            item.evidence_key, current, new,
        )

    item.admissibility_notes = (
        f"{item.admissibility_notes}\n{note}" if item.admissibility_notes else note
    )
