"""
main.py

Command-line entry point for the case-analysis orchestrator.

Usage:
    python -m CaseAnalysis.main --list-agents
    python -m CaseAnalysis.main --case-file case.json --all
    python -m CaseAnalysis.main --case-file case.json --agent evidence_collector
    python -m CaseAnalysis.main --store-file store.json --case-id <id> --report

A case file holds the case record and its volumes:

    {
      "case": {"title": "...", "facts": "...", "legal_question": "..."},
      "volumes": [{"title": "Volume 1", "ocr_text": "..."},
                  {"title": "Volume 2", "text_file": "vol2.txt"}]
    }

``text_file`` paths are resolved relative to the case file.
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict

from dotenv import load_dotenv

load_dotenv()

from CaseAnalysis import config
from CaseAnalysis.catalog import ordered_agents
from CaseAnalysis.errors import CaseAnalysisError
from CaseAnalysis.orchestrator import PipelineOrchestrator
from CaseAnalysis.state import CaseRecord
from CaseAnalysis.store.base import RunStore
from CaseAnalysis.store.memory import InMemoryRunStore


logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)


def load_case_file(store: RunStore, path: str) -> str:
    """Save the case and create its volumes; returns the case id."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    case = CaseRecord.model_validate(data.get("case", {}))
    store.save_case(case)

    base_dir = os.path.dirname(os.path.abspath(path))
    for entry in data.get("volumes", []):
        text = entry.get("ocr_text")
        if text is None and entry.get("text_file"):
            with open(os.path.join(base_dir, entry["text_file"]), "r", encoding="utf-8") as f:
                text = f.read()
        store.create_volume(
            case.id,
            title=entry.get("title"),
            description=entry.get("description"),
            page_count=entry.get("page_count"),
            ocr_text=text,
            ocr_completed=entry.get("ocr_completed", text is not None),
        )

    logger.info("Loaded case %s from %s", case.id, path)
    return case.id


def _catalog_listing() -> list:
    return [
        {
            "order": a.order,
            "agent_type": a.agent_type,
            "name": a.name,
            "role": a.role,
            "description": a.description,
        }
        for a in ordered_agents()
    ]


def _dump(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def main() -> None:
    parser = argparse.ArgumentParser(description="Case Analysis Orchestrator CLI")
    parser.add_argument(
        "--case-file",
        type=str,
        default=None,
        help="JSON file with the case record and its volumes",
    )
    parser.add_argument(
        "--case-id",
        type=str,
        default=None,
        help="Case already present in the store file",
    )
    parser.add_argument(
        "--store-file",
        type=str,
        default=None,
        help="JSON snapshot to load the store from and save it back to",
    )
    parser.add_argument(
        "--list-agents",
        action="store_true",
        help="Print the agent catalog and exit",
    )
    action = parser.add_mutually_exclusive_group()
    action.add_argument("--agent", "-a", type=str, default=None, help="Run one agent")
    action.add_argument("--all", action="store_true", help="Run every agent in order")
    action.add_argument(
        "--report", action="store_true", help="Generate the aggregated report"
    )
    args = parser.parse_args()

    if args.list_agents:
        _dump({"agents": _catalog_listing()})
        return

    if args.store_file and os.path.exists(args.store_file):
        store = InMemoryRunStore.load(args.store_file)
    else:
        store = InMemoryRunStore()

    case_id = args.case_id
    if args.case_file:
        case_id = load_case_file(store, args.case_file)
    if not case_id:
        parser.error("either --case-file or --case-id is required")

    orchestrator = PipelineOrchestrator(store)
    try:
        if args.agent:
            run = orchestrator.run_single_agent(case_id, args.agent)
            output: Dict[str, Any] = {"run": run.model_dump(mode="json")}
        elif args.report:
            outcome = orchestrator.generate_aggregated_report(case_id)
            output = {"outcome": outcome.model_dump(mode="json")}
        elif args.all:
            state = orchestrator.run_all_agents(case_id)
            report = orchestrator.load_aggregated_report(case_id)
            output = {
                "pipeline": dict(state),
                "report": report.model_dump(mode="json") if report else None,
            }
        else:
            report = orchestrator.load_aggregated_report(case_id)
            output = {
                "latest_runs": {
                    agent: run.model_dump(mode="json")
                    for agent, run in orchestrator.load_latest_runs(case_id).items()
                },
                "report": report.model_dump(mode="json") if report else None,
            }
        output["case_id"] = case_id
        output["evidence_registry"] = [
            item.model_dump(mode="json")
            for item in orchestrator.load_evidence_registry(case_id)
        ]
    except CaseAnalysisError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    if args.store_file:
        store.dump(args.store_file)
        logger.info("Store saved to %s", args.store_file)

    _dump(output)


if __name__ == "__main__":
    main()
