"""
Tests for the command-line entry point.
"""

import json
import os
import sys
import tempfile

import pytest

from CaseAnalysis import main as cli
from CaseAnalysis.store.memory import InMemoryRunStore


@pytest.fixture
def case_dir():
    with tempfile.TemporaryDirectory() as tmp:
        with open(os.path.join(tmp, "vol2.txt"), "w", encoding="utf-8") as f:
            f.write("Interrogation record ...")
        with open(os.path.join(tmp, "case.json"), "w", encoding="utf-8") as f:
            json.dump(
                {
                    "case": {"title": "State v. Doe", "case_type": "criminal"},
                    "volumes": [
                        {"title": "Search", "ocr_text": "Protocol ..."},
                        {"text_file": "vol2.txt"},
                        {"title": "Pending scan"},
                    ],
                },
                f,
            )
        yield tmp


class TestLoadCaseFile:
    def test_case_and_volumes(self, case_dir):
        store = InMemoryRunStore()
        case_id = cli.load_case_file(store, os.path.join(case_dir, "case.json"))

        assert store.get_case(case_id).title == "State v. Doe"
        volumes = store.list_volumes(case_id)
        assert [v.volume_number for v in volumes] == [1, 2, 3]
        assert volumes[1].ocr_text == "Interrogation record ..."
        assert volumes[1].title == "Volume 2"
        assert volumes[2].ocr_completed is False


class TestMain:
    def test_list_agents(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["main", "--list-agents"])
        cli.main()
        agents = json.loads(capsys.readouterr().out)["agents"]
        assert len(agents) == 9
        assert agents[0]["agent_type"] == "evidence_collector"

    def test_report_below_quorum_saves_store(self, case_dir, monkeypatch, capsys):
        store_file = os.path.join(case_dir, "store.json")
        monkeypatch.setattr(sys, "argv", [
            "main",
            "--case-file", os.path.join(case_dir, "case.json"),
            "--store-file", store_file,
            "--report",
        ])
        cli.main()

        output = json.loads(capsys.readouterr().out)
        assert output["outcome"]["status"] == "insufficient_input"
        assert output["evidence_registry"] == []
        saved = InMemoryRunStore.load(store_file)
        assert saved.get_case(output["case_id"]).title == "State v. Doe"

    def test_case_required(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["main", "--all"])
        with pytest.raises(SystemExit):
            cli.main()
