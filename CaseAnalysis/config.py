"""
config.py

Central configuration for the case-analysis orchestrator.

All tuneable parameters live here so that nothing is hardcoded in the
controller, registry or synthesizer modules.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# LLM configuration
# ---------------------------------------------------------------------------
LLM_PROVIDER: str = os.getenv("CASE_ANALYSIS_LLM_PROVIDER", "google")
LLM_MODEL: str = os.getenv("CASE_ANALYSIS_LLM_MODEL", "gemini-1.5-flash")
LLM_TEMPERATURE: float = float(os.getenv("CASE_ANALYSIS_LLM_TEMPERATURE", "0"))

# ---------------------------------------------------------------------------
# Agent execution
# ---------------------------------------------------------------------------
AGENT_TIMEOUT_SECONDS: float = float(
    os.getenv("CASE_ANALYSIS_AGENT_TIMEOUT", "300")
)
CANCEL_POLL_INTERVAL: float = float(
    os.getenv("CASE_ANALYSIS_CANCEL_POLL_INTERVAL", "0.5")
)

# ---------------------------------------------------------------------------
# Aggregated report
# ---------------------------------------------------------------------------
# Minimum number of distinct analysis agents (aggregator excluded) whose
# latest run must be completed before a report may be synthesized.
REPORT_QUORUM: int = int(os.getenv("CASE_ANALYSIS_REPORT_QUORUM", "3"))

# ---------------------------------------------------------------------------
# Context limits
# ---------------------------------------------------------------------------
MAX_VOLUME_CHARS: int = int(os.getenv("CASE_ANALYSIS_MAX_VOLUME_CHARS", "15000"))
MAX_PRIOR_ANALYSIS_CHARS: int = int(
    os.getenv("CASE_ANALYSIS_MAX_PRIOR_ANALYSIS_CHARS", "5000")
)
MAX_USER_SOURCES: int = int(os.getenv("CASE_ANALYSIS_MAX_USER_SOURCES", "10"))

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL: str = os.getenv("CASE_ANALYSIS_LOG_LEVEL", "INFO")
