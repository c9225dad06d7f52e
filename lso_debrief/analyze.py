"""Pipeline orchestration for recovery debriefs from recorded telemetry."""

from __future__ import annotations
from typing import List, Optional

from .domain import EngineConfig, FinalizedAttempt
from .engine import Engine
from .replay import load_events
from .stream import dispatch


def analyze(
    source,
    config: Optional[EngineConfig] = None,
) -> tuple[Optional[List[FinalizedAttempt]], Optional[str]]:
    """
    Replay a recording through a fresh engine.

    Orchestrates the full workflow:
    1. Load the recording (telemetry CSV or Tacview .acmi) into time-ordered events
    2. Feed every event to the engine
    3. Close the engine at the end of the recording (open attempts -> Incomplete)
    4. Collect the finalized attempts in finalization order

    Args:
        source: Path or file-like object containing telemetry CSV, or a path to an ACMI file
        config: Engine thresholds (defaults when omitted)

    Returns:
        Tuple of (result, error):
        - On success: (finalized_attempts, None)
        - On failure: (None, error_message)
    """
    try:
        events = load_events(source)
        if len(events) == 0:
            return None, "Telemetry file contains no samples."

        engine = Engine(config)
        attempts: List[FinalizedAttempt] = []
        for event in events:
            dispatch(engine, event)
            attempts.extend(engine.collect())
        engine.close()
        attempts.extend(engine.collect())
        return attempts, None

    except Exception as e:
        return None, str(e)
