"""
Compile event logging utilities (Tier 2 logging).

Appends one JSON object per line to `<project>/<build dir>/compile_events.log`
so the history of compiles for a project can be inspected or streamed.

For detailed within-context logging (Tier 1), use the context loggers instead.

Usage:
    from incipit.utils.event_logging import log_compile_event

    log_compile_event(
        build_dir,
        event_type="compile_succeeded",
        target_file="main.tex",
        source="orchestrator",
        compilation_time_s=3.2,
    )
"""

import json
import threading
from pathlib import Path
from typing import Dict, List, Optional

from loguru import logger

from incipit.utils.timestamp import now_exact

COMPILE_EVENTS_FILE = "compile_events.log"

# Appends from concurrent workers must not interleave within a line
_append_lock = threading.Lock()


def log_compile_event(
    build_dir: Path, event_type: str, target_file: str, source: str, **extra_fields
) -> None:
    """
    Log an event to the project's compile event log.

    Failures to write are logged and swallowed; the event log never fails a compile.

    Args:
        build_dir: Project build directory (created if missing)
        event_type: Type of event (e.g., "compile_started", "compile_failed")
        target_file: Project-relative target document
        source: Event source (e.g., "orchestrator", "cli")
        **extra_fields: Additional event-specific fields (must be JSON serializable)
    """
    event = {
        "timestamp": now_exact(),
        "event_type": event_type,
        "target_file": target_file,
        "source": source,
        **extra_fields,
    }

    try:
        build_dir.mkdir(parents=True, exist_ok=True)
        with _append_lock:
            with open(build_dir / COMPILE_EVENTS_FILE, "a", encoding="utf-8") as f:
                f.write(json.dumps(event, default=str) + "\n")
    except OSError as e:
        logger.warning(f"Could not append compile event {event_type} for {target_file}: {e}")


def get_recent_events(
    build_dir: Path,
    n: int = 10,
    target_file: Optional[str] = None,
    event_type: Optional[str] = None,
) -> List[Dict]:
    """
    Get the last n events from a project's compile event log, optionally filtered.

    Args:
        build_dir: Project build directory
        n: Number of recent events to return (default: 10)
        target_file: Filter to only events for this target (optional)
        event_type: Filter to only events of this type (optional)

    Returns:
        List of event dicts (most recent last)
    """
    events_file = build_dir / COMPILE_EVENTS_FILE
    if not events_file.exists():
        return []

    events = []
    with open(events_file, "r", encoding="utf-8") as f:
        for line in f:
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                # Skip torn lines left by a crash mid-append
                continue
            if target_file is not None and event.get("target_file") != target_file:
                continue
            if event_type is not None and event.get("event_type") != event_type:
                continue
            events.append(event)

    return events[-n:] if n > 0 else []
