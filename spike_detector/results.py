import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional
from probe_client.logger import logger
from .models import SessionSummary

RESULT_GLOB = "session_*.json"


def save_session_result(summary: SessionSummary, results_dir: str) -> Optional[Path]:
    try:
        out_dir = Path(results_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        out_file = out_dir / f"session_{summary.session_id}.json"

        # Write next to the target and swap in, so readers never see a partial file
        fd, tmp_name = tempfile.mkstemp(dir=out_dir, prefix=".session_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(summary.to_dict(), f, indent=2)
            os.replace(tmp_name, out_file)
        except BaseException:
            os.unlink(tmp_name)
            raise

        logger.debug(f"Session result saved to {out_file}")
        return out_file

    except OSError as e:
        logger.error(f"Failed to save session result to {results_dir}: {e}")
        return None


def read_session_file(result_file: Path) -> Dict[str, Any]:
    """Load one session document; raises ValueError or OSError when unusable."""
    with open(result_file, "r", encoding="utf-8") as f:
        session = json.load(f)

    if not isinstance(session, dict):
        raise ValueError(f"expected a JSON object, got {type(session).__name__}")
    return session


def load_session_results(results_dir: str) -> List[Dict[str, Any]]:
    results_path = Path(results_dir)
    if not results_path.exists():
        logger.warning(f"Results directory does not exist: {results_dir}")
        return []

    sessions = []
    for result_file in sorted(results_path.glob(RESULT_GLOB)):
        try:
            sessions.append(read_session_file(result_file))
        except (ValueError, OSError) as e:
            # JSONDecodeError and UnicodeDecodeError are both ValueErrors
            logger.error(f"Skipping unreadable session file {result_file}: {e}")

    return sessions


def find_session(results_dir: str, session_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Return the session with ``session_id``, or the most recent one."""
    sessions = load_session_results(results_dir)
    if not sessions:
        return None

    if session_id is None:
        return max(sessions, key=lambda s: str(s.get("started_at", "")))

    for session in sessions:
        if str(session.get("session_id")) == str(session_id):
            return session
    return None
