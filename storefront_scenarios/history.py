from datetime import datetime
from typing import Any, Dict, List, Optional
import json

from .models import SettledState, Verdict


class ScenarioHistory:
    """Keeps per-session records of settled scenarios and their verdicts"""

    def __init__(self):
        self.sessions: Dict[str, Dict[str, Any]] = {}

    def _session(self, session_id: str) -> Dict[str, Any]:
        if session_id not in self.sessions:
            self.sessions[session_id] = {
                "id": session_id,
                "created_at": datetime.now().isoformat(),
                "updated_at": datetime.now().isoformat(),
                "history": [],
                "current_url": "",
            }
        return self.sessions[session_id]

    def record(self, session_id: str, settled: SettledState, verdict: Optional[Verdict] = None) -> Dict:
        """Append a settled state (and verdict, once known) to the session"""
        session = self._session(session_id)
        entry = {
            "timestamp": datetime.now().isoformat(),
            "settled": settled.model_dump(mode="json"),
            "verdict": verdict.model_dump(mode="json") if verdict else None,
        }
        session["history"].append(entry)
        session["current_url"] = settled.observed_url or session["current_url"]
        session["updated_at"] = entry["timestamp"]
        return entry

    def attach_verdict(self, session_id: str, verdict: Verdict):
        history = self._session(session_id)["history"]
        if not history:
            raise LookupError(f"No settled scenario recorded for session {session_id}")
        history[-1]["verdict"] = verdict.model_dump(mode="json")

    def get_history(self, session_id: str, limit: Optional[int] = None) -> List[Dict]:
        history = self._session(session_id)["history"]
        if limit:
            return history[-limit:]
        return history

    def failures(self) -> List[Dict]:
        """Entries whose verdict did not pass, across all sessions"""
        return [
            entry
            for session in self.sessions.values()
            for entry in session["history"]
            if entry["verdict"] is not None and not entry["verdict"]["passed"]
        ]

    def clear_session(self, session_id: str):
        self.sessions.pop(session_id, None)

    def list_sessions(self) -> Dict[str, Dict]:
        return {
            session_id: {
                "id": session["id"],
                "created_at": session["created_at"],
                "updated_at": session["updated_at"],
                "scenario_count": len(session["history"]),
                "current_url": session["current_url"]
            }
            for session_id, session in self.sessions.items()
        }

    def export_session(self, session_id: str) -> str:
        """Export a session's records as JSON for a test report"""
        return json.dumps(self._session(session_id), indent=2, ensure_ascii=False)
