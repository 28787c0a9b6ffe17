import json
import os
import time
from typing import Any, Dict, Optional


class TraceStore:
    """Append-only JSONL record of rewrite rounds."""

    def __init__(self, path: Optional[str] = None):
        self.path = path or os.getenv(
            "NEOCALC_TRACE_PATH",
            os.path.join(os.path.dirname(__file__), "resources", "traces.jsonl"),
        )

    def append(self, record: Dict[str, Any]) -> None:
        record = dict(record)
        record["timestamp"] = time.time()
        os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")

    def read(self, limit: Optional[int] = None) -> list:
        if not os.path.exists(self.path):
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            rows = [json.loads(line) for line in f if line.strip()]
        return rows[-limit:] if limit else rows
