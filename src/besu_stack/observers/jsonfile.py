# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/observers/jsonfile.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from .events import BaseEvent


class JsonFileObserver:
    """Appends one JSON object per event (JSONL) next to the run log."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def for_log(cls, log_path: Path) -> "JsonFileObserver":
        return cls(Path(log_path).with_suffix(".events.jsonl"))

    def notify(self, event: BaseEvent) -> None:
        record = {"type": event.__class__.__name__, **event.dict()}
        with self.path.open("a") as f:
            f.write(json.dumps(record, sort_keys=True, default=str) + "\n")

    def read(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        return [json.loads(line) for line in self.path.read_text().splitlines() if line.strip()]
