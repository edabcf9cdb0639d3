from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from pathlib import Path


def _jsonable(obj):
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if isinstance(obj, tuple):
        return list(obj)
    raise TypeError(f"{type(obj).__name__} is not JSON serializable")


class NDJSONWriter:
    """Append-only newline-delimited JSON log, one timestamped record per line."""

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self.path = path
        self._fp = path.open("a", encoding="utf-8")

    def write(self, obj: dict | object) -> None:
        if is_dataclass(obj):
            obj = asdict(obj)
        obj = {"ts": datetime.now(timezone.utc).isoformat(), **obj}
        self._fp.write(json.dumps(obj, ensure_ascii=False, default=_jsonable) + "\n")
        self._fp.flush()

    def close(self) -> None:
        if not self._fp.closed:
            self._fp.close()

    def __enter__(self) -> "NDJSONWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
