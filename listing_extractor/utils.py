# utils.py
from __future__ import annotations
import json
import random
import time
from pathlib import Path
from typing import Any, Iterable, List

# -------- JSON helpers --------

def write_json(path: Path, obj: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, ensure_ascii=False)

def read_json(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)

# -------- timing --------

def jitter_sleep(lo: float, hi: float) -> None:
    """Sleep random uniform between lo and hi seconds."""
    time.sleep(random.uniform(lo, hi))

# -------- lists --------

def unique(items: Iterable[Any]) -> List[Any]:
    """De-duplicate, keeping first-seen order; blanks dropped."""
    seen = set()
    out: List[Any] = []
    for it in items:
        if it is None:
            continue
        if isinstance(it, str):
            it = it.strip()
            if not it:
                continue
        if it in seen:
            continue
        seen.add(it)
        out.append(it)
    return out
