from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

_FIXTURE_DIR = Path(__file__).resolve().parent.parent / "fixtures"


def load_json(filename: str, **substitutions: str) -> List[Dict[str, Any]]:
    """Load a packaged fixture, filling ``{name}`` placeholders from ``substitutions``."""
    file_path = _FIXTURE_DIR / filename
    with file_path.open(encoding="utf-8") as f:
        text = f.read()
    for key, value in substitutions.items():
        # Escape so the substituted value cannot break the JSON document
        text = text.replace("{%s}" % key, json.dumps(value)[1:-1])
    return json.loads(text)


def load_sample_properties(location: str) -> List[Dict[str, Any]]:
    return load_json("sample_properties.json", location=location)
