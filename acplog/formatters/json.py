"""JSON formatter — canonical command output to stdout."""
from __future__ import annotations

import json
import sys
from datetime import datetime
from typing import IO


def _default_serializer(obj):
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    return str(obj)


def format_json(data, stream: IO[str] | None = None) -> None:
    out = stream or sys.stdout
    json.dump(data, out, indent=2, ensure_ascii=False, default=_default_serializer)
    out.write("\n")
