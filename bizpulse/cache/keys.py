"""
Deterministic cache keys for reports.

Keys are laid out as `<prefix>:<tenant>:<report>:<digest>` so all of a
tenant's entries, or one report's, can be invalidated with a glob pattern.
"""

import hashlib
import json
from typing import Any, Optional


def fingerprint(
    prefix: str,
    report: str,
    tenant_id: str,
    branch_id: Optional[str] = None,
    window: Optional[dict] = None,
    interval: Optional[str] = None,
    **extra: Any,
) -> str:
    params = {
        "report": report,
        "tenant_id": tenant_id,
        "branch_id": branch_id,
        "window": window,
        "interval": interval,
        "extra": extra,
    }
    encoded = json.dumps(params, sort_keys=True, default=str)
    digest = hashlib.sha256(encoded.encode("utf-8")).hexdigest()[:16]
    return f"{prefix}:{tenant_id}:{report}:{digest}"


def tenant_pattern(prefix: str, tenant_id: str, report: Optional[str] = None) -> str:
    return f"{prefix}:{tenant_id}:{report or '*'}:*"
