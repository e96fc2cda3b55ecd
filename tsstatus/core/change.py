from __future__ import annotations

import hashlib
import json

from tsstatus.core.snapshot import OccupancySnapshot


def canonical(snapshot: OccupancySnapshot) -> str:
    """
    Stable JSON form of a snapshot.

    Channel order and empty-name order do not matter; member order does.
    """
    payload = {
        "groups": {
            str(cid): {"name": g.name, "members": list(g.members)}
            for cid, g in snapshot.groups.items()
        },
        "empty": sorted(snapshot.empty_group_names),
    }
    return json.dumps(payload, sort_keys=True, ensure_ascii=False, separators=(",", ":"))


def fingerprint(snapshot: OccupancySnapshot) -> str:
    return hashlib.sha256(canonical(snapshot).encode("utf-8")).hexdigest()


def render_warranted(snapshot: OccupancySnapshot, last_fingerprint: str | None, force: bool = False) -> tuple[bool, str]:
    fp = fingerprint(snapshot)
    return (force or fp != last_fingerprint), fp
