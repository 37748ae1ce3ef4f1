from __future__ import annotations

import hashlib
import json
from typing import Any

from cachecrawler.sim.core import GameSession
from cachecrawler.sim.registry import CacheRegistry


def _digest(payload: dict[str, Any]) -> str:
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def registry_hash(registry: CacheRegistry) -> str:
    return _digest(registry.to_dict())


def session_hash(session: GameSession) -> str:
    payload = {
        "config": session.config.to_dict(),
        "registry": session.registry.to_dict(),
        "player": session.player.to_dict(),
        "geolocation_enabled": session.geolocation_enabled,
        "open_cache_hash": session.open_cache_hash,
        "window": [
            {"batch_id": batch.batch_id, "marker_count": len(batch.markers)}
            for batch in session.window.live_batches()
        ],
        "action_trace": session.get_action_trace(),
    }
    return _digest(payload)
