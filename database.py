# ─────────────────────────────────────────────────────────────────
# database.py - JSON File Storage
#
# Owns the on-disk format. The registry and the session store only
# hand plain dicts in and out; nothing else knows the data lives in
# JSON files.
#
# Layout of devices.json:
#   {
#     "esp-1": {
#       "id": "esp-1", "name": "Office PC", "type": "desktop",
#       "token": "...", "online": true, "lastSeenTs": "...",
#       "powerState": "on", "shutdown": false, "wakeup": false,
#       "shutdownTasks": [{"id", "hour", "minute", "active", "createdAt"}],
#       "wakeupTasks": [...]
#     }
#   }
# ─────────────────────────────────────────────────────────────────

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable

from models import Device

logger = logging.getLogger("database")


class JsonStore:
    """Load / save one JSON object to one file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Dict[str, Any]:
        # First run: create the file with an empty mapping
        if not self.path.exists():
            self.save({})
            return {}

        with self.path.open("r", encoding="utf-8") as fh:
            return json.load(fh)

    def save(self, data: Dict[str, Any]) -> None:
        """Write via a temp file + rename so a crash never leaves half a file behind."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, self.path)


def devices_to_snapshot(devices: Iterable[Device]) -> Dict[str, Any]:
    return {
        device.id: device.model_dump(mode="json", by_alias=True)
        for device in devices
    }


def devices_from_snapshot(snapshot: Dict[str, Any]) -> Dict[str, Device]:
    devices = {}
    for device_id, record in snapshot.items():
        record = dict(record)
        record.setdefault("id", device_id)
        record.setdefault("name", device_id)
        devices[device_id] = Device.model_validate(record)
    logger.info(f"Loaded {len(devices)} device(s) from snapshot")
    return devices
