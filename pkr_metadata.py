#!/usr/bin/env python3
"""Sidecar metadata written next to data.bin.

The launcher reads ``app_metadata.toml`` to learn when the bundle was built
(used for update checks). One key: ``timestamp``, milliseconds since the epoch.
"""

from __future__ import annotations

import logging
import tomllib
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("pkr")

METADATA_NAME = "app_metadata.toml"
TIMESTAMP_KEY = "timestamp"


def timestamp_ms(now: Optional[datetime] = None) -> int:
    now = now or datetime.now()
    return int(now.timestamp() * 1000)


def write_app_metadata(output_folder: Path, now: Optional[datetime] = None) -> Path:
    output_path = Path(output_folder) / METADATA_NAME
    output_path.write_text(f"{TIMESTAMP_KEY} = {timestamp_ms(now)}\n", encoding="utf-8")
    logger.info(f"App metadata has been written to {output_path}")
    return output_path


def read_app_metadata(path: Path) -> Dict[str, Any]:
    with open(path, "rb") as f:
        data = tomllib.load(f)
    if not isinstance(data.get(TIMESTAMP_KEY), int):
        raise ValueError(f"{path}: missing integer '{TIMESTAMP_KEY}'")
    return data
