"""Turn outcomes reported as structured ``blogify.telemetry`` log records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

LOG = logging.getLogger("blogify.telemetry")


@dataclass
class TelemetryEvent:
    name: str
    chat_id: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)


def record_event(event: TelemetryEvent) -> None:
    LOG.info(
        "%s chat=%s %s",
        event.name,
        event.chat_id,
        event.properties,
        extra={"telemetry_name": event.name, "telemetry_chat_id": event.chat_id},
    )
