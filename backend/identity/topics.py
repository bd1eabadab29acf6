"""
Controller topic parsing.

Row controllers publish under one of two layouts:

    <prefix>/data/row<N>/dataList      (M5Stack row controllers)
    <prefix>/<N>/sensor/readings       (simulator / generic publishers)

The prefix is the system's routing key; N is the row number.
"""

import re

from core.errors import ValidationError

TOPIC_PATTERNS = (
    re.compile(r"^(?P<prefix>.+)/data/row(?P<row>\d+)/dataList$"),
    re.compile(r"^(?P<prefix>.+)/(?P<row>\d+)/sensor/readings$"),
)


def parse_topic(topic: str) -> tuple[str, int]:
    """Split a controller topic into (routing_key, row_number)."""
    cleaned = (topic or "").strip().strip("/")
    for pattern in TOPIC_PATTERNS:
        match = pattern.match(cleaned)
        if match:
            return match.group("prefix"), int(match.group("row"))
    raise ValidationError(f"Unrecognized controller topic: {topic!r}", detail={"topic": topic})


def build_topic(routing_key: str, row_number: int) -> str:
    """Canonical publish topic for a row controller."""
    return f"{routing_key}/data/row{row_number}/dataList"
