"""
InfluxDB line protocol encoder.

    <measurement>[,<tag>=<value>...] <field>=<value>[,<field>=<value>...] [<timestamp ns>]

Escaping rules:
- measurement: comma and space
- tag keys, tag values, field keys: comma, equals sign and space
- string field values: double-quoted, with ``"`` and ``\\`` escaped
- numeric and boolean field values: unquoted
"""

import math
from typing import Mapping, Optional, Union

from ..models import MetricsRecord

FieldValue = Union[bool, int, float, str]

NANOS_PER_MILLI = 1_000_000


def escape_measurement(name: str) -> str:
    return name.replace(",", "\\,").replace(" ", "\\ ")


def escape_key(key: str) -> str:
    """Escape a tag key, tag value or field key."""
    return key.replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def format_field_value(value: FieldValue) -> str:
    # bool first: it is a subclass of int
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueError(f"Line protocol cannot carry non-finite value {value}")
        return repr(value)
    if isinstance(value, str):
        return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
    raise TypeError(f"Unsupported field value type: {type(value).__name__}")


def encode_line(
    measurement: str,
    tags: Mapping[str, str],
    fields: Mapping[str, FieldValue],
    timestamp_ms: Optional[int] = None,
) -> str:
    """
    Encode a single point.

    Args:
        measurement: Measurement name
        tags: Tag set; empty values are dropped since the protocol forbids them
        fields: Field set (at least one field required)
        timestamp_ms: Optional timestamp in milliseconds

    Returns:
        One line of line protocol, without trailing newline
    """
    if not measurement:
        raise ValueError("Measurement name must not be empty")
    if not fields:
        raise ValueError("A point needs at least one field")

    tag_part = "".join(
        f",{escape_key(str(k))}={escape_key(str(v))}"
        for k, v in sorted(tags.items())
        if v != ""
    )
    field_part = ",".join(
        f"{escape_key(str(k))}={format_field_value(v)}" for k, v in fields.items()
    )

    line = f"{escape_measurement(measurement)}{tag_part} {field_part}"
    if timestamp_ms is not None:
        line += f" {int(timestamp_ms) * NANOS_PER_MILLI}"
    return line


def encode_record(record: MetricsRecord, measurement: str, tag_name: str = "repo") -> str:
    """Encode a run's metrics as one line, tagged with the repository."""
    return encode_line(
        measurement,
        {tag_name: record.repo},
        record.as_fields(),
        record.timestamp_ms,
    )
