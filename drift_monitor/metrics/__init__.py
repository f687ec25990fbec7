"""
Metrics Module
Encodes and ships the metrics of a drift monitor run.
"""

from .dispatcher import MetricsDispatcher
from .line_protocol import (
    encode_line,
    encode_record,
    escape_key,
    escape_measurement,
    format_field_value,
)
from .sinks import CloudWatchSink, ConsoleSink, InfluxSink

__all__ = [
    # Dispatch
    'MetricsDispatcher',

    # Sinks
    'ConsoleSink',
    'CloudWatchSink',
    'InfluxSink',

    # Line protocol
    'encode_line',
    'encode_record',
    'escape_key',
    'escape_measurement',
    'format_field_value',
]
