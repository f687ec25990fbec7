"""Fans a metrics record out to every enabled sink."""

import logging
from typing import Dict, List, Sequence

import requests

from ..config import Config
from ..errors import DispatchError, SinkError
from ..models import MetricsRecord
from .sinks import CloudWatchSink, ConsoleSink, InfluxSink

logger = logging.getLogger(__name__)


class MetricsDispatcher:
    """
    Ships a record to each sink independently.

    A failing sink never prevents the remaining sinks from being attempted;
    after all attempts, any failure is raised as one DispatchError.
    """

    def __init__(self, sinks: Sequence):
        self.sinks = list(sinks)

    @classmethod
    def from_config(
        cls,
        config: Config,
        session: requests.Session,
        cloudwatch_client=None,
    ) -> "MetricsDispatcher":
        sinks: List = [ConsoleSink()]
        if config.namespace_sink_enabled:
            if cloudwatch_client is None:
                raise ValueError("A CloudWatch client is required when metrics_namespace is set")
            sinks.append(CloudWatchSink(cloudwatch_client, config.metrics_namespace))
        if config.influx_sink_enabled:
            sinks.append(InfluxSink(
                session,
                url=config.influx_url,
                db=config.influx_db,
                measurement=config.influx_measurement,
                auth=config.influx_auth,
            ))
        return cls(sinks)

    @property
    def sink_names(self) -> List[str]:
        return [sink.name for sink in self.sinks]

    def ship(self, record: MetricsRecord) -> List[str]:
        """
        Send ``record`` to every sink.

        Returns:
            Names of the sinks that accepted the record

        Raises:
            DispatchError: If at least one sink failed
        """
        shipped: List[str] = []
        failures: Dict[str, Exception] = {}

        for sink in self.sinks:
            try:
                sink.send(record)
                shipped.append(sink.name)
            except SinkError as e:
                logger.error(f"❌ Sink {sink.name} failed: {e}")
                failures[sink.name] = e
            except Exception as e:
                logger.exception(f"❌ Sink {sink.name} failed unexpectedly: {e}")
                failures[sink.name] = e

        if failures:
            raise DispatchError(failures)
        return shipped
