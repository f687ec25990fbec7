"""Metrics sinks: console report, CloudWatch namespace and InfluxDB."""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import requests
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import SinkError
from ..models import Metric, MetricsRecord
from .line_protocol import encode_record

logger = logging.getLogger(__name__)

CLOUDWATCH_DIMENSION = "GitHubRepo"
CLOUDWATCH_BATCH_SIZE = 20


class ConsoleSink:
    """Human-readable report written to the log; always enabled."""

    name = "console"

    def send(self, record: MetricsRecord) -> None:
        logger.info("=" * 60)
        logger.info(f"📊 Terraform drift report for {record.repo}")
        logger.info("=" * 60)
        for metric in Metric:
            if metric in record.values:
                unit = record.unit_of(metric).value
                suffix = "" if unit in ("None", "Count") else f" {unit.lower()}"
                logger.info(f"   {metric.value:<22} {record.values[metric]}{suffix}")
        logger.info("=" * 60)


class CloudWatchSink:
    """One data point per metric in the configured namespace."""

    name = "cloudwatch"

    def __init__(self, client, namespace: str):
        self.client = client
        self.namespace = namespace

    def build_metric_data(self, record: MetricsRecord) -> List[dict]:
        if record.timestamp_ms is not None:
            timestamp = datetime.fromtimestamp(record.timestamp_ms / 1000, tz=timezone.utc)
        else:
            timestamp = datetime.now(timezone.utc)

        return [
            {
                "MetricName": metric.value,
                "Dimensions": [{"Name": CLOUDWATCH_DIMENSION, "Value": record.repo}],
                "Timestamp": timestamp,
                "Value": float(record.values[metric]),
                "Unit": record.unit_of(metric).value,
            }
            for metric in Metric
            if metric in record.values
        ]

    def send(self, record: MetricsRecord) -> None:
        data = self.build_metric_data(record)
        try:
            for start in range(0, len(data), CLOUDWATCH_BATCH_SIZE):
                self.client.put_metric_data(
                    Namespace=self.namespace,
                    MetricData=data[start:start + CLOUDWATCH_BATCH_SIZE],
                )
        except (BotoCoreError, ClientError) as e:
            raise SinkError(f"CloudWatch put_metric_data to {self.namespace} failed: {e}") from e
        logger.info(f"✅ Shipped {len(data)} metrics to CloudWatch namespace {self.namespace}")


def parse_basic_auth(value: Optional[str]) -> Optional[Tuple[str, str]]:
    """Split ``user:password`` into a requests auth tuple."""
    if not value:
        return None
    user, sep, password = value.partition(":")
    if not sep or not user:
        raise SinkError("influx_auth must have the form 'user:password'")
    return user, password


class InfluxSink:
    """Writes one line-protocol point per run to ``<url>/write?db=<db>``."""

    name = "influxdb"

    def __init__(
        self,
        session: requests.Session,
        url: str,
        db: Optional[str],
        measurement: str,
        auth: Optional[str] = None,
    ):
        self.session = session
        self.url = url
        self.db = db
        self.measurement = measurement
        self.auth = auth

    def send(self, record: MetricsRecord) -> None:
        if not self.db:
            raise SinkError("InfluxDB URL is set but no database is configured")
        if not self.url.startswith(("http://", "https://")):
            raise SinkError(f"InfluxDB URL must be HTTP/HTTPS: {self.url}")

        line = encode_record(record, self.measurement)
        write_url = f"{self.url.rstrip('/')}/write"
        try:
            response = self.session.post(
                write_url,
                params={"db": self.db},
                data=line.encode("utf-8"),
                auth=parse_basic_auth(self.auth),
            )
        except requests.exceptions.RequestException as e:
            raise SinkError(f"InfluxDB write to {write_url} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise SinkError(
                f"InfluxDB write to {write_url} returned HTTP {response.status_code}: "
                f"{response.text.strip()[:200]}"
            )
        logger.info(f"✅ Shipped metrics to InfluxDB {self.db}/{self.measurement}")
