# exporter/metrics.py
"""Prometheus metric families exposed by the exporter."""
import logging
from typing import Dict, Mapping, Sequence

from prometheus_client import CollectorRegistry, Gauge, generate_latest, start_http_server

from exporter.labels import TagSchema

log = logging.getLogger("exporter.metrics")

RI_LABELS = (
    "az",
    "reserved_instance_id",
    "tenancy",
    "instance_type",
    "offer_type",
    "product",
)

INSTANCE_LABELS = (
    "groups",
    "owner_id",
    "requester_id",
    "az",
    "instance_type",
    "lifecycle",
)

SPOT_REQUEST_LABELS = (
    "az",
    "product",
    "persistence",
    "instance_type",
    "launch_group",
    "instance_profile",
)

SPOT_PRICE_LABELS = (
    "az",
    "product",
    "instance_type",
)


class MetricSink:
    """
    Named gauge families in a private registry.

    Label names are fixed when a family is registered; updates pass a label
    mapping that must cover exactly those names.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        # a dedicated registry keeps python/process collectors off /metrics
        self.registry = registry or CollectorRegistry()
        self.families: Dict[str, Gauge] = {}

    def register_family(self, name: str, help: str, label_names: Sequence[str]) -> Gauge:
        if name in self.families:
            raise ValueError(f"metric family {name} already registered")
        gauge = Gauge(name, help, list(label_names), registry=self.registry)
        self.families[name] = gauge
        log.debug("Registered metric family %s with labels %s", name, list(label_names))
        return gauge

    def reset_family(self, name: str):
        self.families[name].clear()

    def set_series(self, name: str, labels: Mapping[str, str], value: float):
        self.families[name].labels(**labels).set(value)

    def add_series(self, name: str, labels: Mapping[str, str], delta: float):
        self.families[name].labels(**labels).inc(delta)

    def inc_series(self, name: str, labels: Mapping[str, str]):
        self.add_series(name, labels, 1)

    def serve(self, host: str, port: int):
        start_http_server(port, addr=host, registry=self.registry)
        log.info("Serving metrics on %s:%s/metrics", host, port)

    def exposition(self) -> bytes:
        return generate_latest(self.registry)


class ExporterMetrics:
    """Registers every family up front; tag labels cannot be added later."""

    INSTANCES_COUNT = "aws_ec2_instances_count"

    RI_USAGE_PRICE = "aws_ec2_reserved_instances_usage_price_dollars"
    RI_FIXED_PRICE = "aws_ec2_reserved_instances_fixed_price_dollars"
    RI_HOURLY_PRICE = "aws_ec2_reserved_instances_price_per_hour_dollars"
    RI_INSTANCE_COUNT = "aws_ec2_reserved_instances_count"
    RI_START_TIME = "aws_ec2_reserved_instances_start_time"
    RI_END_TIME = "aws_ec2_reserved_instances_end_time"

    SPOT_REQUEST_COUNT = "aws_ec2_spot_request_count"
    SPOT_BID_PRICE = "aws_ec2_spot_request_bid_price_hourly_dollars"
    SPOT_BLOCK_PRICE = "aws_ec2_spot_request_actual_block_price_hourly_dollars"

    SPOT_PRICE = "aws_ec2_spot_price_dollars"

    def __init__(self, sink: MetricSink, schema: TagSchema):
        self.sink = sink
        self.schema = schema
        tag_labels = schema.label_names

        sink.register_family(
            self.INSTANCES_COUNT,
            "Number of running instances",
            INSTANCE_LABELS + tag_labels,
        )

        sink.register_family(self.RI_USAGE_PRICE, "cost of reserved instance usage in dollars", RI_LABELS)
        sink.register_family(self.RI_FIXED_PRICE, "total hourly fixed cost of reserved instance in dollars", RI_LABELS)
        sink.register_family(self.RI_HOURLY_PRICE, "total hourly cost of reserved instance in dollars", RI_LABELS)
        sink.register_family(self.RI_INSTANCE_COUNT, "Number of reserved instances in this reservation", RI_LABELS)
        sink.register_family(self.RI_START_TIME, "Start time of this reservation", RI_LABELS)
        sink.register_family(self.RI_END_TIME, "End time of this reservation", RI_LABELS)

        sink.register_family(
            self.SPOT_REQUEST_COUNT,
            "Number of active/fulfilled spot requests",
            SPOT_REQUEST_LABELS + tag_labels,
        )
        sink.register_family(
            self.SPOT_BID_PRICE,
            "cost of spot instances hourly usage in dollars",
            SPOT_REQUEST_LABELS + tag_labels,
        )
        sink.register_family(
            self.SPOT_BLOCK_PRICE,
            "fixed hourly cost of limited duration spot instances in dollars",
            SPOT_REQUEST_LABELS + tag_labels,
        )

        sink.register_family(
            self.SPOT_PRICE,
            "Current market price of a spot instance in dollars",
            SPOT_PRICE_LABELS,
        )
