# exporter/reservations.py
import logging

from exporter.metrics import ExporterMetrics
from exporter.utils import call_ec2

log = logging.getLogger("exporter.reservations")

ACTIVE_FILTER = [{"Name": "state", "Values": ["active"]}]


def hourly_charge(recurring_charges) -> float:
    """Amount of the "Hourly" recurring charge; the last one wins, 0 if none."""
    amount = 0.0
    for c in recurring_charges or []:
        if c.get("Frequency") == "Hourly":
            amount = float(c.get("Amount") or 0.0)
    return amount


class ReservationFetcher:
    """
    Publishes price, size and term of active reserved instances.

    Series are overwritten but never cleared; an expired reservation keeps
    its last values until the process restarts.
    """

    def __init__(self, ec2, region: str, metrics: ExporterMetrics):
        self.ec2 = ec2
        self.region = region
        self.metrics = metrics

    def fetch(self):
        resp = call_ec2(
            "describe_reserved_instances",
            self.region,
            lambda: self.ec2.describe_reserved_instances(Filters=ACTIVE_FILTER),
        )
        reserved = resp.get("ReservedInstances", [])

        sink = self.metrics.sink
        for r in reserved:
            labels = {
                "az": r.get("AvailabilityZone", ""),
                "instance_type": r.get("InstanceType", ""),
                "tenancy": r.get("InstanceTenancy", ""),
                "offer_type": r.get("OfferingType", ""),
                "product": r.get("ProductDescription", ""),
                "reserved_instance_id": r.get("ReservedInstancesId", ""),
            }

            sink.set_series(ExporterMetrics.RI_USAGE_PRICE, labels, float(r.get("UsagePrice") or 0.0))
            sink.set_series(ExporterMetrics.RI_FIXED_PRICE, labels, float(r.get("FixedPrice") or 0.0))
            sink.set_series(ExporterMetrics.RI_HOURLY_PRICE, labels, hourly_charge(r.get("RecurringCharges")))
            sink.set_series(ExporterMetrics.RI_INSTANCE_COUNT, labels, float(r.get("InstanceCount") or 0))
            if r.get("Start") is not None:
                sink.set_series(ExporterMetrics.RI_START_TIME, labels, int(r["Start"].timestamp()))
            if r.get("End") is not None:
                sink.set_series(ExporterMetrics.RI_END_TIME, labels, int(r["End"].timestamp()))

        log.info("Published %d active reservations in %s", len(reserved), self.region)
        return {"reservations": len(reserved)}
