# exporter/spots.py
import logging
from datetime import datetime, timezone

from exporter.labels import TagSchema
from exporter.metrics import ExporterMetrics
from exporter.utils import paginate, parse_price
from storage.label_cache import LabelCache

log = logging.getLogger("exporter.spots")

ACTIVE_FILTER = [{"Name": "state", "Values": ["active"]}]

# spot requests report the plain product; the price history keeps VPC separate
VPC_PRODUCT_SUFFIX = " (Amazon VPC)"


class SpotFetcher:
    """
    Publishes active spot requests and the current market price for the
    products they use.

    Requests inherit the tag labels of their instance from the label cache.
    Request families are cleared each fetch, then accumulated: requests with
    identical labels add up.
    """

    def __init__(self, ec2, region: str, metrics: ExporterMetrics, schema: TagSchema, cache: LabelCache):
        self.ec2 = ec2
        self.region = region
        self.metrics = metrics
        self.schema = schema
        self.cache = cache

    def fetch(self):
        with self.cache.read() as view:
            requests = paginate(
                self.ec2,
                "describe_spot_instance_requests",
                self.region,
                "SpotInstanceRequests",
                Filters=ACTIVE_FILTER,
            )
            products = self._publish_requests(requests, view)

        points = self._publish_prices(products)
        log.info(
            "Published %d active spot requests and %d spot prices in %s",
            len(requests),
            points,
            self.region,
        )
        return {"spot_requests": len(requests), "spot_prices": points}

    def request_labels(self, r, view) -> dict:
        instance_id = r.get("InstanceId")
        labels = self.schema.empty_labels()
        cached = view.labels_for(instance_id)
        if cached is not None:
            labels.update(cached)

        product = r.get("ProductDescription", "")
        if view.is_vpc(instance_id):
            product += VPC_PRODUCT_SUFFIX

        spec = r.get("LaunchSpecification") or {}
        profile = spec.get("IamInstanceProfile") or {}
        labels.update(
            {
                "az": r.get("LaunchedAvailabilityZone", ""),
                "product": product,
                "persistence": r.get("Type") or "one-time",
                "launch_group": r.get("LaunchGroup") or "none",
                "instance_type": spec.get("InstanceType") or "unknown",
                "instance_profile": profile.get("Name") or "unknown",
            }
        )
        return labels

    def _publish_requests(self, requests, view):
        sink = self.metrics.sink
        sink.reset_family(ExporterMetrics.SPOT_REQUEST_COUNT)
        sink.reset_family(ExporterMetrics.SPOT_BLOCK_PRICE)
        sink.reset_family(ExporterMetrics.SPOT_BID_PRICE)

        products = set()
        for r in requests:
            labels = self.request_labels(r, view)
            products.add(labels["product"])
            log.debug("Spot request %s -> %s", r.get("SpotInstanceRequestId"), labels)

            sink.add_series(ExporterMetrics.SPOT_BLOCK_PRICE, labels, parse_price(r.get("ActualBlockHourlyPrice")))
            sink.add_series(ExporterMetrics.SPOT_BID_PRICE, labels, parse_price(r.get("SpotPrice")))
            sink.inc_series(ExporterMetrics.SPOT_REQUEST_COUNT, labels)
        return products

    def _publish_prices(self, products):
        if not products:
            return 0

        now = datetime.now(timezone.utc)
        history = paginate(
            self.ec2,
            "describe_spot_price_history",
            self.region,
            "SpotPriceHistory",
            StartTime=now,
            EndTime=now,
            Filters=[{"Name": "product-description", "Values": sorted(products)}],
        )

        sink = self.metrics.sink
        points = 0
        for sp in history:
            if sp.get("SpotPrice") is None:
                continue
            labels = {
                "az": sp.get("AvailabilityZone", ""),
                "product": sp.get("ProductDescription", ""),
                "instance_type": sp.get("InstanceType", ""),
            }
            sink.set_series(ExporterMetrics.SPOT_PRICE, labels, parse_price(sp["SpotPrice"]))
            points += 1
        return points
