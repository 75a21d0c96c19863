# exporter/instances.py
import logging

from exporter.labels import TagSchema
from exporter.metrics import ExporterMetrics
from exporter.utils import paginate
from storage.label_cache import LabelCache

log = logging.getLogger("exporter.instances")

# instance-state-code 16 == running
RUNNING_FILTER = [{"Name": "instance-state-code", "Values": ["16"]}]


class InstanceFetcher:
    """
    Counts running instances and rebuilds the label cache.

    Each fetch is a full snapshot: the count family is cleared and the cache
    is replaced wholesale, so terminated instances drop out.
    """

    def __init__(self, ec2, region: str, metrics: ExporterMetrics, schema: TagSchema, cache: LabelCache):
        self.ec2 = ec2
        self.region = region
        self.metrics = metrics
        self.schema = schema
        self.cache = cache

    def fetch(self):
        reservations = paginate(
            self.ec2,
            "describe_instances",
            self.region,
            "Reservations",
            Filters=RUNNING_FILTER,
        )

        sink = self.metrics.sink
        sink.reset_family(ExporterMetrics.INSTANCES_COUNT)

        cache_labels = {}
        vpc_ids = set()
        count = 0
        for r in reservations:
            groups = sorted(g["GroupName"] for g in r.get("Groups", []))
            owner_id = r.get("OwnerId", "")
            base = {
                "groups": ",".join(groups),
                "owner_id": owner_id,
                "requester_id": r.get("RequesterId") or owner_id,
            }
            for ins in r.get("Instances", []):
                tag_labels = self.schema.labels_for(ins.get("Tags"))
                labels = dict(base)
                labels["az"] = ins.get("Placement", {}).get("AvailabilityZone", "")
                labels["instance_type"] = ins.get("InstanceType", "")
                labels["lifecycle"] = ins.get("InstanceLifecycle") or "normal"
                labels.update(tag_labels)

                instance_id = ins["InstanceId"]
                cache_labels[instance_id] = tag_labels
                if ins.get("VpcId"):
                    vpc_ids.add(instance_id)

                sink.inc_series(ExporterMetrics.INSTANCES_COUNT, labels)
                count += 1

        self.cache.replace(cache_labels, vpc_ids)
        log.info("Counted %d running instances in %s (%d in a VPC)", count, self.region, len(vpc_ids))
        return {"instances": count, "vpc_instances": len(vpc_ids)}
