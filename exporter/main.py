# exporter/main.py
import argparse
import logging
import logging.config
import sys

import boto3
import yaml
from botocore.config import Config

from exporter.config_loader import load_runtime_config, parse_duration, parse_listen_address
from exporter.instances import InstanceFetcher
from exporter.labels import TagSchema
from exporter.metrics import ExporterMetrics, MetricSink
from exporter.reservations import ReservationFetcher
from exporter.scheduler import Scheduler
from exporter.spots import SpotFetcher
from storage.label_cache import LabelCache


def load_logging_config(path="config/logging.yaml"):
    try:
        with open(path) as f:
            cfg = yaml.safe_load(f)
        logging.config.dictConfig(cfg)
    except (OSError, ValueError, TypeError, yaml.YAMLError):
        logging.basicConfig(
            level=logging.INFO,
            format='{"time":"%(asctime)s","level":"%(levelname)s","name":"%(name)s","msg":"%(message)s"}',
        )


def make_ec2_client(region, profile=None, api_timeout=None):
    session = boto3.Session(profile_name=profile, region_name=region) if profile else boto3.Session(region_name=region)
    config = None
    if api_timeout:
        # one attempt per poll; a timed out call fails the cycle
        config = Config(
            connect_timeout=api_timeout,
            read_timeout=api_timeout,
            retries={"mode": "standard", "max_attempts": 1},
        )
    return session.client("ec2", region_name=region, config=config)


def build_scheduler(ec2, region, taglist, interval, sink=None):
    """Wire fetchers, metrics and the label cache around one EC2 client."""
    schema = TagSchema.from_taglist(taglist)
    sink = sink or MetricSink()
    metrics = ExporterMetrics(sink, schema)
    cache = LabelCache()

    scheduler = Scheduler(
        instances=InstanceFetcher(ec2, region, metrics, schema, cache),
        reservations=ReservationFetcher(ec2, region, metrics),
        spots=SpotFetcher(ec2, region, metrics, schema, cache),
        interval=interval,
    )
    return scheduler, sink


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Export EC2 instance, reservation and spot spend as Prometheus metrics.")
    parser.add_argument("--config", help="Runtime config YAML (default config/runtime.yaml if present)")
    parser.add_argument("--logging-config", default="config/logging.yaml", help="Logging dictConfig YAML")
    parser.add_argument("--region", help="the region to query (default eu-west-1)")
    parser.add_argument("--instance-tags", help="comma separated list of tag keys to use as metric labels")
    parser.add_argument("--duration", help="How often to query the API, e.g. 4m or 240 (default 4m)")
    parser.add_argument("--addr", help="address to listen on (default :9190)")
    parser.add_argument("--api-timeout", help="Per-call EC2 API timeout, e.g. 30s (default: botocore defaults)")
    parser.add_argument("--profile", help="Optional AWS CLI profile")
    parser.add_argument("--once", action="store_true", help="Run a single cycle, print the metrics and exit")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    load_logging_config(args.logging_config)
    log = logging.getLogger("exporter.main")

    cfg = load_runtime_config(args.config)
    region = args.region or cfg["region"]
    taglist = args.instance_tags if args.instance_tags is not None else cfg["instance_tags"]
    interval = parse_duration(args.duration) if args.duration else cfg["duration"]
    addr = args.addr or cfg["addr"]
    api_timeout = parse_duration(args.api_timeout) if args.api_timeout else cfg["api_timeout"]
    profile = args.profile or cfg["profile"]

    try:
        host, port = parse_listen_address(addr)
    except ValueError as e:
        raise SystemExit(str(e))

    ec2 = make_ec2_client(region, profile=profile, api_timeout=api_timeout)
    scheduler, sink = build_scheduler(ec2, region, taglist, interval)

    if args.once:
        try:
            for t in scheduler.run_once():
                t.join()
        except Exception as e:
            log.error("Poll failed: %s", e)
            raise SystemExit(1)
        if scheduler.error is not None:
            raise SystemExit(1)
        sys.stdout.write(sink.exposition().decode("utf-8"))
        return

    sink.serve(host, port)
    log.info(
        "Starting exporter | region=%s tags=%s interval=%ss addr=%s:%s",
        region,
        taglist or "-",
        interval,
        host,
        port,
    )

    try:
        scheduler.run_forever()
    except Exception as e:
        # exit rather than serve a half-updated cycle
        log.error("Poll failed, exiting: %s", e)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
