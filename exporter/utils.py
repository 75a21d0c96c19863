# exporter/utils.py
from botocore.exceptions import BotoCoreError, ClientError


class FetchError(RuntimeError):
    """An EC2 API call failed; the current poll cannot be trusted."""

    def __init__(self, operation, region, cause):
        super().__init__(f"{operation} failed in {region}: {cause}")
        self.operation = operation
        self.region = region
        self.cause = cause


def call_ec2(operation, region, fn):
    """Run fn(), turning botocore failures into FetchError."""
    try:
        return fn()
    except (ClientError, BotoCoreError) as e:
        raise FetchError(operation, region, e) from e


def paginate(client, operation, region, result_key, **params):
    """Collect result_key across every page of a paginated EC2 call."""

    def _all_pages():
        items = []
        for page in client.get_paginator(operation).paginate(**params):
            items.extend(page.get(result_key, []))
        return items

    return call_ec2(operation, region, _all_pages)


def parse_price(value) -> float:
    """
    Parse an EC2 decimal price string ("0.0231").

    EC2 reports prices as strings and may omit them. Anything missing or
    unparsable counts as 0.0; this is lossy on purpose.
    """
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
