import unittest

from botocore.exceptions import EndpointConnectionError

from ec2_fakes import FakeEC2, reserved_instance
from exporter.labels import TagSchema
from exporter.metrics import ExporterMetrics, MetricSink
from exporter.reservations import ReservationFetcher, hourly_charge
from exporter.utils import FetchError

LABELS = {
    "az": "eu-west-1a",
    "reserved_instance_id": "ri-1",
    "tenancy": "default",
    "instance_type": "m5.large",
    "offer_type": "No Upfront",
    "product": "Linux/UNIX",
}


class TestHourlyCharge(unittest.TestCase):
    def test_no_charges(self):
        self.assertEqual(hourly_charge(None), 0.0)
        self.assertEqual(hourly_charge([]), 0.0)

    def test_ignores_other_frequencies(self):
        self.assertEqual(hourly_charge([{"Frequency": "Monthly", "Amount": 30.0}]), 0.0)

    def test_last_hourly_charge_wins(self):
        charges = [
            {"Frequency": "Hourly", "Amount": 0.01},
            {"Frequency": "Monthly", "Amount": 30.0},
            {"Frequency": "Hourly", "Amount": 0.02},
        ]
        self.assertEqual(hourly_charge(charges), 0.02)


class TestReservationFetcher(unittest.TestCase):
    def setUp(self):
        self.sink = MetricSink()
        self.metrics = ExporterMetrics(self.sink, TagSchema.from_taglist("Team"))

    def value(self, name, labels=LABELS):
        return self.sink.registry.get_sample_value(name, labels)

    def test_publishes_reservation_series(self):
        ec2 = FakeEC2(reserved=[reserved_instance()])
        summary = ReservationFetcher(ec2, "eu-west-1", self.metrics).fetch()

        self.assertEqual(summary, {"reservations": 1})
        self.assertEqual(ec2.calls, [("describe_reserved_instances", {"Filters": [{"Name": "state", "Values": ["active"]}]})])
        self.assertEqual(self.value(ExporterMetrics.RI_USAGE_PRICE), 0.0)
        self.assertEqual(self.value(ExporterMetrics.RI_FIXED_PRICE), 120.5)
        self.assertEqual(self.value(ExporterMetrics.RI_HOURLY_PRICE), 0.034)
        self.assertEqual(self.value(ExporterMetrics.RI_INSTANCE_COUNT), 2.0)
        self.assertEqual(self.value(ExporterMetrics.RI_START_TIME), 1767225600.0)
        self.assertEqual(self.value(ExporterMetrics.RI_END_TIME), 1798761600.0)

    def test_hourly_price_zero_without_charge(self):
        ec2 = FakeEC2(reserved=[reserved_instance(charges=[])])
        ReservationFetcher(ec2, "eu-west-1", self.metrics).fetch()
        self.assertEqual(self.value(ExporterMetrics.RI_HOURLY_PRICE), 0.0)

    def test_series_are_not_reset(self):
        ReservationFetcher(FakeEC2(reserved=[reserved_instance()]), "eu-west-1", self.metrics).fetch()
        ReservationFetcher(FakeEC2(reserved=[reserved_instance(ri_id="ri-2")]), "eu-west-1", self.metrics).fetch()

        self.assertEqual(self.value(ExporterMetrics.RI_INSTANCE_COUNT), 2.0)
        self.assertEqual(
            self.value(ExporterMetrics.RI_INSTANCE_COUNT, dict(LABELS, reserved_instance_id="ri-2")),
            2.0,
        )

    def test_api_error_raises(self):
        ec2 = FakeEC2(errors={"describe_reserved_instances": EndpointConnectionError(endpoint_url="https://ec2")})
        with self.assertRaises(FetchError):
            ReservationFetcher(ec2, "eu-west-1", self.metrics).fetch()


if __name__ == '__main__':
    unittest.main()
