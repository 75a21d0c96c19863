import io
import os
import tempfile
import unittest
from unittest.mock import patch

from botocore.exceptions import ClientError

from ec2_fakes import FakeEC2, instance, reservation, reserved_instance
from exporter.main import main

NO_LOGGING = ["--logging-config", "/nonexistent/logging.yaml"]


def make_ec2(errors=None):
    return FakeEC2(
        pages={
            "describe_instances": [{"Reservations": [
                reservation([instance("i-1", tags={"Team": "infra", "Env": "prod"})]),
            ]}],
            "describe_spot_instance_requests": [{"SpotInstanceRequests": []}],
        },
        reserved=[reserved_instance()],
        errors=errors,
    )


def client_error(operation):
    return ClientError({"Error": {"Code": "AuthFailure", "Message": "denied"}}, operation)


@patch.dict(os.environ, {}, clear=True)
@patch("exporter.main.MetricSink.serve")
@patch("exporter.main.make_ec2_client")
class TestMain(unittest.TestCase):
    def setUp(self):
        self.temp_file = tempfile.NamedTemporaryFile(mode='w', delete=False, suffix='.yaml')
        self.temp_file.write("region: us-east-1\ninstance_tags: Env\nduration: 1m\n")
        self.temp_file.close()

    def tearDown(self):
        if os.path.exists(self.temp_file.name):
            os.unlink(self.temp_file.name)

    def test_once_writes_exposition(self, mock_client, mock_serve):
        mock_client.return_value = make_ec2()
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            main(["--once", "--config", self.temp_file.name] + NO_LOGGING)

        text = out.getvalue()
        self.assertIn("aws_ec2_instances_count{", text)
        self.assertIn('aws_tag_env="prod"', text)
        self.assertIn('reserved_instance_id="ri-1"', text)
        mock_serve.assert_not_called()

    def test_flags_override_runtime_config(self, mock_client, mock_serve):
        mock_client.return_value = make_ec2()
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            main([
                "--once",
                "--config", self.temp_file.name,
                "--region", "ap-south-1",
                "--instance-tags", "Team",
            ] + NO_LOGGING)

        self.assertEqual(mock_client.call_args.args[0], "ap-south-1")
        text = out.getvalue()
        self.assertIn('aws_tag_team="infra"', text)
        self.assertNotIn("aws_tag_env", text)

    def test_runtime_config_used_without_flags(self, mock_client, mock_serve):
        mock_client.return_value = make_ec2()
        with patch("sys.stdout", new_callable=io.StringIO):
            main(["--once", "--config", self.temp_file.name] + NO_LOGGING)
        self.assertEqual(mock_client.call_args.args[0], "us-east-1")

    def test_once_exits_on_instance_failure(self, mock_client, mock_serve):
        mock_client.return_value = make_ec2(errors={"describe_instances": client_error("DescribeInstances")})
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            with self.assertRaises(SystemExit) as ctx:
                main(["--once", "--config", self.temp_file.name] + NO_LOGGING)
        self.assertEqual(ctx.exception.code, 1)
        self.assertEqual(out.getvalue(), "")

    def test_once_exits_on_background_failure(self, mock_client, mock_serve):
        mock_client.return_value = make_ec2(
            errors={"describe_reserved_instances": client_error("DescribeReservedInstances")},
        )
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            with self.assertRaises(SystemExit) as ctx:
                main(["--once", "--config", self.temp_file.name] + NO_LOGGING)
        self.assertEqual(ctx.exception.code, 1)
        self.assertEqual(out.getvalue(), "")

    def test_loop_exits_on_instance_failure(self, mock_client, mock_serve):
        mock_client.return_value = make_ec2(errors={"describe_instances": client_error("DescribeInstances")})
        with self.assertRaises(SystemExit) as ctx:
            main(["--config", self.temp_file.name, "--addr", "127.0.0.1:0"] + NO_LOGGING)
        self.assertEqual(ctx.exception.code, 1)
        mock_serve.assert_called_once_with("127.0.0.1", 0)

    def test_loop_exits_on_background_failure(self, mock_client, mock_serve):
        mock_client.return_value = make_ec2(
            errors={"describe_spot_instance_requests": client_error("DescribeSpotInstanceRequests")},
        )
        with self.assertRaises(SystemExit) as ctx:
            main(["--config", self.temp_file.name, "--duration", "60s"] + NO_LOGGING)
        self.assertEqual(ctx.exception.code, 1)
        mock_serve.assert_called_once_with("0.0.0.0", 9190)

    def test_invalid_listen_address(self, mock_client, mock_serve):
        with self.assertRaises(SystemExit) as ctx:
            main(["--config", self.temp_file.name, "--addr", "nowhere"] + NO_LOGGING)
        self.assertNotEqual(ctx.exception.code, 0)
        mock_client.assert_not_called()


if __name__ == '__main__':
    unittest.main()
