# exporter/config_loader.py
import math
import os
import re
import yaml
from pathlib import Path

RUNTIME_CONFIG_PATH = Path("config/runtime.yaml")

DEFAULTS = {
    "region": "eu-west-1",
    "instance_tags": "",
    "duration": "4m",
    "addr": ":9190",
    "api_timeout": None,
    "profile": None,
}

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}


def parse_duration(value) -> float:
    """
    Seconds in a duration like "90s", "4m" or "1h30m". A bare number is
    taken as seconds.
    """
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        try:
            seconds = float(text)
        except ValueError:
            pos = 0
            seconds = 0.0
            for m in _DURATION_RE.finditer(text):
                if m.start() != pos:
                    break
                seconds += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
                pos = m.end()
            if pos != len(text) or not text:
                raise ValueError(f"invalid duration: {value!r}")
    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError(f"duration must be positive: {value!r}")
    return seconds


def parse_listen_address(addr: str):
    """Split "host:port"; an empty host (":9190") listens on all interfaces."""
    host, sep, port = str(addr).rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid listen address: {addr!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, int(port)


def load_runtime_config(path=None):
    """
    Loads exporter configuration.
    Priority:
      1) Environment variables
      2) config/runtime.yaml (if present)
      3) Built-in defaults
    Command line flags are applied on top by the caller.
    """
    cfg = {}

    config_path = Path(path) if path else RUNTIME_CONFIG_PATH
    if config_path.exists():
        with open(config_path) as f:
            cfg = yaml.safe_load(f) or {}
    elif path:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    def pick(key, *env_vars):
        for var in env_vars:
            if os.getenv(var):
                return os.getenv(var)
        if cfg.get(key) is not None:
            return cfg[key]
        return DEFAULTS[key]

    instance_tags = pick("instance_tags", "EXPORTER_INSTANCE_TAGS")
    if isinstance(instance_tags, (list, tuple)):
        instance_tags = ",".join(str(t) for t in instance_tags)

    api_timeout = pick("api_timeout", "EXPORTER_API_TIMEOUT")

    return {
        "region": pick("region", "EXPORTER_REGION", "AWS_REGION"),
        "instance_tags": instance_tags,
        "duration": parse_duration(pick("duration", "EXPORTER_DURATION")),
        "addr": pick("addr", "EXPORTER_ADDR"),
        "api_timeout": parse_duration(api_timeout) if api_timeout is not None else None,
        "profile": pick("profile", "AWS_PROFILE"),
        "raw": cfg,
    }
