"""Configuration precedence: defaults < TOML < command line."""
import argparse

from server.config import DEFAULTS, apply_config, load_toml, session_config
from server.run import parse_args

TOML = """
[server]
port = 4000
host = "0.0.0.0"

[timing]
round_delay_seconds = 0.5

[unknown]
ignored = true
"""


def test_defaults_without_config_file(tmp_path):
    args = parse_args(["--config", str(tmp_path / "missing.toml")])
    for key, value in DEFAULTS.items():
        assert getattr(args, key) == value


def test_toml_overrides_defaults_and_cli_overrides_toml(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(TOML, encoding="utf-8")

    args = parse_args(["--config", str(path), "--port", "9000"])
    assert args.port == 9000
    assert args.host == "0.0.0.0"
    assert args.round_delay_seconds == 0.5
    assert args.trick_tick_seconds == DEFAULTS["trick_tick_seconds"]


def test_load_toml_maps_dotted_keys(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(TOML, encoding="utf-8")
    assert load_toml(str(path)) == {"port": 4000, "host": "0.0.0.0", "round_delay_seconds": 0.5}
    assert load_toml(None) == {}


def test_session_config_subset():
    args = apply_config(argparse.Namespace(config=None), argv=[])
    config = session_config(args)
    assert config["reset_delay_seconds"] == 5.0
    assert config["outbox_size"] == 256
    assert "port" not in config
