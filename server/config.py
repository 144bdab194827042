"""Server configuration: defaults < config.toml < command line."""

import os
import sys
import logging
import tomllib

logger = logging.getLogger(__name__)

DEFAULTS = {
    "host": "127.0.0.1",
    "port": 3000,
    "trick_tick_seconds": 1.0,
    "round_delay_seconds": 3.0,
    "game_delay_seconds": 2.0,
    "reset_delay_seconds": 5.0,
    "chat_history_size": 50,
    "outbox_size": 256,
    "log_level": "INFO",
}

# TOML dotted path -> attribute name
CONFIG_MAP = {
    "server.host": "host",
    "server.port": "port",
    "timing.trick_tick_seconds": "trick_tick_seconds",
    "timing.round_delay_seconds": "round_delay_seconds",
    "timing.game_delay_seconds": "game_delay_seconds",
    "timing.reset_delay_seconds": "reset_delay_seconds",
    "chat.history_size": "chat_history_size",
    "transport.outbox_size": "outbox_size",
    "logging.level": "log_level",
}


def load_toml(config_path):
    """Read the mapped keys out of a TOML file. Missing file gives {}."""
    if not config_path or not os.path.exists(config_path):
        return {}
    with open(config_path, "rb") as f:
        raw = tomllib.load(f)

    values = {}
    for toml_path, attr_name in CONFIG_MAP.items():
        val = raw
        for part in toml_path.split("."):
            if isinstance(val, dict) and part in val:
                val = val[part]
            else:
                val = None
                break
        if val is not None:
            values[attr_name] = val
    logger.info("Loaded config from %s", config_path)
    return values


def apply_config(args, argv=None):
    """Apply TOML config with 3-tier precedence: defaults < TOML < CLI.

    argparse defaults are left as None so that unset options fall through
    to TOML and then to DEFAULTS.
    """
    cli_explicit = set()
    for arg in (sys.argv[1:] if argv is None else argv):
        if arg.startswith("--"):
            cli_explicit.add(arg.lstrip("-").split("=", 1)[0].replace("-", "_"))

    toml_values = load_toml(getattr(args, "config", None))

    for attr_name, default_val in DEFAULTS.items():
        if attr_name in cli_explicit and getattr(args, attr_name, None) is not None:
            continue
        if attr_name in toml_values:
            setattr(args, attr_name, toml_values[attr_name])
        elif getattr(args, attr_name, None) is None:
            setattr(args, attr_name, default_val)
    return args


def session_config(args):
    """The subset of settings the table session needs."""
    return {
        "trick_tick_seconds": float(args.trick_tick_seconds),
        "round_delay_seconds": float(args.round_delay_seconds),
        "game_delay_seconds": float(args.game_delay_seconds),
        "reset_delay_seconds": float(args.reset_delay_seconds),
        "chat_history_size": int(args.chat_history_size),
        "outbox_size": int(args.outbox_size),
    }
