"""Launch the King Chu Bridge server.

Usage:
    python -m server.run                        # uses config.toml if present
    python -m server.run --config my.toml --port 8000
"""

import argparse
import logging

import uvicorn

from server.config import apply_config, session_config


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="King Chu Bridge Server")
    parser.add_argument("--config", type=str, default="config.toml",
                        help="TOML config file (skipped if missing)")
    parser.add_argument("--host", type=str, default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--trick-tick-seconds", type=float, default=None,
                        help="Length of one trick-winner countdown tick")
    parser.add_argument("--round-delay-seconds", type=float, default=None,
                        help="Pause between a finished round and the next deal")
    parser.add_argument("--game-delay-seconds", type=float, default=None,
                        help="Pause between the last round and the final results")
    parser.add_argument("--reset-delay-seconds", type=float, default=None,
                        help="Pause before a finished or aborted table is reset")
    parser.add_argument("--chat-history-size", type=int, default=None)
    parser.add_argument("--outbox-size", type=int, default=None)
    parser.add_argument("--log-level", type=str, default=None)
    args = parser.parse_args(argv)
    return apply_config(args, argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=str(args.log_level).upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    from server.app import create_app
    app = create_app(session_config(args))
    logging.getLogger(__name__).info("King Chu Bridge server on http://%s:%d", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
