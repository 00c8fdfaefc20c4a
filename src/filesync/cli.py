from __future__ import annotations

import argparse
import json
import logging

from .client import run_client
from .config import ENV_HELP, ClientConfig, ConfigError, ServerConfig
from .server import SyncServer

log = logging.getLogger(__name__)


def cmd_client(args: argparse.Namespace) -> int:
    config = ClientConfig.from_env(debug=args.debug)
    stats = run_client(config)

    payload = {"role": "client", **stats.as_dict()}
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0


def cmd_server(args: argparse.Namespace) -> int:
    config = ServerConfig.from_env(debug=args.debug)
    server = SyncServer(config)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        log.info("interrupted; shutting down")
    finally:
        server.shutdown()
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="filesync",
        description="Share one folder between a server and its clients over a framed TCP protocol.",
        epilog=ENV_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument(
            "--debug",
            action="store_true",
            help="fill every missing environment variable with its debug value",
        )

    client = sub.add_parser("client", help="connect to a server and sync a folder", epilog=ENV_HELP,
                            formatter_class=argparse.RawDescriptionHelpFormatter)
    add_common(client)
    client.add_argument("--json", action="store_true", help="print session stats as JSON")
    client.set_defaults(func=cmd_client)

    server = sub.add_parser("server", help="serve a folder to connecting clients", epilog=ENV_HELP,
                            formatter_class=argparse.RawDescriptionHelpFormatter)
    add_common(server)
    server.set_defaults(func=cmd_server)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    try:
        return int(args.func(args))
    except ConfigError as exc:
        log.error("%s", exc)
        return 1
    except OSError as exc:
        log.error("connection failed; error=%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
