# Copyright 2025 Softwell S.r.l.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
reauth-asgi CLI entry point.

Usage:
    reauth-asgi check reauth-asgi.toml               # Validate config, list rules
    reauth-asgi serve reauth-asgi.toml               # Run protected app
    reauth-asgi serve reauth-asgi.toml --port 9000   # Override port

Without a config argument, the file is searched in the standard locations
(see ``reauth_asgi.config.find_config_file``).
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import find_config_file, load_config, rules_from_config
from .backends import BackendRegistry
from .exceptions import ConfigError

USAGE = """\
Usage: reauth-asgi <command> [config] [options]

Commands:
  check             Build the rules and print them
  serve             Run the protected application

Options:
  --host HOST       Server host (serve, default: from config or 127.0.0.1)
  --port PORT       Server port (serve, default: from config or 8000)
  --reload          Enable auto-reload (serve)
  --version, -v     Show version
  --help, -h        Show this help"""


def _config_path(value: str | None) -> Path:
    if value:
        return Path(value)
    found = find_config_file()
    if found is None:
        raise ConfigError("No configuration file found")
    return found


def cmd_check(argv: list[str]) -> int:
    """Load the configuration and build every rule, without serving."""
    parser = argparse.ArgumentParser(prog="reauth-asgi check")
    parser.add_argument("config", nargs="?", help="Config file path")
    args = parser.parse_args(argv)

    try:
        path = _config_path(args.config)
        config = load_config(path)
        rules = rules_from_config(config, BackendRegistry.with_builtins(), str(path))
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    from .server import describe

    print(f"{path}: {len(rules)} rule(s)")
    for line in describe(rules):
        print(f"  {line}")
    return 0


def cmd_serve(argv: list[str]) -> int:
    """Run the protected application."""
    parser = argparse.ArgumentParser(prog="reauth-asgi serve")
    parser.add_argument("config", nargs="?", help="Config file path")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args(argv)

    from .server import run

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s"
    )
    try:
        path = _config_path(args.config)
        print("reauth-asgi starting...", flush=True)
        print(f"Config: {path}", flush=True)
        if args.reload:
            print("Mode: development (auto-reload enabled)", flush=True)
        run(path, host=args.host, port=args.port, reload=args.reload)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutdown.")
    return 0


COMMANDS = {"check": cmd_check, "serve": cmd_serve}


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    if argv is None:
        argv = sys.argv[1:]

    if not argv or argv[0] in ("--help", "-h"):
        print(USAGE)
        return 0

    if argv[0] in ("--version", "-v"):
        from . import __version__

        print(f"reauth-asgi {__version__}")
        return 0

    command = COMMANDS.get(argv[0])
    if command is None:
        print(f"Error: unknown subcommand '{argv[0]}'", file=sys.stderr)
        return 1
    return command(argv[1:])


if __name__ == "__main__":
    sys.exit(main())
