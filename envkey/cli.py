"""envkey.cli

Command line front end for the vault engine.

- argparse-based.
- Every envkey error becomes ``error: <message>`` on stderr and exit status 1.
"""
import sys
import logging
import argparse
from collections.abc import Callable
from pathlib import Path
from typing import Optional

from .config import EnvkeyConfig
from .exceptions import EnvkeyError
from .policy import DEFAULT_ENVIRONMENT
from .storage import ENVKEY_FILENAME
from .vault import DocumentStatus, Vault
from .version import __version__

logger = logging.getLogger("envkey.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="envkey",
        description="Secrets without servers.",
    )
    parser.add_argument("--version", action="version", version=f"envkey {__version__}")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log debug details to stderr (never secret values).",
    )

    sub = parser.add_subparsers(dest="command")

    p_init = sub.add_parser("init", help="Generate a local identity and initialize .envkey")
    p_init.add_argument(
        "--force",
        action="store_true",
        help="Force identity regeneration (blocked if .envkey already exists).",
    )

    p_set = sub.add_parser("set", help="Encrypt and store a secret key/value pair")
    p_set.add_argument("-e", "--env", default=DEFAULT_ENVIRONMENT)
    p_set.add_argument("key")
    p_set.add_argument("value")

    p_get = sub.add_parser("get", help="Decrypt and print a secret value")
    p_get.add_argument("-e", "--env", default=DEFAULT_ENVIRONMENT)
    p_get.add_argument("key")

    p_ls = sub.add_parser("ls", help="List secret keys and metadata")
    p_ls.add_argument("-e", "--env", default=DEFAULT_ENVIRONMENT)

    return parser


def _cmd_init(vault: Vault, args: argparse.Namespace) -> int:
    result = vault.init(force=args.force)
    verb = "Generated" if result.identity_generated else "Using existing"
    print(f"✓ {verb} identity key at {result.identity.path}")
    if result.document_status is DocumentStatus.CREATED:
        print(f"✓ Created {ENVKEY_FILENAME} with you as admin")
    elif result.document_status is DocumentStatus.MEMBER_ADDED:
        print(f"✓ Added {result.username} as admin in existing {ENVKEY_FILENAME}")
    else:
        print(f"✓ {ENVKEY_FILENAME} already exists")
    print(f"✓ Public key: {result.identity.recipient}")
    return 0


def _cmd_set(vault: Vault, args: argparse.Namespace) -> int:
    result = vault.set(args.key, args.value, env=args.env)
    plural = "" if result.recipients == 1 else "s"
    print(
        f"✓ Encrypted {result.key} for {result.recipients} "
        f"recipient{plural} ({result.environment})"
    )
    return 0


def _cmd_get(vault: Vault, args: argparse.Namespace) -> int:
    print(vault.get(args.key, env=args.env))
    return 0


def _cmd_ls(vault: Vault, args: argparse.Namespace) -> int:
    header = ("ENVIRONMENT", "KEY", "SET_BY", "MODIFIED")
    rows = [
        (e.environment, e.key, e.set_by, e.modified.strftime("%Y-%m-%dT%H:%M:%SZ"))
        for e in vault.list_entries(env=args.env)
    ]
    widths = [max(len(r[i]) for r in [header, *rows]) for i in range(3)]
    for row in [header, *rows]:
        cells = [cell.ljust(w) for cell, w in zip(row, widths)]
        print("  ".join([*cells, row[3]]))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 2

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    dispatch: dict[str, Callable[[Vault, argparse.Namespace], int]] = {
        "init": _cmd_init,
        "set": _cmd_set,
        "get": _cmd_get,
        "ls": _cmd_ls,
    }

    try:
        config = EnvkeyConfig.from_env()
        vault = Vault(Path.cwd(), config)
        return int(dispatch[args.command](vault, args))
    except EnvkeyError as err:
        print(f"error: {err}", file=sys.stderr)
        return 1
    except OSError as err:
        logger.debug("I/O failure", exc_info=True)
        print(f"error: {err}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
