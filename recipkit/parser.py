"""
Recipient parser CLI:
- splits a recipient list into To and Cc
- resolves bare account names (alen10000001) through the LDAP directory
- drops invalid addresses and keeps those matching the domain filter
- prints the result back in recipient list form
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional, TextIO

from dotenv import load_dotenv

from .config import VERSION, Config, default_config_path, load_config
from .directory import DirectoryLookup, LdapDirectory, resolve_addresses
from .errors import InputError, RecipkitError
from .recipients import format_recipients, merge, normalize, parse_filter, validate_recipients

load_dotenv()

logger = logging.getLogger(__name__)


def _resolve(
    cc: list[str], to: list[str], lookup: DirectoryLookup, progress: bool
) -> tuple[list[str], list[str]]:
    """Resolve both lists, then re-apply dedupe and To precedence."""
    resolved_cc = resolve_addresses(cc, lookup, progress=progress)
    resolved_to = resolve_addresses(to, lookup, progress=progress)
    return merge(resolved_cc, resolved_to)


def run(
    config: Config,
    recipients: str,
    filter_text: str = "",
    lookup: Optional[DirectoryLookup] = None,
    out: Optional[TextIO] = None,
    progress: bool = False,
) -> None:
    """Parse, resolve, validate and print one recipient list.

    Args:
        config: Loaded configuration.
        recipients: Raw recipient list.
        filter_text: Domain-suffix allow-list; empty keeps every address.
        lookup: Directory to resolve account names; LDAP from config when None.
        out: Stream receiving the formatted recipients.
        progress: Show a lookup progress bar on stderr.

    Raises:
        RecipkitError: On invalid input, config or directory failure.
    """
    out = out or sys.stdout
    suffixes = parse_filter(filter_text, config.sep)

    cc, to = normalize(recipients, config.sep)
    if not cc and not to:
        raise InputError("Invalid recipients")

    if lookup is not None:
        cc, to = _resolve(cc, to, lookup, progress)
    else:
        with LdapDirectory(config) as directory:
            cc, to = _resolve(cc, to, directory, progress)

    cc, to, validation = validate_recipients(cc, to)
    if not validation.valid_count:
        raise InputError("No valid recipients")

    out.write(format_recipients(cc, to, suffixes))


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for recipient parsing."""
    log_level = (os.environ.get("LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    parser = argparse.ArgumentParser(
        prog="recipient-parser", description="Recipient parser"
    )
    parser.add_argument(
        "-c",
        "--config",
        default=default_config_path(),
        help="Config file, format: .json",
    )
    parser.add_argument(
        "-f",
        "--filter",
        default="",
        help="Filter list, format: @example1.com,@example2.com",
    )
    parser.add_argument(
        "-r",
        "--recipients",
        required=True,
        help="Recipients list, format: alen,cc:bob@example.com",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        run(config, args.recipients, args.filter, progress=sys.stderr.isatty())
    except RecipkitError as exc:
        logger.error(str(exc))
        raise SystemExit(1)


if __name__ == "__main__":
    main()
