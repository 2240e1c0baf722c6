"""
Mail sender CLI:
- recipient list parsing with To/Cc split and address validation
- body text or body file, attachments, HTML or plain-text content
- --dry-run prints a JSON validation report instead of sending
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional, TextIO

from dotenv import load_dotenv

from .config import VERSION, Config, default_config_path, load_config
from .emailer import MailTransport, SmtpTransport, probe_recipients
from .errors import InputError, RecipkitError, SendError
from .models import MailMessage
from .recipients import parse_recipients_with_validation

load_dotenv()

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "HTML": "text/html",
    "PLAIN_TEXT": "text/plain",
}
DEFAULT_CONTENT_TYPE = "PLAIN_TEXT"


def parse_content_type(name: str) -> str:
    """Map a CLI content type name to its MIME type."""
    try:
        return CONTENT_TYPES[name]
    except KeyError:
        raise InputError(f"Invalid content type: {name!r}") from None


def check_file(name: str) -> Path:
    """Return the path of a regular file, trying the working directory second.

    Args:
        name: File name or path as given on the command line.

    Returns:
        Path to the file.

    Raises:
        InputError: When no regular file exists under either location.
    """
    path = Path(name).expanduser()
    if not path.exists():
        path = Path.cwd() / name
    if not path.is_file():
        raise InputError(f"Not a regular file: {name!r}")
    return path


def parse_body(data: str | None) -> str:
    """Return the file contents when data names a file, else data itself."""
    if not data:
        return ""
    try:
        path = check_file(data)
    except InputError:
        return data
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise InputError(f"Cannot read body file {path}: {exc}") from exc


def parse_attachment(raw: str | None, separator: str) -> list[Path]:
    """Split an attachment list and check that every entry is a file."""
    if not raw:
        return []
    return [check_file(name.strip()) for name in raw.split(separator) if name.strip()]


def run(
    config: Config,
    recipients: str,
    body: str = "",
    attachment: str = "",
    content_type: str = DEFAULT_CONTENT_TYPE,
    header: str = "",
    title: str = "",
    dry_run: bool = False,
    identify_invalid: bool = False,
    transport: Optional[MailTransport] = None,
    out: Optional[TextIO] = None,
) -> None:
    """Validate recipients and send one message, or report in dry-run mode.

    Raises:
        RecipkitError: On any input, config or send failure.
    """
    out = out or sys.stdout
    cc, to, validation = parse_recipients_with_validation(recipients, config.sep)

    if dry_run:
        out.write(validation.to_json() + "\n")
        if not validation.valid_count:
            raise InputError("No valid recipients")
        return

    if not cc and not to:
        raise InputError("No valid recipients")

    config.require("host", "sender")
    message = MailMessage(
        sender=config.sender,
        display_name=header or None,
        to=to,
        cc=cc,
        subject=title or "",
        body=parse_body(body),
        content_type=parse_content_type(content_type),
        attachments=parse_attachment(attachment, config.sep),
    )
    logger.debug(f"Prepared message:\n{message}")

    transport = transport or SmtpTransport(config)
    try:
        transport.send(message)
    except SendError:
        if identify_invalid:
            suspects = probe_recipients(config, message.recipients())
            if suspects:
                logger.error(f"Recipients likely rejected: {', '.join(suspects)}")
            else:
                logger.error("Could not single out a rejected recipient.")
        raise

    logger.info(f"Sent mail to {len(to) + len(cc)} recipient(s).")


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for sending one mail."""
    log_level = (os.environ.get("LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    parser = argparse.ArgumentParser(prog="mail-sender", description="Mail sender")
    parser.add_argument(
        "-a",
        "--attachment",
        default="",
        help="Attachment files, format: attach1,attach2,...",
    )
    parser.add_argument("-b", "--body", default="", help="Body text or file")
    parser.add_argument(
        "-c",
        "--config",
        default=default_config_path(),
        help="Config file, format: .json",
    )
    parser.add_argument(
        "-e",
        "--content_type",
        default=DEFAULT_CONTENT_TYPE,
        choices=sorted(CONTENT_TYPES),
        help="Content type, format: HTML or PLAIN_TEXT (default)",
    )
    parser.add_argument("-r", "--header", default="", help="Header text (From display name)")
    parser.add_argument(
        "-p",
        "--recipients",
        required=True,
        help="Recipients list, format: alen@example.com,cc:bob@example.com",
    )
    parser.add_argument("-t", "--title", default="", help="Title text")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate recipients and print a JSON report without sending",
    )
    parser.add_argument(
        "--identify-invalid",
        action="store_true",
        help="After a failed send, probe each recipient to guess which was rejected",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        run(
            config,
            args.recipients,
            body=args.body,
            attachment=args.attachment,
            content_type=args.content_type,
            header=args.header,
            title=args.title,
            dry_run=args.dry_run,
            identify_invalid=args.identify_invalid,
        )
    except RecipkitError as exc:
        logger.error(str(exc))
        raise SystemExit(1)


if __name__ == "__main__":
    main()
