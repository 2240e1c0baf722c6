from __future__ import annotations

import logging
import re

from email_validator import EmailNotValidError, validate_email

from .errors import AddressError

logger = logging.getLogger(__name__)

MAX_EMAIL_LENGTH = 320

# Syntax only: no DNS, and accept the forms an RFC 5322 mailbox parser does.
VALIDATION_OPTIONS = {
    "check_deliverability": False,
    "globally_deliverable": False,
    "allow_quoted_local": True,
    "allow_domain_literal": True,
    "allow_display_name": True,
}

TRAILING_DOT_ERRORS = (
    "trailing dot in atom",
    "missing '@' or angle-addr",
    "period immediately before the @-sign",
)

# Raised for localhost, test, invalid and other reserved names even when
# global deliverability is off.
SPECIAL_USE_ERROR = "special-use or reserved name"

ANGLE_ADDR_RE = re.compile(r"^(?P<display>.*?)\s*<(?P<addr>[^<>]*)>\s*$", re.DOTALL)
WHITESPACE_RE = re.compile(r"\s")


def extract_address(text: str) -> str:
    """Return the bare address from ``Name <addr>`` text, or the trimmed text."""
    m = ANGLE_ADDR_RE.match(text.strip())
    return m.group("addr").strip() if m else text.strip()


def has_trailing_dot_pattern(address: str) -> bool:
    """Return True when the local part ends in a dot right before the @-sign.

    Display-name forms are unwrapped first, so ``Bob <bob.@example.com>``
    matches as well.
    """
    addr = extract_address(address or "")
    if addr.count("@") != 1:
        return False
    local, domain = addr.split("@")
    if not local.endswith(".") or not domain or domain.startswith("."):
        return False
    head = local[:-1]
    return bool(head) and not head.startswith(".")


def _has_valid_structure(address: str) -> bool:
    """Apply the rules no address may break, trailing dot or not."""
    if not address or WHITESPACE_RE.search(address):
        return False
    if address.count("@") != 1:
        return False
    local, domain = address.split("@")
    if not local or not domain:
        return False
    if local.startswith(".") or ".." in local:
        return False
    if domain.startswith(".") or domain.endswith(".") or ".." in domain:
        return False
    return True


def is_valid_trailing_dot_address(address: str) -> bool:
    """Return True for a bare address accepted by the trailing-dot carve-out."""
    return has_trailing_dot_pattern(address) and _has_valid_structure(address)


def is_trailing_dot_error(error: Exception | None) -> bool:
    """Return True when a parser error was caused by a trailing-dot local part."""
    if error is None:
        return False
    message = str(error).lower()
    return any(phrase.lower() in message for phrase in TRAILING_DOT_ERRORS)


def parse_address_with_trailing_dot(text: str) -> str:
    """Extract the address from ``Display Name <local.@domain>`` text.

    Args:
        text: Raw address text, with or without a display name.

    Returns:
        The trimmed address between the final angle brackets, or the whole
        trimmed text when there are no brackets.

    Raises:
        AddressError: When nothing usable can be extracted.
    """
    trimmed = (text or "").strip()
    if not trimmed:
        raise AddressError("empty address")

    m = ANGLE_ADDR_RE.match(trimmed)
    if m:
        address = m.group("addr").strip()
        if not address:
            raise AddressError(f"no address inside angle brackets: {text!r}")
    elif "<" in trimmed or ">" in trimmed:
        raise AddressError(f"unbalanced angle brackets: {text!r}")
    else:
        address = trimmed

    if not is_valid_trailing_dot_address(address):
        raise AddressError(f"not a trailing-dot address: {text!r}")
    return address


def is_valid_email(email: str | None) -> bool:
    """Return True when an address has valid RFC 5322-style syntax.

    Addresses whose local part ends in a dot (``alice.@example.com``) are
    accepted even though the underlying parser rejects them.
    """
    candidate = (email or "").strip()
    if not candidate or len(candidate) > MAX_EMAIL_LENGTH:
        return False
    if "\r" in candidate or "\n" in candidate:
        return False

    try:
        validate_email(candidate, **VALIDATION_OPTIONS)
        return True
    except EmailNotValidError as exc:
        if SPECIAL_USE_ERROR in str(exc):
            return _has_valid_structure(extract_address(candidate))
        if not is_trailing_dot_error(exc):
            logger.debug(f"Rejected address {candidate!r}: {exc}")
            return False

    try:
        parse_address_with_trailing_dot(candidate)
    except AddressError as exc:
        logger.debug(f"Rejected trailing-dot address {candidate!r}: {exc}")
        return False
    return True
