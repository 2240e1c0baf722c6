from __future__ import annotations

import logging
from collections.abc import Iterable

from .config import DEFAULT_SEPARATOR
from .email_utils import is_valid_email
from .models import ValidationResult

logger = logging.getLogger(__name__)

CC_PREFIX = "cc:"


def remove_duplicates(items: Iterable[str] | None) -> list[str]:
    """Drop repeated values, keeping the first occurrence of each."""
    return list(dict.fromkeys(items or []))


def collect_difference(items: Iterable[str], other: Iterable[str]) -> list[str]:
    """Return items not present in other, in their original order."""
    excluded = set(other)
    return [item for item in items if item not in excluded]


def _split(raw: str | None, separator: str) -> list[str]:
    if not raw:
        return []
    fields = [item.strip() for item in raw.split(separator or DEFAULT_SEPARATOR)]
    return [item for item in fields if item]


def normalize(spec: str | None, separator: str = DEFAULT_SEPARATOR) -> tuple[list[str], list[str]]:
    """Split a recipient list into Cc and To address lists.

    Fields starting with ``cc:`` go to Cc, everything else to To. Both
    lists are deduplicated, and an address present in To is removed from Cc.

    Args:
        spec: Raw recipient text such as ``"alen,cc:bob@example.com"``.
        separator: Field separator, comma by default.

    Returns:
        Tuple of (cc, to).
    """
    cc: list[str] = []
    to: list[str] = []

    for item in _split(spec, separator):
        if item.startswith(CC_PREFIX):
            address = item[len(CC_PREFIX):].strip()
            if address:
                cc.append(address)
        else:
            to.append(item)

    return merge(cc, to)


def merge(cc: Iterable[str], to: Iterable[str]) -> tuple[list[str], list[str]]:
    """Re-apply dedupe and To precedence to lists built from several sources."""
    to = remove_duplicates(to)
    cc = collect_difference(remove_duplicates(cc), to)
    return cc, to


def validate_recipients(cc: list[str], to: list[str]) -> tuple[list[str], list[str], ValidationResult]:
    """Drop invalid addresses from both lists and report what was dropped.

    Returns:
        Tuple of (valid cc, valid to, validation report).
    """
    result = ValidationResult()

    def keep_valid(addresses: list[str], kind: str) -> list[str]:
        kept: list[str] = []
        for address in addresses:
            if is_valid_email(address):
                kept.append(address)
            else:
                logger.warning(f"Dropping invalid {kind} address: {address!r}")
                result.invalid_addresses.append(address)
        return kept

    valid_to = keep_valid(to, "to")
    valid_cc = keep_valid(cc, "cc")

    result.to_addresses = list(valid_to)
    result.cc_addresses = list(valid_cc)
    result.valid_addresses = [*valid_to, *valid_cc]
    result.total_count = len(to) + len(cc)
    result.valid_count = len(result.valid_addresses)
    result.invalid_count = len(result.invalid_addresses)
    return valid_cc, valid_to, result


def parse_recipients_with_validation(
    spec: str | None, separator: str = DEFAULT_SEPARATOR
) -> tuple[list[str], list[str], ValidationResult]:
    """Normalize a recipient list, then keep only valid addresses."""
    cc, to = normalize(spec, separator)
    return validate_recipients(cc, to)


def parse_filter(raw: str | None, separator: str = DEFAULT_SEPARATOR) -> list[str]:
    """Split a domain-suffix allow-list such as ``@a.com,@b.com``."""
    return remove_duplicates(_split(raw, separator))


def filter_address(address: str, suffixes: list[str]) -> bool:
    """Return True when address ends with an allowed suffix.

    The first matching suffix decides, and an address equal to it is
    rejected. An empty allow-list accepts every address.
    """
    if not suffixes:
        return True
    for suffix in suffixes:
        if address.endswith(suffix):
            return address != suffix
    return False


def format_recipients(cc: list[str], to: list[str], suffixes: list[str] | None = None) -> str:
    """Render recipients back into list form: To first, then ``cc:`` entries."""
    suffixes = suffixes or []
    fields = [address for address in to if filter_address(address, suffixes)]
    fields.extend(
        f"{CC_PREFIX}{address}" for address in cc if filter_address(address, suffixes)
    )
    return ",".join(fields) + "\n"
