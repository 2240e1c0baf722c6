from __future__ import annotations

import logging
import re
import ssl
from collections.abc import Iterable
from typing import Optional, Protocol

from ldap3 import NONE, SUBTREE, Connection, Server, Tls
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars
from tqdm import tqdm

from .config import Config
from .errors import DirectoryError

logger = logging.getLogger(__name__)

NUMERIC_RUN_RE = re.compile(r"\d+")
ACCOUNT_FILTER = "(sAMAccountName={})"
MAIL_ATTRIBUTE = "mail"


class DirectoryLookup(Protocol):
    def lookup(self, identifier: str) -> Optional[str]: ...


def parse_id(token: str) -> str:
    """Reduce a token such as ``alen10000001`` to its numeric id.

    Returns an empty string unless the token holds exactly one run of digits.
    """
    runs = NUMERIC_RUN_RE.findall(token or "")
    return runs[0] if len(runs) == 1 else ""


def resolve_addresses(
    tokens: Iterable[str], lookup: DirectoryLookup, progress: bool = False
) -> list[str]:
    """Expand directory ids into addresses; keep tokens that already are addresses.

    Args:
        tokens: Recipient tokens in input order.
        lookup: Directory used to resolve numeric ids.
        progress: Show a progress bar on stderr.

    Returns:
        Addresses in token order. Tokens without a single numeric run and ids
        with no unique directory entry are skipped.

    Raises:
        DirectoryError: On the first lookup failure; earlier results are
            discarded.
    """
    addresses: list[str] = []
    tokens = list(tokens)
    for token in tqdm(tokens, desc="Resolving recipients", disable=not progress):
        if "@" in token:
            addresses.append(token)
            continue

        identifier = parse_id(token)
        if not identifier:
            logger.debug(f"Skipping token without a single numeric id: {token!r}")
            continue

        address = lookup.lookup(identifier)
        if address:
            logger.info(f"Resolved {token!r} to {address}")
            addresses.append(address)
        else:
            logger.warning(f"No unique directory entry for {token!r} (id {identifier})")
    return addresses


class LdapDirectory:
    """Look up account mail addresses in an LDAP directory.

    The connection is opened on first use and upgraded with StartTLS before
    binding. Use as a context manager, or call ``close()`` when done.
    """

    def __init__(self, config: Config):
        self._config = config
        self._conn: Optional[Connection] = None

    def __enter__(self) -> "LdapDirectory":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _connect(self) -> Connection:
        if self._conn is not None:
            return self._conn

        cfg = self._config
        cfg.require("host", "base")
        tls = Tls(validate=ssl.CERT_REQUIRED if cfg.verify_tls else ssl.CERT_NONE)
        server = Server(
            cfg.host,
            port=cfg.port or None,
            get_info=NONE,
            tls=tls,
            connect_timeout=cfg.timeout,
        )
        conn = Connection(
            server,
            user=cfg.user or None,
            password=cfg.password or None,
            receive_timeout=cfg.timeout,
        )

        try:
            conn.open()
        except LDAPException as exc:
            raise DirectoryError(f"dial failed: {exc}") from exc
        try:
            if not conn.start_tls():
                raise DirectoryError(f"start failed: {conn.result}")
        except LDAPException as exc:
            raise DirectoryError(f"start failed: {exc}") from exc
        try:
            if not conn.bind():
                raise DirectoryError(f"bind failed: {conn.result}")
        except LDAPException as exc:
            raise DirectoryError(f"bind failed: {exc}") from exc

        logger.debug(f"Bound to directory {cfg.host}:{cfg.port} as {cfg.user}")
        self._conn = conn
        return conn

    def lookup(self, identifier: str) -> Optional[str]:
        """Return the mail address of the single account matching identifier."""
        conn = self._connect()
        search_filter = ACCOUNT_FILTER.format(escape_filter_chars(identifier))
        try:
            found = conn.search(
                self._config.base,
                search_filter,
                search_scope=SUBTREE,
                attributes=[MAIL_ATTRIBUTE],
            )
        except LDAPException as exc:
            raise DirectoryError(f"search failed: {exc}") from exc

        # An empty result set also returns False; only a non-success code is an error.
        if not found and (conn.result or {}).get("result", 0) != 0:
            raise DirectoryError(f"search failed: {conn.result.get('description')}")

        entries = conn.entries if found else []
        if len(entries) != 1:
            return None
        values = entries[0].entry_attributes_as_dict.get(MAIL_ATTRIBUTE) or []
        return str(values[0]) if values else None

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.unbind()
        except LDAPException as exc:
            logger.debug(f"Ignoring unbind failure: {exc}")
        finally:
            self._conn = None
