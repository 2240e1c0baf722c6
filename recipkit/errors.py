from __future__ import annotations


class RecipkitError(Exception):
    """Base error for recipient parsing and mail sending failures."""


class ConfigError(RecipkitError):
    """Config file is missing, unreadable or incomplete."""


class InputError(RecipkitError):
    """Command-line input could not be turned into a usable value."""


class AddressError(RecipkitError):
    """An address could not be extracted from its text."""


class DirectoryError(RecipkitError):
    """Directory lookup failed at the connection or protocol level."""


class SendError(RecipkitError):
    """Mail transport failed to deliver a message."""
