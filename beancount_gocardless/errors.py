"""Errors raised while importing GoCardless data into a ledger."""


class GoCardlessError(Exception):
    """Base class for all import errors."""


class MissingFieldError(GoCardlessError, ValueError):
    """A bank record lacks a field required to build a directive."""


class ParseError(GoCardlessError, ValueError):
    """A date, amount or ledger file could not be parsed."""


class NoReferenceDateError(GoCardlessError):
    """A balance assertion is needed but no date can be chosen for it."""


class NetworkError(GoCardlessError, RuntimeError):
    """The GoCardless API could not be reached or returned an error."""


class AuthenticationError(GoCardlessError):
    """No usable access token is available."""
