"""Failure kinds for a single token acquisition attempt."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    launch = "launch"
    page = "page"
    navigation = "navigation"
    response = "response"
    parse = "parse"
    timeout = "timeout"


class TokenFetchError(Exception):
    """Base class for every terminal acquisition failure."""

    kind: ErrorKind


class LaunchError(TokenFetchError):
    """The browser engine could not be started."""

    kind = ErrorKind.launch


class PageError(TokenFetchError):
    """An isolated page could not be opened."""

    kind = ErrorKind.page


class NavigationError(TokenFetchError):
    """Navigation failed before a token response was observed."""

    kind = ErrorKind.navigation


class ResponseError(TokenFetchError):
    """The token endpoint answered with a non-success status."""

    kind = ErrorKind.response


class ParseError(TokenFetchError):
    """The token endpoint body was not a usable JSON object."""

    kind = ErrorKind.parse


class FetchTimeoutError(TokenFetchError, TimeoutError):
    """No token response was seen before the deadline."""

    kind = ErrorKind.timeout
