"""Exception types raised while cloning a page."""

from __future__ import annotations

# Warning kinds recorded on CloneWarning.kind
CAPTURE_DECODE_FAILURE = "CaptureDecodeFailure"
REFERENCE_UNRESOLVED = "ReferenceUnresolved"
EXTERNAL_FETCH_FAILURE = "ExternalFetchFailure"


class CloneError(Exception):
    """Base class for clone failures."""


class NavigationFailure(CloneError):
    """The page could not be loaded within the navigation timeout."""


class PackagingFailure(CloneError):
    """The archive could not be serialized or written."""


class CaptureDecodeFailure(CloneError):
    """A single response body or its headers could not be read."""


class ExternalFetchFailure(CloneError):
    """A harvested asset could not be downloaded."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
