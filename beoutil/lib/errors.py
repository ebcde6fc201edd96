# beoutil
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""Exception hierarchy shared by the beoutil library and command line."""


class BeoutilError(Exception):
    """Base class for every error beoutil raises on purpose."""


class DiscoveryError(BeoutilError):
    """The mDNS browse session could not be started."""


class CacheError(BeoutilError):
    """The discovery cache could not be read or written."""


class NoProductsCached(CacheError):
    """No discovery has been run yet (the cache file does not exist)."""


class BeoRemoteError(BeoutilError):
    """A BeoRemote API call returned something we could not use."""


class BeoRemoteHTTPError(BeoRemoteError):
    """A BeoRemote API call returned a non-2xx status."""

    def __init__(self, status: int, reason: str):
        super().__init__(f"status {status}: {reason}")
        self.status = status
        self.reason = reason


class NotificationDecodeError(BeoutilError):
    """A streamed value is not a valid notification envelope."""


# -- Errors carried inside NotificationEvent rather than raised --

class StreamDecodeError(BeoutilError):
    """One document in the notification stream was not valid JSON."""


class StreamEnded(BeoutilError):
    """The product closed the notification stream."""


class StreamAborted(BeoutilError):
    """Too many consecutive decode errors; the stream was given up."""
