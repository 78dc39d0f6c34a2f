from __future__ import annotations


class RadarZoneError(Exception):
    """Base class for the errors the monitoring pipeline knows how to contain."""


class PermissionDenied(RadarZoneError):
    """Location access was refused; monitoring stops and the user is told."""

    def __init__(self, message: str = "Location access is required to track time in the zone."):
        super().__init__(message)
        self.message = message


class NetworkError(RadarZoneError):
    """A fetch or post failed at the transport level or with a non-2xx status."""


class MalformedResponse(RadarZoneError):
    """A response body did not have the expected shape."""


class StorageError(RadarZoneError):
    """Reading or writing the persistent key-value store failed."""
