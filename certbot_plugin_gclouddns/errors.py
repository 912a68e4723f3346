"""Errors raised by the Google Cloud DNS plugin."""
from certbot import errors


class GCloudDNSError(errors.PluginError):
    """Base class for Google Cloud DNS plugin errors."""


class CredentialError(GCloudDNSError):
    """Service account key file missing, unreadable or incomplete."""


class AuthError(GCloudDNSError):
    """Token exchange with the OAuth2 endpoint failed."""


class ZoneNotFoundError(GCloudDNSError):
    """No managed zone owning the record name could be found."""


class DnsUpdateError(GCloudDNSError):
    """Querying or changing a record set was rejected."""
