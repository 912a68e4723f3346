"""Service account key loading with a persisted fallback copy."""
import json
import logging
from typing import Any
from typing import Dict
from typing import Mapping
from typing import NamedTuple

import josepy as jose

from certbot import errors
from certbot.compat import os

from certbot_plugin_gclouddns.errors import CredentialError

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
CACHE_KEY = "cached_keys"


class ServiceAccountKey(NamedTuple):
    """The parts of a service account JSON key needed to request tokens."""
    client_email: str
    private_key: str
    token_uri: str
    project_id: str

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "ServiceAccountKey":
        missing = [field for field in ("client_email", "private_key", "project_id")
                   if not data.get(field)]
        if missing:
            raise CredentialError(
                "Service account key is missing required fields: {0}".format(", ".join(missing)))
        return cls(client_email=data["client_email"],
                   private_key=data["private_key"],
                   token_uri=data.get("token_uri") or DEFAULT_TOKEN_URI,
                   project_id=data["project_id"])

    def to_json(self) -> Dict[str, str]:
        return dict(self._asdict())


def encode_key(key: ServiceAccountKey) -> str:
    return jose.b64encode(json.dumps(key.to_json()).encode("utf-8")).decode("ascii")


def decode_key(blob: str) -> ServiceAccountKey:
    try:
        data = json.loads(jose.b64decode(blob).decode("utf-8"))
    except (ValueError, TypeError) as e:
        raise CredentialError("Cached service account key is corrupted: {0}".format(e))
    if not isinstance(data, dict):
        raise CredentialError("Cached service account key is not a JSON object")
    return ServiceAccountKey.from_json(data)


class CredentialStore(object):
    """
    Loads service account keys, keeping an encoded copy of every key file
    it has read in plugin storage so renewals keep working if the file goes away.
    """

    def __init__(self, storage):
        """
        :param storage: a `certbot.plugins.storage.PluginStorage` (or anything
            with the same ``fetch``/``put``/``save`` methods)
        """
        self.storage = storage

    def load(self, key_file_path: str) -> ServiceAccountKey:
        """
        Load the service account key stored at ``key_file_path``.

        :param str key_file_path: Path to the service account JSON key file.
        :returns: The parsed key.
        :rtype: ServiceAccountKey
        :raises .CredentialError: if the file doesn't exist and no cached copy is known,
            or if the key can't be parsed.
        """
        path = os.path.abspath(os.path.expanduser(key_file_path))
        cached = self._cached_keys()

        if os.path.isfile(path):
            key = self._read_key_file(path)
            cached[path] = encode_key(key)
            self._persist(cached)
            return key

        if path in cached:
            logger.warning("Service account key file %s not found, using the cached copy "
                           "saved by a previous run.", path)
            return decode_key(cached[path])

        logger.error("Service account key file %s not found and no cached copy exists.", path)
        raise CredentialError(
            "Service account key file {0} not found and no cached copy is available.".format(path))

    @staticmethod
    def _read_key_file(path: str) -> ServiceAccountKey:
        logger.debug("Reading service account key from %s", path)
        try:
            with open(path) as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            raise CredentialError("Error parsing credentials file '{0}': {1}".format(path, e))
        if not isinstance(data, dict):
            raise CredentialError("Credentials file '{0}' is not a JSON object".format(path))
        return ServiceAccountKey.from_json(data)

    def _cached_keys(self) -> Dict[str, str]:
        try:
            return dict(self.storage.fetch(CACHE_KEY))
        except KeyError:
            return {}
        except errors.PluginStorageError as e:
            logger.warning("Unable to read the service account key cache: %s", e)
            return {}

    def _persist(self, cached: Dict[str, str]) -> None:
        try:
            self.storage.put(CACHE_KEY, cached)
            self.storage.save()
        except errors.PluginStorageError as e:
            logger.warning("Unable to save the service account key cache: %s", e)
