"""DNS Authenticator for Google Cloud DNS."""
import logging
import threading
import time
from typing import Any
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional
from typing import Sequence
from typing import Tuple
from urllib.parse import urljoin

import requests

from certbot.compat import os
from certbot.plugins import dns_common
from certbot.plugins.storage import PluginStorage

from certbot_plugin_gclouddns import changes
from certbot_plugin_gclouddns.auth import DEFAULT_TIMEOUT
from certbot_plugin_gclouddns.auth import AccessToken
from certbot_plugin_gclouddns.auth import TokenManager
from certbot_plugin_gclouddns.credentials import CredentialStore
from certbot_plugin_gclouddns.credentials import ServiceAccountKey
from certbot_plugin_gclouddns.errors import DnsUpdateError
from certbot_plugin_gclouddns.errors import ZoneNotFoundError

logger = logging.getLogger(__name__)

ACCT_URL = 'https://developers.google.com/identity/protocols/OAuth2ServiceAccount#creatinganaccount'
PERMISSIONS_URL = 'https://cloud.google.com/dns/access-control#permissions_and_roles'
API_ROOT_URL = "https://dns.googleapis.com/dns/v1/"
DEFAULT_PROPAGATION_DELAY = 60


class Authenticator(dns_common.DNSAuthenticator):
    """DNS Authenticator for Google Cloud DNS

    This Authenticator uses the Google Cloud DNS v1 REST API to fulfill a dns-01 challenge.
    """

    description = ("Obtain certificates using a DNS TXT record (if you are using Google Cloud DNS "
                   "for DNS).")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super(Authenticator, self).__init__(*args, **kwargs)
        self.gclouddns_client: Optional[_GCloudDNSClient] = None

    @classmethod
    def add_parser_arguments(cls, add: Callable[..., None],  # pylint: disable=arguments-differ
                             default_propagation_seconds: int = DEFAULT_PROPAGATION_DELAY) -> None:
        super(Authenticator, cls).add_parser_arguments(
            add, default_propagation_seconds=default_propagation_seconds
        )
        add("credentials",
            help=("Path to a Google Cloud service account JSON key file. (See {0} for "
                  "information about creating a service account and {1} for information about "
                  "the required permissions.)").format(ACCT_URL, PERMISSIONS_URL),
            default=None)
        add("projects",
            help=("Comma separated list of project ids to search for managed zones. "
                  "Defaults to the project of the service account."),
            default=None)

    def more_info(self) -> str:  # pylint: disable=missing-function-docstring
        return (
            "This plugin configures a DNS TXT record to respond to a dns-01 challenge using "
            + "the Google Cloud DNS REST API."
        )

    def _setup_credentials(self) -> None:
        self._configure("credentials", "path to Google Cloud service account JSON key file")

        path = os.path.abspath(os.path.expanduser(self.conf("credentials")))
        if os.path.isfile(path):
            dns_common.validate_file_permissions(path)
        else:
            logger.debug("Key file %s is missing, a cached copy will be used if available", path)

    def _perform(self, domain: str, validation_name: str, validation: str) -> None:
        logger.debug("GCLOUDDNS: _perform. domain: %s, name: %s, content: %s",
                     domain, validation_name, validation)

        self._get_gclouddns_client().add_txt_record(domain, validation_name, validation)

    def _cleanup(self, domain: str, validation_name: str, validation: str) -> None:
        logger.debug("GCLOUDDNS: _cleanup. domain: %s, name: %s, content: %s",
                     domain, validation_name, validation)

        self._get_gclouddns_client().del_txt_record(domain, validation_name, validation)

    def _get_gclouddns_client(self) -> "_GCloudDNSClient":
        if not self.gclouddns_client:
            self.gclouddns_client = _GCloudDNSClient(
                self.conf("credentials"),
                PluginStorage(self.config, self.name),
                projects=parse_projects(self.conf("projects")),
            )
        return self.gclouddns_client


def parse_projects(value: Optional[str]) -> List[str]:
    """Split a comma separated project list, dropping blanks."""
    if not value:
        return []
    return [project.strip() for project in value.split(",") if project.strip()]


class _GCloudDNSClient(object):
    """
    Encapsulates all communication with the Google Cloud DNS REST API.

    One client holds the session state of a run: the bearer token, the
    record name to zone lookups and the lock serialising record set changes.
    """

    def __init__(self, key_file: str, storage: Any,
                 projects: Optional[Sequence[str]] = None,
                 session: Optional[requests.Session] = None,
                 clock: Callable[[], float] = time.time,
                 lock: Optional[Any] = None,
                 timeout: float = DEFAULT_TIMEOUT) -> None:
        logger.debug("creating _GCloudDNSClient")
        self.key_file = key_file
        self.projects = list(projects or [])
        self.session = session or requests.Session()
        self.timeout = timeout
        self.credential_store = CredentialStore(storage)
        self.token_manager = TokenManager(self.session, clock=clock, timeout=timeout)
        self.zone_cache: Dict[str, Tuple[str, str]] = {}
        self.recordset_lock = lock or threading.RLock()
        self._key: Optional[ServiceAccountKey] = None

    def set_session(self, sess: requests.Session) -> None:
        """
        Set request session value. Used by external callers
        :param session Session object to use
        """
        self.session = sess
        self.token_manager.session = sess

    def _ensure_token(self) -> AccessToken:
        if self._key is None:
            self._key = self.credential_store.load(self.key_file)
        return self.token_manager.ensure_token(self._key)

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        token = self._ensure_token()
        url = urljoin(API_ROOT_URL, path)
        logger.debug("GCLOUDDNS: %s %s", method, url)
        return self.session.request(method, url, headers={"Authorization": token.header},
                                    timeout=self.timeout, **kwargs)

    def add_txt_record(self, domain: str, record_name: str, record_content: str,
                       record_ttl: int = changes.RECORD_TTL) -> None:
        """
        Add a TXT record using the supplied information.

        Values already in the record set are kept; adding a value that is
        already present does nothing.

        :param str domain: The domain being validated.
        :param str record_name: The record name (typically beginning with '_acme-challenge.').
        :param str record_content: The record content (typically the challenge validation).
        :param int record_ttl: The TTL used if the record set has to be created.
        :raises .ZoneNotFoundError: if no managed zone owns the record name
        :raises .DnsUpdateError: if the record set can't be read or changed
        """
        logger.debug("GCLOUDDNS: add_txt_record. domain: %s, name: %s, content: %s",
                     domain, record_name, record_content)
        with self.recordset_lock:
            zone_id, project = self.resolve_zone(record_name)
            current = self.get_existing_txt_rrset(zone_id, project, record_name)
            change = changes.txt_addition(current, record_name, record_content, record_ttl)
            if change is None:
                logger.debug("TXT value already present on %s, nothing to do", record_name)
                return
            self._submit_change(zone_id, project, change)

    def del_txt_record(self, domain: str, record_name: str, record_content: str) -> None:
        """
        Delete a TXT record using the supplied information.

        Only ``record_content`` is removed from the record set; other values
        (e.g. from concurrent validations of the same name) are preserved.

        :param str domain: The domain being validated.
        :param str record_name: The record name (typically beginning with '_acme-challenge.').
        :param str record_content: The record content (typically the challenge validation).
        :raises .ZoneNotFoundError: if no managed zone owns the record name
        :raises .DnsUpdateError: if the record set can't be read or changed
        """
        logger.debug("GCLOUDDNS: del_txt_record. domain: %s, name: %s, content: %s",
                     domain, record_name, record_content)
        with self.recordset_lock:
            zone_id, project = self.resolve_zone(record_name)
            current = self.get_existing_txt_rrset(zone_id, project, record_name)
            change = changes.txt_removal(current, record_content)
            if change is None:
                logger.debug("TXT value already absent from %s, nothing to do", record_name)
                return
            self._submit_change(zone_id, project, change)

    def commit(self) -> None:
        """Changes are applied as they are submitted; there is nothing to commit."""

    def resolve_zone(self, record_name: str,
                     projects: Optional[Sequence[str]] = None) -> Tuple[str, str]:
        """
        Find the most specific public managed zone owning ``record_name``.

        The first answer for a record name is remembered for the lifetime of the
        client, whatever projects later calls ask for.

        :param str record_name: The fully qualified record name.
        :param list projects: Project ids to search, in order. Defaults to the
            configured projects, then to the service account's project.
        :returns: The zone id and the id of the project that hosts it.
        :rtype: tuple
        :raises .ZoneNotFoundError: if no zone owns the record name
        """
        record_name = record_name.rstrip(".")
        if record_name in self.zone_cache:
            return self.zone_cache[record_name]

        if not projects:
            projects = self.projects or [self._ensure_token().default_project]

        zones: List[Tuple[Dict[str, Any], str]] = []
        for project in projects:
            zones.extend((zone, project) for zone in self._list_public_zones(project))
        if not zones:
            raise ZoneNotFoundError(
                "No managed zones found in projects: {0}".format(", ".join(projects)))

        # the bare TLD is never a candidate
        for guess in dns_common.base_domain_name_guesses(record_name)[:-1]:
            zone_name = guess.lower() + "."
            for zone, project in zones:
                if zone.get("dnsName", "").lower() == zone_name:
                    logger.debug("Found zone %s (%s) in project %s for %s",
                                 zone["id"], zone_name, project, record_name)
                    self.zone_cache[record_name] = (zone["id"], project)
                    return self.zone_cache[record_name]

        raise ZoneNotFoundError(
            "Unable to find a managed zone for {0} in projects: {1}".format(
                record_name, ", ".join(projects)))

    def _list_public_zones(self, project: str) -> List[Dict[str, Any]]:
        zones: List[Dict[str, Any]] = []
        params: Dict[str, str] = {}
        while True:
            try:
                result = self._request("GET", "projects/{0}/managedZones".format(project),
                                       params=params)
            except requests.exceptions.RequestException as e:
                logger.error("Listing managed zones of %s failed: %s", project, e)
                raise ZoneNotFoundError(
                    "Error listing managed zones of project {0}: {1}".format(project, e))
            if result.status_code != 200:
                logger.error("Listing managed zones of %s failed: %s %s",
                             project, result.status_code, result.text)
                raise ZoneNotFoundError("Error listing managed zones of project {0}: {1} {2}"
                                        .format(project, result.status_code, result.reason))
            try:
                body = result.json()
                page = [zone for zone in body.get("managedZones", [])
                        if zone.get("visibility", "public") == "public"]
            except (ValueError, AttributeError) as e:
                logger.error("Unexpected managed zone listing for %s: %s", project, e)
                raise ZoneNotFoundError(
                    "Unexpected response listing managed zones of project {0}: {1}".format(
                        project, e))
            for zone in page:
                if not zone.get("id") or not zone.get("dnsName"):
                    raise ZoneNotFoundError(
                        "Managed zone without id or dnsName in project {0}: {1}".format(
                            project, zone))
            zones.extend(page)
            if not body.get("nextPageToken"):
                return zones
            params = {"pageToken": body["nextPageToken"]}

    def get_existing_txt_rrset(self, zone_id: str, project: str,
                               record_name: str) -> Optional[Dict[str, Any]]:
        """
        Get the existing TXT record set for the record name.

        :param str zone_id: The ID of the managed zone.
        :param str project: The project hosting the zone.
        :param str record_name: The record name (typically beginning with '_acme-challenge.').
        :returns: The resourceRecordSet for `record_name`, or None if there is none.
        :rtype: dict
        :raises .DnsUpdateError: if the record sets can't be listed
        """
        path = "projects/{0}/managedZones/{1}/rrsets".format(project, zone_id)
        try:
            result = self._request("GET", path,
                                   params={"type": "TXT", "name": record_name.rstrip(".") + "."})
        except requests.exceptions.RequestException as e:
            raise DnsUpdateError("Error fetching TXT records for {0}: {1}".format(record_name, e))
        if result.status_code != 200:
            logger.error("Fetching TXT records for %s failed: %s %s",
                         record_name, result.status_code, result.text)
            raise DnsUpdateError("Error fetching TXT records for {0}: {1} {2}".format(
                record_name, result.status_code, result.reason))

        try:
            rrsets = result.json().get("rrsets", [])
        except (ValueError, AttributeError) as e:
            raise DnsUpdateError("Unexpected response fetching TXT records for {0}: {1}".format(
                record_name, e))
        if rrsets:
            return rrsets[0]
        return None

    def _submit_change(self, zone_id: str, project: str, change: changes.ChangeRequest) -> None:
        path = "projects/{0}/managedZones/{1}/changes".format(project, zone_id)
        logger.info("Submitting change to zone %s: %d deletion(s), %d addition(s)",
                    zone_id, len(change.deletions), len(change.additions))
        try:
            result = self._request("POST", path, json=change.to_json())
        except requests.exceptions.RequestException as e:
            raise DnsUpdateError("Error submitting change to zone {0}: {1}".format(zone_id, e))
        if not 200 <= result.status_code < 300:
            logger.error("Change to zone %s rejected: %s %s",
                         zone_id, result.status_code, result.text)
            raise DnsUpdateError("Change to zone {0} rejected by the Google Cloud DNS API: "
                                 "{1} {2}".format(zone_id, result.status_code, result.reason))
