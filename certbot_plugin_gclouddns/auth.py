"""OAuth2 service account token exchange for the Google Cloud DNS API."""
import json
import logging
import time
from typing import Callable
from typing import NamedTuple
from typing import Optional

import josepy as jose
import requests

from certbot_plugin_gclouddns.credentials import ServiceAccountKey
from certbot_plugin_gclouddns.errors import AuthError
from certbot_plugin_gclouddns.errors import CredentialError

logger = logging.getLogger(__name__)

DNS_SCOPE = "https://www.googleapis.com/auth/ndev.clouddns.readwrite"
GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME = 3600
EXPIRY_MARGIN = 300
DEFAULT_TIMEOUT = 30


class AccessToken(NamedTuple):
    """A bearer token and the time (epoch seconds) after which it must not be used."""
    header: str
    expiry: float
    default_project: str


def build_claims(key: ServiceAccountKey, now: int) -> dict:
    return {
        "iss": key.client_email,
        "aud": key.token_uri,
        "scope": DNS_SCOPE,
        "iat": str(now),
        "exp": str(now + ASSERTION_LIFETIME),
    }


def sign_assertion(key: ServiceAccountKey, claims: dict) -> str:
    """
    Produce a compact RS256 JWT over ``claims`` with the key's private key.

    :raises .CredentialError: if the private key can't be loaded
    """
    try:
        jwk = jose.JWKRSA.load(key.private_key.encode("utf-8"))
    except (TypeError, ValueError, jose.Error) as e:
        raise CredentialError("Unable to load the service account private key: {0}".format(e))
    # unparseable PEM data comes back as a symmetric key
    if not isinstance(jwk, jose.JWKRSA):
        raise CredentialError("Service account private key is not an RSA private key")
    # josepy encodes typ as a media type and strips the application/ prefix
    jws = jose.JWS.sign(json.dumps(claims).encode("utf-8"), key=jwk, alg=jose.RS256,
                        include_jwk=False, protect=frozenset(["alg", "typ"]),
                        typ="application/JWT")
    return jws.to_compact().decode("ascii")


class TokenManager(object):
    """
    Exchanges signed service account assertions for bearer tokens and
    remembers the most recent token until shortly before it expires.
    """

    def __init__(self, session: Optional[requests.Session] = None,
                 clock: Callable[[], float] = time.time,
                 timeout: float = DEFAULT_TIMEOUT) -> None:
        self.session = session or requests.Session()
        self.clock = clock
        self.timeout = timeout
        self.token: Optional[AccessToken] = None

    def invalidate(self) -> None:
        self.token = None

    def ensure_token(self, key: ServiceAccountKey) -> AccessToken:
        """
        Return a usable access token, requesting a new one if needed.

        :param ServiceAccountKey key: The service account to authenticate as.
        :rtype: AccessToken
        :raises .AuthError: if the token endpoint call fails
        """
        now = self.clock()
        if self.token is not None and now < self.token.expiry:
            return self.token

        issued_at = int(now)
        assertion = sign_assertion(key, build_claims(key, issued_at))
        logger.debug("Requesting access token for %s from %s", key.client_email, key.token_uri)
        try:
            result = self.session.post(key.token_uri,
                                       data={"assertion": assertion, "grant_type": GRANT_TYPE},
                                       timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error("Token request to %s failed: %s", key.token_uri, e)
            raise AuthError("Unable to reach the token endpoint {0}: {1}".format(key.token_uri, e))

        if not 200 <= result.status_code < 300:
            logger.error("Token request rejected: %s %s", result.status_code, result.text)
            raise AuthError("Token request for {0} was rejected: {1} {2}".format(
                key.client_email, result.status_code, result.reason))

        try:
            body = result.json()
            header = "{0} {1}".format(body["token_type"], body["access_token"])
            expires_in = int(body["expires_in"])
        except (ValueError, KeyError, TypeError) as e:
            raise AuthError("Unexpected token endpoint response: {0}".format(e))

        self.token = AccessToken(header=header,
                                 expiry=issued_at + expires_in - EXPIRY_MARGIN,
                                 default_project=key.project_id)
        return self.token
