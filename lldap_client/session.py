"""
Transport session for the LLDAP administrative and directory channels.

The administrative channel is plain HTTP(S) carrying JSON: a login endpoint
hands out a bearer token which then authenticates every GraphQL call. The
directory channel is LDAP, used only to bind (password checks) and to issue
password-modify requests with an administrative bind.

A single session may be shared between threads. The bearer token and the
held administrative bind are only touched through accessors holding their
respective locks.
"""

import json
import logging
import ssl
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from http.client import HTTPConnection, HTTPException, HTTPSConnection
from typing import Any, Dict, Iterator, Optional, Tuple, Union
from urllib.parse import urlparse

from ldap3 import NONE, Connection, Server, Tls
from ldap3.core.exceptions import LDAPException
from ldap3.utils.dn import escape_rdn

from lldap_client.errors import AuthenticationError, InvalidCredentialsError, TransportError
from lldap_client.logging_setup import security_logger

logger = logging.getLogger(__name__)

LOGIN_PATH = '/auth/simple/login'
GRAPHQL_PATH = '/api/graphql'
USER_DN_TEMPLATE = 'cn={identity},ou=people,{base_dn}'

# LDAP result code 49
INVALID_CREDENTIALS = 'invalidCredentials'


@dataclass
class ConnectionSettings:
    """Fully formed connection parameters for one directory."""

    http_url: str
    ldap_url: str
    password: str
    username: str = 'admin'
    base_dn: str = 'dc=example,dc=com'
    insecure_skip_cert_check: bool = False
    ldap_dial_timeout: int = 5
    http_timeout: int = 30


def user_dn(identity: str, base_dn: str) -> str:
    """Build the distinguished name of a user entry."""
    return USER_DN_TEMPLATE.format(identity=escape_rdn(identity), base_dn=base_dn)


class TransportSession:
    """
    Owns the connection parameters and the authentication state of both channels.

    The bearer token is obtained lazily on the first administrative call and
    kept for the lifetime of the session; there is no refresh on expiry.
    """

    def __init__(self, settings: ConnectionSettings):
        self.settings = settings

        self.parsed_http_url = urlparse(settings.http_url)
        self.parsed_ldap_url = urlparse(settings.ldap_url)
        self.ssl_context = None
        self._setup_ssl_context()

        self._token_lock = threading.Lock()
        self._token = None
        self._refresh_token = None

        self._ldap_lock = threading.Lock()
        self._admin_connection = None

    def _setup_ssl_context(self):
        """Set up SSL context for the administrative channel."""
        if self.parsed_http_url.scheme != 'https':
            return

        if self.settings.insecure_skip_cert_check:
            self.ssl_context = ssl._create_unverified_context()
            logger.warning(f"SSL verification disabled for {self.settings.http_url}")
            return

        self.ssl_context = ssl.create_default_context()

    # Token accessors

    @property
    def token(self) -> Optional[str]:
        with self._token_lock:
            return self._token

    @property
    def refresh_token(self) -> Optional[str]:
        with self._token_lock:
            return self._refresh_token

    def _store_tokens(self, token: str, refresh_token: Optional[str]):
        with self._token_lock:
            self._token = token
            self._refresh_token = refresh_token

    def ensure_token(self) -> str:
        """
        Return the held bearer token, logging in first if there is none.

        Concurrent first calls may each log in; the last stored token wins and
        callers keep using the token they were handed.
        """
        token = self.token
        if token:
            return token
        return self.authenticate()

    # Administrative channel

    def _new_http_connection(self) -> Union[HTTPSConnection, HTTPConnection]:
        host = self.parsed_http_url.netloc
        if self.parsed_http_url.scheme == 'https':
            return HTTPSConnection(host, context=self.ssl_context, timeout=self.settings.http_timeout)
        return HTTPConnection(host, timeout=self.settings.http_timeout)

    def post_json(self, path: str, payload: Dict[str, Any], token: Optional[str] = None) -> Tuple[int, str]:
        """
        POST a JSON document to the administrative endpoint.

        Each call uses its own HTTP connection so that concurrent callers never
        share a socket.

        Args:
            path: Absolute request path (e.g. ``/api/graphql``)
            payload: JSON-serialisable request body
            token: Bearer token to send, if any

        Returns:
            Tuple of (HTTP status, response body text)

        Raises:
            TransportError: On network or protocol failures
        """
        headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }
        if token:
            headers['Authorization'] = f"Bearer {token}"

        body = json.dumps(payload)
        conn = self._new_http_connection()
        try:
            logger.debug(f"Making POST request to {self.parsed_http_url.netloc}{path}")
            conn.request('POST', path, body, headers)
            response = conn.getresponse()
            response_data = response.read().decode('utf-8')
            logger.debug(f"Response status: {response.status} {response.reason}")
            return response.status, response_data
        except (OSError, HTTPException) as e:
            raise TransportError(f"Connection error to {self.settings.http_url}: {e}") from e
        except UnicodeDecodeError as e:
            raise TransportError(
                f"Response from {self.settings.http_url}{path} is not valid UTF-8: {e}",
                status_code=response.status,
            ) from e
        finally:
            conn.close()

    def authenticate(self) -> str:
        """
        Log in with the administrative credentials and store the bearer token.

        Returns:
            The new bearer token

        Raises:
            AuthenticationError: On any non-200 answer or malformed body
            TransportError: If the endpoint cannot be reached
        """
        username = self.settings.username
        status, body = self.post_json(LOGIN_PATH, {
            'username': username,
            'password': self.settings.password,
        })

        if status != 200:
            security_logger.log_authentication_attempt('lldap-http', username, False)
            raise AuthenticationError(
                f"Unexpected HTTP status code in response: {status} - {body}",
                status_code=status,
                body=body,
            )

        try:
            auth_response = json.loads(body)
        except json.JSONDecodeError as e:
            raise AuthenticationError(f"Invalid JSON in login response: {e}", status_code=status, body=body) from e

        token = auth_response.get('token') if isinstance(auth_response, dict) else None
        if not token:
            raise AuthenticationError("Login response missing token", status_code=status, body=body)

        self._store_tokens(token, auth_response.get('refreshToken'))
        security_logger.log_authentication_attempt('lldap-http', username, True)
        logger.info(f"Authenticated to {self.settings.http_url} as {username}")
        return token

    # Directory channel

    def _create_tls_config(self) -> Optional[Tls]:
        if self.parsed_ldap_url.scheme != 'ldaps':
            return None
        if self.settings.insecure_skip_cert_check:
            logger.warning("SSL certificate verification disabled for LDAP")
            return Tls(validate=ssl.CERT_NONE)
        return Tls(validate=ssl.CERT_REQUIRED)

    def bind(self, identity: str, secret: str) -> Connection:
        """
        Open a new directory connection bound as ``identity``.

        The caller owns the returned connection and must unbind it.

        Raises:
            InvalidCredentialsError: If the directory rejects the credentials
            TransportError: If the directory cannot be reached or the bind fails otherwise
        """
        dn = user_dn(identity, self.settings.base_dn)

        try:
            server = Server(
                self.settings.ldap_url,
                use_ssl=self.parsed_ldap_url.scheme == 'ldaps',
                tls=self._create_tls_config(),
                get_info=NONE,
                connect_timeout=self.settings.ldap_dial_timeout,
            )
            connection = Connection(server, user=dn, password=secret, auto_bind=False)
        except LDAPException as e:
            raise TransportError(f"unable to dial ldap url: {e}") from e

        try:
            connection.open()
            bound = connection.bind()
        except LDAPException as e:
            self.release(connection)
            raise TransportError(f"could not bind to ldap server: {e}") from e

        if not bound:
            result = connection.result or {}
            self.release(connection)
            description = result.get('description', '')
            if description == INVALID_CREDENTIALS:
                raise InvalidCredentialsError(f"could not bind to ldap server: Invalid Credentials ({dn})")
            raise TransportError(f"could not bind to ldap server: {description} {result.get('message', '')}".strip())

        logger.debug(f"Bound to {self.settings.ldap_url} as {dn}")
        return connection

    @staticmethod
    def release(connection: Connection):
        try:
            connection.unbind()
        except LDAPException as e:
            logger.debug(f"Error closing LDAP connection: {e}")

    @contextmanager
    def admin_connection(self) -> Iterator[Connection]:
        """
        Hold the shared administrative bind for the duration of the block.

        The bind is established on first use and reused afterwards; only one
        caller at a time may use it. A connection that failed at the protocol
        level is dropped so the next caller dials again.
        """
        with self._ldap_lock:
            if self._admin_connection is None:
                self._admin_connection = self.bind(self.settings.username, self.settings.password)
            try:
                yield self._admin_connection
            except LDAPException:
                self.release(self._admin_connection)
                self._admin_connection = None
                raise

    def close(self):
        """Release the held administrative bind, if any."""
        with self._ldap_lock:
            if self._admin_connection is not None:
                self.release(self._admin_connection)
                self._admin_connection = None
                logger.debug("LDAP connection closed")
