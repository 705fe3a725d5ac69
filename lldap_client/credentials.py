"""
Password verification and password changes over the directory channel.

This is the only part of the client that does not go through GraphQL: LLDAP
accepts password changes solely as LDAP password-modify extended operations.
"""

import logging

from ldap3.core.exceptions import LDAPException

from lldap_client.errors import AuthenticationError, InvalidCredentialsError, TransportError
from lldap_client.logging_setup import security_logger
from lldap_client.session import TransportSession, user_dn

logger = logging.getLogger(__name__)


class CredentialOperator:
    """Checks and sets user passwords by binding to the directory."""

    def __init__(self, session: TransportSession):
        self.session = session

    def is_valid_password(self, user_id: str, candidate: str) -> bool:
        """
        Check whether ``candidate`` is the current password of ``user_id``.

        Every call binds on a dedicated connection which is closed afterwards.

        Returns:
            True if the bind succeeds, False if the directory rejects the credentials

        Raises:
            TransportError: If the directory cannot be reached or the bind fails
                for another reason than wrong credentials
        """
        try:
            connection = self.session.bind(user_id, candidate)
        except InvalidCredentialsError:
            security_logger.log_authentication_attempt('lldap-ldap', user_id, False)
            return False

        try:
            security_logger.log_authentication_attempt('lldap-ldap', user_id, True)
            return True
        finally:
            self.session.release(connection)

    def set_user_password(self, user_id: str, new_password: str):
        """
        Set the password of ``user_id`` using the administrative bind.

        The administrative bind is shared and serialized by the session, so
        this method may be called from several threads at once.

        Raises:
            AuthenticationError: If the administrative credentials are rejected
            TransportError: If the directory is unreachable or refuses the change
        """
        dn = user_dn(user_id, self.session.settings.base_dn)
        try:
            with self.session.admin_connection() as connection:
                succeeded = connection.extend.standard.modify_password(user=dn, new_password=new_password)
                result = connection.result or {}
        except InvalidCredentialsError as e:
            security_logger.log_password_change(user_id, False)
            raise AuthenticationError(f"administrative bind rejected while changing password of '{dn}': {e}") from e
        except LDAPException as e:
            security_logger.log_password_change(user_id, False)
            raise TransportError(f"unable to modify password for '{dn}': {e}") from e

        if not succeeded:
            security_logger.log_password_change(user_id, False)
            raise TransportError(
                f"unable to modify password for '{dn}': {result.get('description', '')} {result.get('message', '')}".strip()
            )

        security_logger.log_password_change(user_id, True)
        logger.info(f"Password changed for user {user_id}")

    def ensure_password(self, user_id: str, password: str) -> bool:
        """
        Make ``password`` the password of ``user_id`` unless it already is.

        Returns:
            True if the password was changed
        """
        if self.is_valid_password(user_id, password):
            logger.debug(f"Password of user {user_id} already up to date")
            return False
        self.set_user_password(user_id, password)
        return True
