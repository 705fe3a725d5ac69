"""
LLDAP Client - Manage users, groups, memberships and custom attributes of an LLDAP server.

Administrative operations go through the GraphQL API over HTTP; password
checks and password changes go through an LDAP bind.
"""

from lldap_client.client import LldapClient
from lldap_client.errors import (
    AcknowledgementError,
    AuthenticationError,
    EntityNotFoundError,
    InvalidCredentialsError,
    LldapError,
    RemoteOperationError,
    TransportError,
    is_entity_not_found,
)
from lldap_client.models import AttributeType, CustomAttribute, Group, User
from lldap_client.session import ConnectionSettings

__version__ = "1.0.0"

__all__ = [
    'AcknowledgementError',
    'AttributeType',
    'AuthenticationError',
    'ConnectionSettings',
    'CustomAttribute',
    'EntityNotFoundError',
    'Group',
    'InvalidCredentialsError',
    'LldapClient',
    'LldapError',
    'RemoteOperationError',
    'TransportError',
    'User',
    'is_entity_not_found',
]
