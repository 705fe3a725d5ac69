"""
Entry point object for talking to one LLDAP instance.
"""

import logging
from typing import Dict, Iterable, List, Optional, Union

from lldap_client.credentials import CredentialOperator
from lldap_client.graphql import QueryExecutor
from lldap_client.models import AttributeType, Group, GroupAttributeSchema, User, UserAttributeSchema
from lldap_client.reconciler import ReconcileResult, Reconciler
from lldap_client.repository import EntityRepository
from lldap_client.session import ConnectionSettings, TransportSession

logger = logging.getLogger(__name__)


class LldapClient:
    """
    Client for one LLDAP directory.

    Wires the transport session, the entity repository, the credential
    operator and the reconciler together. One instance may be shared by
    several threads.

    Example:
        settings = ConnectionSettings(http_url='http://lldap:17170',
                                      ldap_url='ldap://lldap:3890',
                                      password='secret')
        with LldapClient(settings) as client:
            group = client.create_group(Group(display_name='staff'))
            client.reconcile_group_members(group.id, ['alice', 'bob'])
    """

    def __init__(self, settings: ConnectionSettings):
        self.settings = settings
        self.session = TransportSession(settings)
        self.repository = EntityRepository(QueryExecutor(self.session))
        self.credentials = CredentialOperator(self.session)
        self.reconciler = Reconciler(self.repository)

    # Users

    def get_user(self, user_id: str) -> User:
        return self.repository.get_user(user_id)

    def list_users(self) -> List[User]:
        return self.repository.list_users()

    def create_user(self, user: User, password: Optional[str] = None) -> User:
        """Create ``user`` and, if given, set its initial password."""
        created = self.repository.create_user(user)
        if password:
            self.credentials.set_user_password(created.id, password)
        return created

    def update_user(self, user: User):
        self.repository.update_user(user)

    def delete_user(self, user_id: str):
        self.repository.delete_user(user_id)

    # Groups

    def get_group(self, group_id: int) -> Group:
        return self.repository.get_group(group_id)

    def list_groups(self) -> List[Group]:
        return self.repository.list_groups()

    def create_group(self, group: Group) -> Group:
        return self.repository.create_group(group)

    def update_group_display_name(self, group_id: int, display_name: str):
        self.repository.update_group_display_name(group_id, display_name)

    def delete_group(self, group_id: int):
        self.repository.delete_group(group_id)

    # Memberships

    def add_user_to_group(self, group_id: int, user_id: str):
        self.repository.add_user_to_group(group_id, user_id)

    def remove_user_from_group(self, group_id: int, user_id: str):
        self.repository.remove_user_from_group(group_id, user_id)

    def reconcile_group_members(self, group_id: int, user_ids: Iterable[str]) -> ReconcileResult:
        return self.reconciler.reconcile_group_members(group_id, user_ids)

    def reconcile_user_groups(self, user_id: str, group_ids: Iterable[int]) -> ReconcileResult:
        return self.reconciler.reconcile_user_groups(user_id, group_ids)

    def verify_membership_symmetry(self, group_id: int) -> List[str]:
        return self.reconciler.verify_membership_symmetry(group_id)

    # Attribute schemas

    def list_user_attribute_schemas(self) -> List[UserAttributeSchema]:
        return self.repository.list_user_attribute_schemas()

    def list_group_attribute_schemas(self) -> List[GroupAttributeSchema]:
        return self.repository.list_group_attribute_schemas()

    def get_user_attribute_schema(self, name: str) -> Optional[UserAttributeSchema]:
        return self.repository.get_user_attribute_schema(name)

    def get_group_attribute_schema(self, name: str) -> Optional[GroupAttributeSchema]:
        return self.repository.get_group_attribute_schema(name)

    def create_user_attribute(self, name: str, attribute_type: Union[AttributeType, str],
                              is_list: bool = False, is_visible: bool = True, is_editable: bool = False):
        self.repository.create_user_attribute(name, attribute_type, is_list, is_visible, is_editable)

    def create_group_attribute(self, name: str, attribute_type: Union[AttributeType, str],
                               is_list: bool = False, is_visible: bool = True):
        self.repository.create_group_attribute(name, attribute_type, is_list, is_visible)

    def delete_user_attribute(self, name: str):
        self.repository.delete_user_attribute(name)

    def delete_group_attribute(self, name: str):
        self.repository.delete_group_attribute(name)

    # Attribute assignments

    def add_attribute_to_user(self, user_id: str, name: str, values: List[str]):
        self.repository.add_attribute_to_user(user_id, name, values)

    def remove_attribute_from_user(self, user_id: str, name: str):
        self.repository.remove_attribute_from_user(user_id, name)

    def add_attribute_to_group(self, group_id: int, name: str, values: List[str]):
        self.repository.add_attribute_to_group(group_id, name, values)

    def remove_attribute_from_group(self, group_id: int, name: str):
        self.repository.remove_attribute_from_group(group_id, name)

    def reconcile_user_attribute(self, user_id: str, name: str, values: List[str]) -> ReconcileResult:
        return self.reconciler.reconcile_user_attribute(user_id, name, values)

    def reconcile_group_attribute(self, group_id: int, name: str, values: List[str]) -> ReconcileResult:
        return self.reconciler.reconcile_group_attribute(group_id, name, values)

    def reconcile_user_attributes(self, user_id: str, desired: Dict[str, List[str]]) -> ReconcileResult:
        return self.reconciler.reconcile_user_attributes(user_id, desired)

    def reconcile_group_attributes(self, group_id: int, desired: Dict[str, List[str]]) -> ReconcileResult:
        return self.reconciler.reconcile_group_attributes(group_id, desired)

    # Passwords

    def is_valid_password(self, user_id: str, password: str) -> bool:
        return self.credentials.is_valid_password(user_id, password)

    def set_user_password(self, user_id: str, password: str):
        self.credentials.set_user_password(user_id, password)

    def reconcile_password(self, user_id: str, password: str) -> bool:
        return self.credentials.ensure_password(user_id, password)

    def close(self):
        """Release the held administrative bind."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
