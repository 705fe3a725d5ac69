"""
Typed CRUD over LLDAP users, groups and custom attribute schemas.

Every method maps to exactly one fixed GraphQL operation (creation adds a
normalizing re-read). The operation strings are the wire contract with the
LLDAP server and must not be reformatted.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from lldap_client.errors import AcknowledgementError, TransportError
from lldap_client.graphql import GraphQLQuery, QueryExecutor
from lldap_client.models import (
    AttributeType,
    Group,
    GroupAttributeSchema,
    User,
    UserAttributeSchema,
    find_schema,
)

logger = logging.getLogger(__name__)


# Users
GET_USER = "query GetUserDetails($id: String!) {user(userId: $id) {id email displayName firstName lastName creationDate uuid avatar groups {id displayName} attributes {name value}}}"
LIST_USERS = "query ListUsersQuery($filters: RequestFilter) {users(filters: $filters) {id email displayName firstName lastName creationDate uuid avatar}}"
CREATE_USER = "mutation CreateUser($user: CreateUserInput!) {createUser(user: $user) {id creationDate uuid avatar}}"
UPDATE_USER = "mutation UpdateUser($user: UpdateUserInput!) {updateUser(user: $user) {ok}}"
DELETE_USER = "mutation DeleteUserQuery($user: String!) {deleteUser(userId: $user) {ok}}"

# Groups
GET_GROUP = "query GetGroupDetails($id: Int!) {group(groupId: $id) {id displayName creationDate uuid users {id displayName} attributes {name value}}}"
LIST_GROUPS = "query GetGroupList {groups {id displayName creationDate}}"
CREATE_GROUP = "mutation CreateGroup($name: String!) {createGroup(name: $name) {id displayName uuid}}"
UPDATE_GROUP = "mutation UpdateGroup($group: UpdateGroupInput!) {updateGroup(group: $group) {ok}}"
DELETE_GROUP = "mutation DeleteGroupQuery($groupId: Int!) {deleteGroup(groupId: $groupId) {ok}}"

# Memberships
ADD_USER_TO_GROUP = "mutation AddUserToGroup($user: String!, $group: Int!) {addUserToGroup(userId: $user, groupId: $group) {ok}}"
REMOVE_USER_FROM_GROUP = "mutation RemoveUserFromGroup($user: String!, $group: Int!) {removeUserFromGroup(userId: $user, groupId: $group) {ok}}"

# Attribute schemas
GET_USER_ATTRIBUTES_SCHEMA = "query GetUserAttributesSchema { schema { userSchema { attributes { name attributeType isList isVisible isEditable isHardcoded isReadonly}}}}"
GET_GROUP_ATTRIBUTES_SCHEMA = "query GetGroupAttributesSchema { schema { groupSchema { attributes { name attributeType isList isVisible isHardcoded isReadonly }}}}"
CREATE_USER_ATTRIBUTE = "mutation CreateUserAttribute($name: String!, $attributeType: AttributeType!, $isList: Boolean!, $isVisible: Boolean!, $isEditable: Boolean!) { addUserAttribute(name: $name, attributeType: $attributeType, isList: $isList, isVisible: $isVisible, isEditable: $isEditable) { ok } }"
CREATE_GROUP_ATTRIBUTE = "mutation CreateGroupAttribute($name: String!, $attributeType: AttributeType!, $isList: Boolean!, $isVisible: Boolean!) { addGroupAttribute(name: $name, attributeType: $attributeType, isList: $isList, isVisible: $isVisible, isEditable: false) { ok } }"
DELETE_USER_ATTRIBUTE = "mutation DeleteUserAttributeQuery($name: String!) { deleteUserAttribute(name: $name) { ok } }"
DELETE_GROUP_ATTRIBUTE = "mutation DeleteGroupAttributeQuery($name: String!) { deleteGroupAttribute(name: $name) { ok } }"

# Attribute assignments (carried by the update mutations)
ADD_ATTRIBUTE_TO_USER = "mutation AddAttributeToUser($user: UpdateUserInput!) {updateUser(user: $user) {ok}}"
REMOVE_ATTRIBUTE_FROM_USER = "mutation RemoveAttributeFromUser($user: UpdateUserInput!) {updateUser(user: $user) {ok}}"
ADD_ATTRIBUTE_TO_GROUP = "mutation AddAttributeToGroup($group: UpdateGroupInput!) {updateGroup(group: $group) {ok}}"
REMOVE_ATTRIBUTE_FROM_GROUP = "mutation RemoveAttributeFromGroup($group: UpdateGroupInput!) {updateGroup(group: $group) {ok}}"


class EntityRepository:
    """
    Users, groups and attribute schemas of one LLDAP instance.

    All methods round-trip to the server; nothing is cached.
    """

    def __init__(self, executor: QueryExecutor):
        self.executor = executor

    def _query(self, operation_name: str, query: str, variables: Optional[Dict[str, Any]] = None):
        return self.executor.execute(GraphQLQuery(operation_name, query, variables))

    def _mutate(self, operation_name: str, query: str, variables: Dict[str, Any],
                result_field: str, failure_message: str):
        """Run a mutation and require its ``ok`` acknowledgement."""
        response = self._query(operation_name, query, variables)
        acknowledgement = response.field(result_field)
        if not isinstance(acknowledgement, dict) or acknowledgement.get('ok') is not True:
            raise AcknowledgementError(operation_name, f"{failure_message}: {response.raw}")
        return response

    # Users

    def get_user(self, user_id: str) -> User:
        """
        Fetch a user with its groups and attributes.

        Raises:
            EntityNotFoundError: If no such user exists
        """
        response = self._query('GetUserDetails', GET_USER, {'id': user_id})
        data = response.field('user')
        if data is None:
            raise TransportError(f"GraphQL response has no user for {user_id}", status_code=200, body=response.raw)
        return User.from_dict(data)

    def list_users(self) -> List[User]:
        response = self._query('ListUsersQuery', LIST_USERS)
        return [User.from_dict(u) for u in response.field('users') or []]

    def create_user(self, user: User) -> User:
        """
        Create ``user`` and refresh it in place from the server.

        The creation mutation answers with a minimal record and the server may
        normalize the identifier, so the user is always read back afterwards.

        Returns:
            The same ``user`` instance with every field as stored remotely
        """
        response = self._query('CreateUser', CREATE_USER, {
            'user': {
                'id': user.id,
                'displayName': user.display_name,
                'email': user.email,
                'firstName': user.first_name,
                'lastName': user.last_name,
                'avatar': user.avatar,
            }
        })
        created_id = response.field('createUser', 'id')
        logger.info(f"Created user {created_id}")
        return self._normalize_user(user, created_id)

    def _normalize_user(self, user: User, user_id: str) -> User:
        stored = self.get_user(user_id)
        user.id = stored.id
        user.email = stored.email
        user.display_name = stored.display_name
        user.first_name = stored.first_name
        user.last_name = stored.last_name
        user.avatar = stored.avatar
        user.creation_date = stored.creation_date
        user.uuid = stored.uuid
        user.groups = stored.groups
        user.attributes = stored.attributes
        return user

    def update_user(self, user: User):
        self._mutate('UpdateUser', UPDATE_USER, {
            'user': {
                'id': user.id,
                'email': user.email,
                'displayName': user.display_name,
                'firstName': user.first_name,
                'lastName': user.last_name,
                'avatar': user.avatar,
            }
        }, 'updateUser', 'Failed to update user')
        logger.info(f"Updated user {user.id}")

    def delete_user(self, user_id: str):
        self._mutate('DeleteUserQuery', DELETE_USER, {'user': user_id},
                     'deleteUser', 'Failed to delete user')
        logger.info(f"Deleted user {user_id}")

    # Groups

    def get_group(self, group_id: int) -> Group:
        """
        Fetch a group with its members and attributes.

        Raises:
            EntityNotFoundError: If no such group exists
        """
        response = self._query('GetGroupDetails', GET_GROUP, {'id': group_id})
        data = response.field('group')
        if data is None:
            raise TransportError(f"GraphQL response has no group for {group_id}", status_code=200, body=response.raw)
        return Group.from_dict(data)

    def list_groups(self) -> List[Group]:
        response = self._query('GetGroupList', LIST_GROUPS)
        return [Group.from_dict(g) for g in response.field('groups') or []]

    def create_group(self, group: Group) -> Group:
        """
        Create ``group``, add its declared members, then refresh it from the server.

        Member additions stop at the first failure; the group itself stays created.
        """
        response = self._query('CreateGroup', CREATE_GROUP, {'name': group.display_name})
        group_id = int(response.field('createGroup', 'id'))
        logger.info(f"Created group {group.display_name} with ID {group_id}")

        for member in group.users:
            self.add_user_to_group(group_id, member.id)

        return self._normalize_group(group, group_id)

    def _normalize_group(self, group: Group, group_id: int) -> Group:
        stored = self.get_group(group_id)
        group.id = stored.id
        group.display_name = stored.display_name
        group.creation_date = stored.creation_date
        group.uuid = stored.uuid
        group.users = stored.users
        group.attributes = stored.attributes
        return group

    def update_group_display_name(self, group_id: int, display_name: str):
        self._mutate('UpdateGroup', UPDATE_GROUP, {
            'group': {'id': group_id, 'displayName': display_name}
        }, 'updateGroup', 'Failed to update group display name')
        logger.info(f"Renamed group {group_id} to {display_name}")

    def delete_group(self, group_id: int):
        self._mutate('DeleteGroupQuery', DELETE_GROUP, {'groupId': group_id},
                     'deleteGroup', 'Failed to delete group')
        logger.info(f"Deleted group {group_id}")

    # Memberships

    def add_user_to_group(self, group_id: int, user_id: str):
        self._mutate('AddUserToGroup', ADD_USER_TO_GROUP, {'user': user_id, 'group': group_id},
                     'addUserToGroup', 'Failed to add user to group')
        logger.info(f"Added user {user_id} to group {group_id}")

    def remove_user_from_group(self, group_id: int, user_id: str):
        self._mutate('RemoveUserFromGroup', REMOVE_USER_FROM_GROUP, {'user': user_id, 'group': group_id},
                     'removeUserFromGroup', 'Failed to remove user from group')
        logger.info(f"Removed user {user_id} from group {group_id}")

    # Attribute schemas

    def list_user_attribute_schemas(self) -> List[UserAttributeSchema]:
        response = self._query('GetUserAttributesSchema', GET_USER_ATTRIBUTES_SCHEMA)
        attributes = response.field('schema', 'userSchema', 'attributes') or []
        return [UserAttributeSchema.from_dict(a) for a in attributes]

    def list_group_attribute_schemas(self) -> List[GroupAttributeSchema]:
        response = self._query('GetGroupAttributesSchema', GET_GROUP_ATTRIBUTES_SCHEMA)
        attributes = response.field('schema', 'groupSchema', 'attributes') or []
        return [GroupAttributeSchema.from_dict(a) for a in attributes]

    def get_user_attribute_schema(self, name: str) -> Optional[UserAttributeSchema]:
        """Return the user attribute schema called ``name``, or None if it does not exist."""
        return find_schema(self.list_user_attribute_schemas(), name)

    def get_group_attribute_schema(self, name: str) -> Optional[GroupAttributeSchema]:
        """Return the group attribute schema called ``name``, or None if it does not exist."""
        return find_schema(self.list_group_attribute_schemas(), name)

    def create_user_attribute(self, name: str, attribute_type: Union[AttributeType, str],
                              is_list: bool, is_visible: bool, is_editable: bool):
        attribute_type = AttributeType.parse(attribute_type)
        self._mutate('CreateUserAttribute', CREATE_USER_ATTRIBUTE, {
            'name': name,
            'attributeType': attribute_type.value,
            'isList': is_list,
            'isVisible': is_visible,
            'isEditable': is_editable,
        }, 'addUserAttribute', 'Failed to create user attribute')
        logger.info(f"Created user attribute {name} ({attribute_type.value})")

    def create_group_attribute(self, name: str, attribute_type: Union[AttributeType, str],
                               is_list: bool, is_visible: bool):
        # Group attributes are never user editable.
        attribute_type = AttributeType.parse(attribute_type)
        self._mutate('CreateGroupAttribute', CREATE_GROUP_ATTRIBUTE, {
            'name': name,
            'attributeType': attribute_type.value,
            'isList': is_list,
            'isVisible': is_visible,
        }, 'addGroupAttribute', 'Failed to create group attribute')
        logger.info(f"Created group attribute {name} ({attribute_type.value})")

    def delete_user_attribute(self, name: str):
        self._mutate('DeleteUserAttributeQuery', DELETE_USER_ATTRIBUTE, {'name': name},
                     'deleteUserAttribute', 'Failed to delete user attribute')
        logger.info(f"Deleted user attribute {name}")

    def delete_group_attribute(self, name: str):
        self._mutate('DeleteGroupAttributeQuery', DELETE_GROUP_ATTRIBUTE, {'name': name},
                     'deleteGroupAttribute', 'Failed to delete group attribute')
        logger.info(f"Deleted group attribute {name}")

    # Attribute assignments

    def add_attribute_to_user(self, user_id: str, name: str, values: List[str]):
        self._mutate('AddAttributeToUser', ADD_ATTRIBUTE_TO_USER, {
            'user': {'id': user_id, 'insertAttributes': [{'name': name, 'value': list(values)}]}
        }, 'updateUser', 'Failed to add attribute to user')
        logger.info(f"Set attribute {name} on user {user_id}")

    def remove_attribute_from_user(self, user_id: str, name: str):
        self._mutate('RemoveAttributeFromUser', REMOVE_ATTRIBUTE_FROM_USER, {
            'user': {'id': user_id, 'removeAttributes': [name]}
        }, 'updateUser', 'Failed to remove attribute from user')
        logger.info(f"Removed attribute {name} from user {user_id}")

    def add_attribute_to_group(self, group_id: int, name: str, values: List[str]):
        self._mutate('AddAttributeToGroup', ADD_ATTRIBUTE_TO_GROUP, {
            'group': {'id': group_id, 'insertAttributes': [{'name': name, 'value': list(values)}]}
        }, 'updateGroup', 'Failed to add attribute to group')
        logger.info(f"Set attribute {name} on group {group_id}")

    def remove_attribute_from_group(self, group_id: int, name: str):
        self._mutate('RemoveAttributeFromGroup', REMOVE_ATTRIBUTE_FROM_GROUP, {
            'group': {'id': group_id, 'removeAttributes': [name]}
        }, 'updateGroup', 'Failed to remove attribute from group')
        logger.info(f"Removed attribute {name} from group {group_id}")
