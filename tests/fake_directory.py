"""
In-memory stand-in for an LLDAP server's GraphQL API.

FakeDirectory replaces QueryExecutor below EntityRepository: it answers the
same operation names with the same response shapes, records every call and
can be told to fail selected operations.
"""

import json
from typing import Any, Callable, Dict, List, Optional

from lldap_client.errors import GraphQLError, remote_error
from lldap_client.graphql import GraphQLQuery, GraphQLResponse

ACK_FIELDS = {
    'UpdateUser': 'updateUser',
    'DeleteUserQuery': 'deleteUser',
    'UpdateGroup': 'updateGroup',
    'DeleteGroupQuery': 'deleteGroup',
    'AddUserToGroup': 'addUserToGroup',
    'RemoveUserFromGroup': 'removeUserFromGroup',
    'CreateUserAttribute': 'addUserAttribute',
    'CreateGroupAttribute': 'addGroupAttribute',
    'DeleteUserAttributeQuery': 'deleteUserAttribute',
    'DeleteGroupAttributeQuery': 'deleteGroupAttribute',
    'AddAttributeToUser': 'updateUser',
    'RemoveAttributeFromUser': 'updateUser',
    'AddAttributeToGroup': 'updateGroup',
    'RemoveAttributeFromGroup': 'updateGroup',
}

MUTATIONS = set(ACK_FIELDS) | {'CreateUser', 'CreateGroup'}


class FakeDirectory:
    """A tiny LLDAP: users, groups, memberships and attribute schemas."""

    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.groups: Dict[int, Dict[str, Any]] = {}
        self.memberships = set()
        # (user_id, group_id) pairs missing from the user's own group list
        self.hidden_user_groups = set()
        self.user_schemas: List[Dict[str, Any]] = []
        self.group_schemas: List[Dict[str, Any]] = []
        self.calls: List[tuple] = []
        self._failures: List[tuple] = []
        self._next_group_id = 1

    # Seeding

    def add_user(self, user_id: str, email: str = '', display_name: str = '', **attributes):
        self.users[user_id] = {
            'id': user_id,
            'email': email or f"{user_id}@example.com",
            'displayName': display_name or user_id,
            'firstName': '',
            'lastName': '',
            'avatar': '',
            'creationDate': '2024-01-01T00:00:00+00:00',
            'uuid': f"uuid-{user_id}",
            'attributes': {name: list(values) for name, values in attributes.items()},
        }

    def add_group(self, display_name: str, members=(), **attributes) -> int:
        group_id = self._next_group_id
        self._next_group_id += 1
        self.groups[group_id] = {
            'id': group_id,
            'displayName': display_name,
            'creationDate': '2024-01-01T00:00:00+00:00',
            'uuid': f"uuid-group-{group_id}",
            'attributes': {name: list(values) for name, values in attributes.items()},
        }
        for member in members:
            self.memberships.add((member, group_id))
        return group_id

    def add_user_schema(self, name: str, attribute_type: str = 'STRING', is_list: bool = False,
                        is_visible: bool = True, is_editable: bool = False, is_hardcoded: bool = False):
        self.user_schemas.append({
            'name': name, 'attributeType': attribute_type, 'isList': is_list, 'isVisible': is_visible,
            'isEditable': is_editable, 'isHardcoded': is_hardcoded, 'isReadonly': is_hardcoded,
        })

    def add_group_schema(self, name: str, attribute_type: str = 'STRING', is_list: bool = False,
                         is_visible: bool = True, is_hardcoded: bool = False):
        self.group_schemas.append({
            'name': name, 'attributeType': attribute_type, 'isList': is_list, 'isVisible': is_visible,
            'isHardcoded': is_hardcoded, 'isReadonly': is_hardcoded,
        })

    def fail(self, operation: str, kind: str = 'error', message: str = 'Internal error',
             when: Optional[Callable[[Dict[str, Any]], bool]] = None):
        """
        Make ``operation`` fail.

        ``kind`` is 'error' for a GraphQL error entry or 'ack' for an
        ``ok: false`` acknowledgement. ``when`` restricts the failure to calls
        whose variables it accepts.
        """
        self._failures.append((operation, kind, message, when))

    def clear_failures(self):
        self._failures.clear()

    # Inspection

    def members_of(self, group_id: int) -> set:
        return {u for (u, g) in self.memberships if g == group_id}

    def operations(self) -> List[str]:
        return [name for name, _ in self.calls]

    def mutations(self) -> List[tuple]:
        return [(name, variables) for name, variables in self.calls if name in MUTATIONS]

    # QueryExecutor interface

    def execute(self, query: GraphQLQuery) -> GraphQLResponse:
        variables = query.variables or {}
        self.calls.append((query.operation_name, variables))

        for operation, kind, message, when in self._failures:
            if operation != query.operation_name or (when is not None and not when(variables)):
                continue
            if kind == 'ack':
                data = {ACK_FIELDS[operation]: {'ok': False}}
                return GraphQLResponse(data, [], raw=json.dumps({'data': data}))
            raise remote_error(query.operation_name, [GraphQLError(message)])

        handler = getattr(self, f"_op_{query.operation_name}")
        data = handler(variables)
        return GraphQLResponse(data, [], raw=json.dumps({'data': data}))

    # Helpers

    @staticmethod
    def _not_found(operation: str, what: str):
        return remote_error(operation, [GraphQLError(f"Entity not found: {what}")])

    def _user_payload(self, user: Dict[str, Any]) -> Dict[str, Any]:
        payload = {k: v for k, v in user.items() if k != 'attributes'}
        payload['groups'] = [
            {'id': g, 'displayName': self.groups[g]['displayName']}
            for (u, g) in sorted(self.memberships, key=lambda m: m[1])
            if u == user['id'] and (u, g) not in self.hidden_user_groups
        ]
        attributes = [
            {'name': 'user_id', 'value': [user['id']]},
            {'name': 'mail', 'value': [user['email']]},
            {'name': 'creation_date', 'value': [user['creationDate']]},
        ]
        attributes += [{'name': n, 'value': list(v)} for n, v in user['attributes'].items()]
        payload['attributes'] = attributes
        return payload

    def _group_payload(self, group: Dict[str, Any]) -> Dict[str, Any]:
        payload = {k: v for k, v in group.items() if k != 'attributes'}
        payload['users'] = [
            {'id': u, 'displayName': self.users[u]['displayName'] if u in self.users else u}
            for u in sorted(self.members_of(group['id']))
        ]
        attributes = [{'name': 'display_name', 'value': [group['displayName']]}]
        attributes += [{'name': n, 'value': list(v)} for n, v in group['attributes'].items()]
        payload['attributes'] = attributes
        return payload

    def _require_user(self, operation: str, user_id: str) -> Dict[str, Any]:
        if user_id not in self.users:
            raise self._not_found(operation, f"No such user: '{user_id}'")
        return self.users[user_id]

    def _require_group(self, operation: str, group_id: int) -> Dict[str, Any]:
        if group_id not in self.groups:
            raise self._not_found(operation, f"No such group: '{group_id}'")
        return self.groups[group_id]

    @staticmethod
    def _ok(field: str) -> Dict[str, Any]:
        return {field: {'ok': True}}

    # Users

    def _op_GetUserDetails(self, variables):
        return {'user': self._user_payload(self._require_user('GetUserDetails', variables['id']))}

    def _op_ListUsersQuery(self, variables):
        users = [{k: v for k, v in u.items() if k != 'attributes'} for u in self.users.values()]
        return {'users': users}

    def _op_CreateUser(self, variables):
        data = variables['user']
        # The server stores identifiers in lowercase.
        user_id = data['id'].lower()
        self.add_user(user_id, email=data.get('email') or '', display_name=data.get('displayName') or '')
        user = self.users[user_id]
        user['firstName'] = data.get('firstName') or ''
        user['lastName'] = data.get('lastName') or ''
        user['avatar'] = data.get('avatar') or ''
        return {'createUser': {'id': user_id, 'creationDate': user['creationDate'],
                               'uuid': user['uuid'], 'avatar': user['avatar']}}

    def _op_UpdateUser(self, variables):
        data = variables['user']
        user = self._require_user('UpdateUser', data['id'])
        for key in ('email', 'displayName', 'firstName', 'lastName', 'avatar'):
            if data.get(key) is not None:
                user[key] = data[key]
        return self._ok('updateUser')

    def _op_DeleteUserQuery(self, variables):
        self._require_user('DeleteUserQuery', variables['user'])
        del self.users[variables['user']]
        self.memberships = {m for m in self.memberships if m[0] != variables['user']}
        return self._ok('deleteUser')

    # Groups

    def _op_GetGroupDetails(self, variables):
        return {'group': self._group_payload(self._require_group('GetGroupDetails', variables['id']))}

    def _op_GetGroupList(self, variables):
        groups = [{'id': g['id'], 'displayName': g['displayName'], 'creationDate': g['creationDate']}
                  for g in self.groups.values()]
        return {'groups': groups}

    def _op_CreateGroup(self, variables):
        group_id = self.add_group(variables['name'])
        group = self.groups[group_id]
        return {'createGroup': {'id': group_id, 'displayName': group['displayName'], 'uuid': group['uuid']}}

    def _op_UpdateGroup(self, variables):
        data = variables['group']
        group = self._require_group('UpdateGroup', data['id'])
        group['displayName'] = data['displayName']
        return self._ok('updateGroup')

    def _op_DeleteGroupQuery(self, variables):
        self._require_group('DeleteGroupQuery', variables['groupId'])
        del self.groups[variables['groupId']]
        self.memberships = {m for m in self.memberships if m[1] != variables['groupId']}
        return self._ok('deleteGroup')

    # Memberships

    def _op_AddUserToGroup(self, variables):
        user_id = variables['user'].lower()
        self._require_user('AddUserToGroup', user_id)
        self._require_group('AddUserToGroup', variables['group'])
        self.memberships.add((user_id, variables['group']))
        return self._ok('addUserToGroup')

    def _op_RemoveUserFromGroup(self, variables):
        self._require_group('RemoveUserFromGroup', variables['group'])
        self.memberships.discard((variables['user'].lower(), variables['group']))
        return self._ok('removeUserFromGroup')

    # Attribute schemas

    def _op_GetUserAttributesSchema(self, variables):
        return {'schema': {'userSchema': {'attributes': list(self.user_schemas)}}}

    def _op_GetGroupAttributesSchema(self, variables):
        return {'schema': {'groupSchema': {'attributes': list(self.group_schemas)}}}

    def _op_CreateUserAttribute(self, variables):
        self.add_user_schema(variables['name'], variables['attributeType'], variables['isList'],
                             variables['isVisible'], variables['isEditable'])
        return self._ok('addUserAttribute')

    def _op_CreateGroupAttribute(self, variables):
        self.add_group_schema(variables['name'], variables['attributeType'], variables['isList'],
                              variables['isVisible'])
        return self._ok('addGroupAttribute')

    def _op_DeleteUserAttributeQuery(self, variables):
        self.user_schemas = [s for s in self.user_schemas if s['name'] != variables['name']]
        return self._ok('deleteUserAttribute')

    def _op_DeleteGroupAttributeQuery(self, variables):
        self.group_schemas = [s for s in self.group_schemas if s['name'] != variables['name']]
        return self._ok('deleteGroupAttribute')

    # Attribute assignments

    def _op_AddAttributeToUser(self, variables):
        data = variables['user']
        user = self._require_user('AddAttributeToUser', data['id'])
        for attribute in data['insertAttributes']:
            user['attributes'][attribute['name']] = list(attribute['value'])
        return self._ok('updateUser')

    def _op_RemoveAttributeFromUser(self, variables):
        data = variables['user']
        user = self._require_user('RemoveAttributeFromUser', data['id'])
        for name in data['removeAttributes']:
            user['attributes'].pop(name, None)
        return self._ok('updateUser')

    def _op_AddAttributeToGroup(self, variables):
        data = variables['group']
        group = self._require_group('AddAttributeToGroup', data['id'])
        for attribute in data['insertAttributes']:
            group['attributes'][attribute['name']] = list(attribute['value'])
        return self._ok('updateGroup')

    def _op_RemoveAttributeFromGroup(self, variables):
        data = variables['group']
        group = self._require_group('RemoveAttributeFromGroup', data['id'])
        for name in data['removeAttributes']:
            group['attributes'].pop(name, None)
        return self._ok('updateGroup')
