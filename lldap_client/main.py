"""
Command line interface for the LLDAP client.

Every command prints its result as JSON on stdout. Errors are printed to
stderr and mapped to the exit code of their category.
"""

import argparse
import getpass
import json
import logging
import sys
from typing import Any, List, Optional

from lldap_client.client import LldapClient
from lldap_client.config import ConfigurationError, load_settings
from lldap_client.errors import LldapError, TransportError
from lldap_client.logging_setup import setup_logging
from lldap_client.models import VALID_ATTRIBUTE_TYPES, Group, User

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_REMOTE_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_TRANSPORT_ERROR = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='lldap-client', description='Manage users, groups and attributes of an LLDAP server')
    parser.add_argument('--config', '-c', help='Path to configuration file')
    commands = parser.add_subparsers(dest='command', required=True)

    # user
    user = commands.add_parser('user', help='Manage users').add_subparsers(dest='action', required=True)

    p = user.add_parser('get', help='Show a user')
    p.add_argument('user_id')

    for action in ('create', 'update'):
        p = user.add_parser(action, help=f'{action.capitalize()} a user')
        p.add_argument('user_id')
        p.add_argument('--email')
        p.add_argument('--display-name')
        p.add_argument('--first-name')
        p.add_argument('--last-name')
        p.add_argument('--avatar', help='Base64 encoded JPEG')
    p = user.choices['create']
    p.add_argument('--password', action='store_true', help='Prompt for an initial password')

    p = user.add_parser('delete', help='Delete a user')
    p.add_argument('user_id')

    p = user.add_parser('password', help='Set a user password unless it is already current')
    p.add_argument('user_id')
    p.add_argument('--check', action='store_true', help='Only check the password, never change it')

    user.add_parser('list', help='List users')

    # group
    group = commands.add_parser('group', help='Manage groups').add_subparsers(dest='action', required=True)

    p = group.add_parser('get', help='Show a group')
    p.add_argument('group_id', type=int)

    p = group.add_parser('create', help='Create a group')
    p.add_argument('display_name')
    p.add_argument('--member', action='append', default=[], help='Initial member (repeatable)')

    p = group.add_parser('rename', help='Change the display name of a group')
    p.add_argument('group_id', type=int)
    p.add_argument('display_name')

    p = group.add_parser('delete', help='Delete a group')
    p.add_argument('group_id', type=int)

    group.add_parser('list', help='List groups')

    # member
    member = commands.add_parser('member', help='Manage group memberships').add_subparsers(dest='action', required=True)
    for action in ('add', 'remove'):
        p = member.add_parser(action, help=f'{action.capitalize()} a group member')
        p.add_argument('group_id', type=int)
        p.add_argument('user_id')

    p = member.add_parser('sync', help='Make the given users the exact member list of a group')
    p.add_argument('group_id', type=int)
    p.add_argument('user_ids', nargs='*')

    # attribute
    attribute = commands.add_parser('attribute', help='Manage custom attributes').add_subparsers(dest='action', required=True)

    p = attribute.add_parser('list', help='List attribute schemas')
    p.add_argument('kind', choices=['user', 'group'])

    p = attribute.add_parser('create', help='Create an attribute schema')
    p.add_argument('kind', choices=['user', 'group'])
    p.add_argument('name')
    p.add_argument('attribute_type', metavar='TYPE', help=f"One of {', '.join(VALID_ATTRIBUTE_TYPES)}")
    p.add_argument('--list', dest='is_list', action='store_true', help='Allow several values')
    p.add_argument('--hidden', action='store_true', help='Hide the attribute from users')
    p.add_argument('--editable', action='store_true', help='Let users edit the attribute (user attributes only)')

    p = attribute.add_parser('delete', help='Delete an attribute schema')
    p.add_argument('kind', choices=['user', 'group'])
    p.add_argument('name')

    for action, help_text in (('add', 'Assign values to an attribute'),
                              ('set', 'Assign values to an attribute, replacing any other values')):
        p = attribute.add_parser(action, help=help_text)
        p.add_argument('kind', choices=['user', 'group'])
        p.add_argument('entity_id')
        p.add_argument('name')
        p.add_argument('values', nargs='+')

    p = attribute.add_parser('remove', help='Remove an attribute from a user or group')
    p.add_argument('kind', choices=['user', 'group'])
    p.add_argument('entity_id')
    p.add_argument('name')

    return parser


def _entity_id(kind: str, value: str):
    if kind == 'group':
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"group id must be an integer: {value}")
    return value


def _read_password(prompt: str = 'Password: ') -> str:
    password = getpass.getpass(prompt)
    if not password:
        raise ValueError("password must not be empty")
    return password


def _user_command(client: LldapClient, args) -> Any:
    if args.action == 'get':
        return client.get_user(args.user_id).to_dict()
    if args.action == 'list':
        return [u.to_dict() for u in client.list_users()]
    if args.action == 'create':
        user = User(
            id=args.user_id,
            email=args.email or '',
            display_name=args.display_name or '',
            first_name=args.first_name or '',
            last_name=args.last_name or '',
            avatar=args.avatar or '',
        )
        password = _read_password() if args.password else None
        return client.create_user(user, password=password).to_dict()
    if args.action == 'update':
        user = client.get_user(args.user_id)
        for attr in ('email', 'display_name', 'first_name', 'last_name', 'avatar'):
            value = getattr(args, attr)
            if value is not None:
                setattr(user, attr, value)
        client.update_user(user)
        return user.to_dict()
    if args.action == 'delete':
        client.delete_user(args.user_id)
        return {'deleted': args.user_id}
    if args.action == 'password':
        password = _read_password()
        if args.check:
            return {'user': args.user_id, 'valid': client.is_valid_password(args.user_id, password)}
        return {'user': args.user_id, 'changed': client.reconcile_password(args.user_id, password)}
    raise ValueError(f"unknown user action {args.action}")


def _group_command(client: LldapClient, args) -> Any:
    if args.action == 'get':
        return client.get_group(args.group_id).to_dict()
    if args.action == 'list':
        return [g.to_dict() for g in client.list_groups()]
    if args.action == 'create':
        group = Group(display_name=args.display_name, users=[User(id=m) for m in args.member])
        return client.create_group(group).to_dict()
    if args.action == 'rename':
        client.update_group_display_name(args.group_id, args.display_name)
        return {'id': args.group_id, 'displayName': args.display_name}
    if args.action == 'delete':
        client.delete_group(args.group_id)
        return {'deleted': args.group_id}
    raise ValueError(f"unknown group action {args.action}")


def _member_command(client: LldapClient, args) -> Any:
    if args.action == 'add':
        client.add_user_to_group(args.group_id, args.user_id)
        return {'group': args.group_id, 'added': [args.user_id]}
    if args.action == 'remove':
        client.remove_user_from_group(args.group_id, args.user_id)
        return {'group': args.group_id, 'removed': [args.user_id]}
    if args.action == 'sync':
        result = client.reconcile_group_members(args.group_id, args.user_ids)
        return {'group': args.group_id, 'added': result.added, 'removed': result.removed}
    raise ValueError(f"unknown member action {args.action}")


def _attribute_command(client: LldapClient, args) -> Any:
    is_user = args.kind == 'user'

    if args.action == 'list':
        schemas = client.list_user_attribute_schemas() if is_user else client.list_group_attribute_schemas()
        return [s.to_dict() for s in schemas]
    if args.action == 'create':
        if is_user:
            client.create_user_attribute(args.name, args.attribute_type, args.is_list, not args.hidden, args.editable)
        else:
            if args.editable:
                raise ValueError("group attributes cannot be user editable")
            client.create_group_attribute(args.name, args.attribute_type, args.is_list, not args.hidden)
        return {'created': args.name, 'kind': args.kind}
    if args.action == 'delete':
        if is_user:
            client.delete_user_attribute(args.name)
        else:
            client.delete_group_attribute(args.name)
        return {'deleted': args.name, 'kind': args.kind}

    entity_id = _entity_id(args.kind, args.entity_id)
    if args.action == 'add':
        if is_user:
            client.add_attribute_to_user(entity_id, args.name, args.values)
        else:
            client.add_attribute_to_group(entity_id, args.name, args.values)
        return {'id': entity_id, 'name': args.name, 'value': args.values}
    if args.action == 'remove':
        if is_user:
            client.remove_attribute_from_user(entity_id, args.name)
        else:
            client.remove_attribute_from_group(entity_id, args.name)
        return {'id': entity_id, 'removed': args.name}
    if args.action == 'set':
        if is_user:
            result = client.reconcile_user_attribute(entity_id, args.name, args.values)
        else:
            result = client.reconcile_group_attribute(entity_id, args.name, args.values)
        return {'id': entity_id, 'name': args.name, 'changed': result.changed}
    raise ValueError(f"unknown attribute action {args.action}")


COMMANDS = {
    'user': _user_command,
    'group': _group_command,
    'member': _member_command,
    'attribute': _attribute_command,
}


def run(argv: Optional[List[str]] = None) -> int:
    """
    Run one command.

    Returns:
        Exit code (0 success, 1 remote error, 2 configuration or usage error, 3 transport error)
    """
    args = build_parser().parse_args(argv)

    try:
        settings, logging_config = load_settings(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_logging(logging_config)

    try:
        with LldapClient(settings) as client:
            result = COMMANDS[args.command](client, args)
    except ValueError as e:
        logger.error(f"Invalid input: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except TransportError as e:
        logger.error(f"Transport error: {e}")
        print(f"Transport error: {e}", file=sys.stderr)
        return EXIT_TRANSPORT_ERROR
    except LldapError as e:
        logger.error(f"{args.command} {args.action} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_REMOTE_ERROR

    print(json.dumps(result, indent=2, sort_keys=True))
    return EXIT_OK


def main():
    """Main entry point for the application."""
    sys.exit(run())


if __name__ == "__main__":
    main()
