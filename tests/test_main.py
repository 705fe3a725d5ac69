#!/usr/bin/env python3
"""
Unit tests for the command line interface.
"""

import io
import json
import os
import sys
import unittest
from unittest.mock import MagicMock, patch

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from lldap_client.config import ConfigurationError
from lldap_client.errors import (AcknowledgementError, AuthenticationError, EntityNotFoundError, GraphQLError,
                                 TransportError)
from lldap_client.main import run
from lldap_client.models import User
from lldap_client.reconciler import ReconcileResult
from lldap_client.session import ConnectionSettings

SETTINGS = ConnectionSettings(http_url='http://lldap:17170', ldap_url='ldap://lldap:3890', password='secret')


class CliTestCase(unittest.TestCase):

    def setUp(self):
        patchers = {
            'load_settings': patch('lldap_client.main.load_settings', return_value=(SETTINGS, {})),
            'setup_logging': patch('lldap_client.main.setup_logging'),
            'client_class': patch('lldap_client.main.LldapClient'),
        }
        self.mocks = {}
        for name, patcher in patchers.items():
            self.mocks[name] = patcher.start()
            self.addCleanup(patcher.stop)
        self.client = MagicMock()
        self.mocks['client_class'].return_value.__enter__.return_value = self.client

    def run_cli(self, *argv):
        stdout, stderr = io.StringIO(), io.StringIO()
        with patch('sys.stdout', stdout), patch('sys.stderr', stderr):
            code = run(list(argv))
        output = json.loads(stdout.getvalue()) if stdout.getvalue() else None
        return code, output, stderr.getvalue()


class TestCommands(CliTestCase):

    def test_user_get(self):
        self.client.get_user.return_value = User(id='alice', email='alice@example.com')

        code, output, _ = self.run_cli('user', 'get', 'alice')

        self.assertEqual(code, 0)
        self.assertEqual(output['email'], 'alice@example.com')
        self.mocks['client_class'].assert_called_once_with(SETTINGS)

    def test_user_create_prompts_for_password(self):
        self.client.create_user.side_effect = lambda user, password=None: user

        with patch('lldap_client.main.getpass.getpass', return_value='pw'):
            code, output, _ = self.run_cli('user', 'create', 'bob', '--email', 'bob@example.com', '--password')

        self.assertEqual(code, 0)
        user = self.client.create_user.call_args[0][0]
        self.assertEqual((user.id, user.email), ('bob', 'bob@example.com'))
        self.assertEqual(self.client.create_user.call_args[1], {'password': 'pw'})

    def test_user_update_only_changes_given_fields(self):
        self.client.get_user.return_value = User(id='alice', email='old@example.com', display_name='Alice')

        self.run_cli('user', 'update', 'alice', '--email', 'new@example.com')

        user = self.client.update_user.call_args[0][0]
        self.assertEqual(user.email, 'new@example.com')
        self.assertEqual(user.display_name, 'Alice')

    def test_user_password_check(self):
        self.client.is_valid_password.return_value = False

        with patch('lldap_client.main.getpass.getpass', return_value='pw'):
            code, output, _ = self.run_cli('user', 'password', 'alice', '--check')

        self.assertEqual(output, {'user': 'alice', 'valid': False})
        self.client.reconcile_password.assert_not_called()

    def test_group_create_with_members(self):
        self.client.create_group.side_effect = lambda group: group

        code, output, _ = self.run_cli('group', 'create', 'staff', '--member', 'u1', '--member', 'u2')

        self.assertEqual(code, 0)
        group = self.client.create_group.call_args[0][0]
        self.assertEqual(group.user_ids(), ['u1', 'u2'])

    def test_member_sync(self):
        result = ReconcileResult()
        result.added.append('u3')
        result.removed.append('u1')
        self.client.reconcile_group_members.return_value = result

        code, output, _ = self.run_cli('member', 'sync', '5', 'u2', 'u3')

        self.assertEqual(code, 0)
        self.assertEqual(output, {'group': 5, 'added': ['u3'], 'removed': ['u1']})
        self.client.reconcile_group_members.assert_called_once_with(5, ['u2', 'u3'])

    def test_attribute_set_on_group(self):
        self.client.reconcile_group_attribute.return_value = ReconcileResult()

        code, output, _ = self.run_cli('attribute', 'set', 'group', '5', 'budget', '10')

        self.assertEqual(output['changed'], False)
        self.client.reconcile_group_attribute.assert_called_once_with(5, 'budget', ['10'])

    def test_attribute_create_hidden_list(self):
        self.run_cli('attribute', 'create', 'user', 'phones', 'string', '--list', '--hidden')
        self.client.create_user_attribute.assert_called_once_with('phones', 'string', True, False, False)


class TestExitCodes(CliTestCase):

    def test_configuration_error(self):
        self.mocks['load_settings'].side_effect = ConfigurationError('Missing required field: lldap.password')

        code, _, err = self.run_cli('group', 'list')

        self.assertEqual(code, 2)
        self.assertIn('lldap.password', err)
        self.mocks['client_class'].assert_not_called()

    def test_transport_error(self):
        self.client.list_groups.side_effect = TransportError('connection refused')
        code, _, err = self.run_cli('group', 'list')
        self.assertEqual(code, 3)
        self.assertIn('connection refused', err)

    def test_rejected_admin_bind_on_password_change(self):
        self.client.reconcile_password.side_effect = AuthenticationError(
            "administrative bind rejected while changing password of 'cn=alice,ou=people,dc=example,dc=com'")

        with patch('lldap_client.main.getpass.getpass', return_value='pw'):
            code, _, err = self.run_cli('user', 'password', 'alice')

        self.assertEqual(code, 3)
        self.assertIn('administrative bind rejected', err)

    def test_remote_error(self):
        self.client.get_user.side_effect = EntityNotFoundError('GetUserDetails', [GraphQLError('Entity not found')])
        code, _, _ = self.run_cli('user', 'get', 'ghost')
        self.assertEqual(code, 1)

    def test_acknowledgement_error(self):
        self.client.delete_group.side_effect = AcknowledgementError('DeleteGroupQuery', 'Failed to delete group')
        code, _, _ = self.run_cli('group', 'delete', '3')
        self.assertEqual(code, 1)

    def test_invalid_attribute_type(self):
        self.client.create_group_attribute.side_effect = ValueError('invalid attribute type BOOLEAN')
        code, _, err = self.run_cli('attribute', 'create', 'group', 'flag', 'BOOLEAN')
        self.assertEqual(code, 2)
        self.assertIn('BOOLEAN', err)

    def test_group_attribute_cannot_be_editable(self):
        code, _, _ = self.run_cli('attribute', 'create', 'group', 'flag', 'STRING', '--editable')
        self.assertEqual(code, 2)
        self.client.create_group_attribute.assert_not_called()


if __name__ == '__main__':
    unittest.main()
