# Copyright (c) 2010-2013 OpenStack, LLC.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or
# implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from rackclient import client as c
from rackclient.account import Account
from rackclient.catalog import IdentityRecord
from rackclient.compute import Servers
from rackclient.exceptions import (
    AmbiguousRegionError, ArgumentError, NotAuthorized, UnknownServiceError)
from rackclient.identity import Users
from rackclient.storage import Containers

from .utils import (
    IDENTITY_URL, MockHttpTest, STORAGE_URL, StubResponse, cached_account,
    identity_response)

IDENTITY_TOKENS_URL = 'https://identity.api.rackspacecloud.com/v2.0/tokens'


class TestFromEnviron(MockHttpTest):

    def test_required(self):
        for environ in ({}, {'RACK_USERNAME': 'user'},
                        {'RACK_API_KEY': 'key'},
                        {'RACK_USERNAME': '', 'RACK_API_KEY': 'key'}):
            self.assertRaises(ArgumentError, Account.from_environ, environ)

    def test_defaults(self):
        account = Account.from_environ(
            {'RACK_USERNAME': 'user', 'RACK_API_KEY': 'key'})
        self.assertEqual('user', account.username)
        self.assertEqual('key', account.credentials.api_key)
        self.assertEqual(c.IDENTITY_HOST, account.identity_host)
        self.assertEqual(c.DEFAULT_TIMEOUT, account.timeout)
        self.assertEqual(c.DEFAULT_RETRIES, account.retries)
        self.assertFalse(account.insecure)

    def test_options(self):
        account = Account.from_environ({
            'RACK_USERNAME': 'user',
            'RACK_API_KEY': 'key',
            'RACK_IDENTITY_HOST': 'lon.identity.api.rackspacecloud.com',
            'RACKCLIENT_TIMEOUT': '12.5',
            'RACKCLIENT_RETRIES': '1',
            'RACKCLIENT_INSECURE': 'yes',
        })
        self.assertEqual('lon.identity.api.rackspacecloud.com',
                         account.identity_host)
        self.assertEqual(12.5, account.timeout)
        self.assertEqual(1, account.retries)
        self.assertTrue(account.insecure)

    def test_kwargs_win(self):
        account = Account.from_environ(
            {'RACK_USERNAME': 'user', 'RACK_API_KEY': 'key',
             'RACKCLIENT_RETRIES': '1'}, retries=7)
        self.assertEqual(7, account.retries)

    def test_exchange_uses_identity_host(self):
        account = Account.from_environ({
            'RACK_USERNAME': 'user',
            'RACK_API_KEY': 'key',
            'RACK_IDENTITY_HOST': 'lon.identity.api.rackspacecloud.com',
        })
        c.http_connection = self.fake_http_connection(identity_response())
        self.assertEqual('token', account.auth_token)
        self.assertRequests([
            ('POST',
             'https://lon.identity.api.rackspacecloud.com/v2.0/tokens'),
        ])


class TestAccount(MockHttpTest):

    def test_repr(self):
        self.assertEqual('<Account username=user>',
                         repr(Account('user', 'key')))

    def test_authenticates_lazily_and_once(self):
        account = Account('user', 'key')
        c.http_connection = self.fake_http_connection(identity_response('t1'))
        self.assertEqual('t1', account.auth_token)
        self.assertEqual('t1', account.auth_token)
        self.assertEqual(STORAGE_URL,
                         account.public_endpoint('cloudFiles', 'ORD'))
        self.assertRequests([('POST', IDENTITY_TOKENS_URL)])

    def test_bad_credentials(self):
        account = Account('user', 'wrong')
        c.http_connection = self.fake_http_connection(401)
        self.assertRaises(NotAuthorized, getattr, account, 'auth_token')

    def test_shared_cache(self):
        cache = {}
        c.http_connection = self.fake_http_connection(identity_response())
        Account('user', 'key', cache=cache).auth_token
        self.assertIsInstance(cache['rackclient-user'], IdentityRecord)
        self.assertEqual('token', Account('user', 'key', cache=cache)
                         .auth_token)
        self.assertEqual(1, len(self.request_log))

    def test_refresh_cache(self):
        account = cached_account(token='old')
        c.http_connection = self.fake_http_connection(identity_response('new'))
        self.assertEqual('new', account.refresh_cache().auth_token)
        self.assertEqual('new', account.auth_token)

    def test_invalidate(self):
        cache = {}
        account = Account('user', 'key', cache=cache)
        c.http_connection = self.fake_http_connection(
            identity_response('t1'), identity_response('t2'))
        self.assertEqual('t1', account.auth_token)
        account.invalidate()
        self.assertEqual({}, cache)
        self.assertEqual('t2', account.auth_token)

    def test_public_endpoint(self):
        account = cached_account()
        self.assertEqual(STORAGE_URL,
                         account.public_endpoint('cloudFiles', 'ord'))
        self.assertEqual(IDENTITY_URL, account.public_endpoint('identity'))
        self.assertRaises(AmbiguousRegionError, account.public_endpoint,
                          'cloudFiles')
        self.assertRaises(UnknownServiceError, account.public_endpoint,
                          'cloudFiles', 'SYD')
        self.assertRaises(UnknownServiceError, account.public_endpoint,
                          'cloudDNS')

    def test_empty_catalog(self):
        account = Account('user', 'key')
        c.http_connection = self.fake_http_connection(StubResponse(
            200, '{"access": {"token": {"id": "t"}}}'))
        self.assertEqual(set(), account.service_names())
        self.assertRaises(UnknownServiceError, account.public_endpoint,
                          'cloudFiles', 'ORD')

    def test_service_names(self):
        self.assertEqual(
            set(['cloudFiles', 'cloudFilesCDN', 'cloudServersOpenStack',
                 'identity']),
            cached_account().service_names())

    def test_http_client(self):
        account = cached_account(retries=1, starting_backoff=2, timeout=9,
                                 insecure=True)
        client = account.http_client('example.com')
        self.assertIsInstance(client, c.HttpClient)
        self.assertIs(account, client.account)
        self.assertEqual(1, client.retries)
        self.assertEqual(2, client.starting_backoff)
        self.assertEqual(9, client.timeout)
        self.assertTrue(client.insecure)

    def test_facades(self):
        account = cached_account()
        self.assertIsInstance(account.containers('ORD'), Containers)
        self.assertIsInstance(account.servers('DFW'), Servers)
        self.assertIsInstance(account.users(), Users)
        self.assertEqual('DFW', account.servers('DFW').region)
