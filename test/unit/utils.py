# Copyright (c) 2010-2012 OpenStack, LLC.
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

import copy
import importlib
import json
import unittest

from requests.structures import CaseInsensitiveDict
from urllib.parse import urlparse

from rackclient import client as c
from rackclient.account import Account
from rackclient.cache import cache_key, Credentials
from rackclient.catalog import IdentityRecord
from rackclient.utils import EMPTY_ETAG

STORAGE_URL = 'https://storage101.ord1.clouddrive.com/v1/MossoCloudFS_abc'
CDN_URL = 'https://cdn5.clouddrive.com/v1/MossoCloudFS_abc'
SERVERS_URL = 'https://ord.servers.api.rackspacecloud.com/v2/123456'
IDENTITY_URL = 'https://identity.api.rackspacecloud.com/v2.0'

IDENTITY_BODY = {
    'access': {
        'token': {'id': 'token', 'expires': '2026-10-20T12:00:00Z'},
        'serviceCatalog': [
            {'name': 'cloudFiles', 'type': 'object-store', 'endpoints': [
                {'region': 'ORD', 'publicURL': STORAGE_URL},
                {'region': 'DFW', 'publicURL':
                 'https://storage101.dfw1.clouddrive.com/v1/MossoCloudFS_abc'},
            ]},
            {'name': 'cloudFilesCDN', 'type': 'rax:object-cdn', 'endpoints': [
                {'region': 'ORD', 'publicURL': CDN_URL},
                {'region': 'DFW', 'publicURL':
                 'https://cdn1.clouddrive.com/v1/MossoCloudFS_abc'},
            ]},
            {'name': 'cloudServersOpenStack', 'type': 'compute', 'endpoints': [
                {'region': 'ORD', 'publicURL': SERVERS_URL},
                {'region': 'DFW', 'publicURL':
                 'https://dfw.servers.api.rackspacecloud.com/v2/123456'},
            ]},
            {'name': 'identity', 'type': 'identity', 'endpoints': [
                {'publicURL': IDENTITY_URL},
            ]},
        ],
    },
}


def identity_body(token='token'):
    body = copy.deepcopy(IDENTITY_BODY)
    body['access']['token']['id'] = token
    return body


def identity_response(token='token'):
    return StubResponse(200, json.dumps(identity_body(token)),
                        {'content-type': 'application/json'})


def cached_account(username='user', api_key='key', token='token', **kwargs):
    """An Account whose identity is already cached; no exchange needed."""
    record = IdentityRecord.from_identity_response(identity_body(token))
    cache = {cache_key(Credentials(username, api_key)): record}
    return Account(username, api_key, cache=cache, **kwargs)


class StubResponse:
    """
    Placeholder structure for use with fake_http_connect's code_iter to modify
    response attributes (status, body, headers) on a per-request basis.
    """

    def __init__(self, status=200, body='', headers=None):
        self.status = status
        self.body = body
        self.headers = headers or {}

    def __repr__(self):
        return '%s(%r, %r, %r)' % (self.__class__.__name__, self.status,
                                   self.body, self.headers)


class FakeResponse:
    """Just enough of requests.Response for the client."""

    def __init__(self, status, body=b'', headers=None, etag=None):
        self.status_code = status
        self.reason = 'Fake'
        if isinstance(body, str):
            body = body.encode('utf-8')
        self.content = body
        if headers is None:
            headers = {'content-length': str(len(body)),
                       'etag': etag or '"%s"' % EMPTY_ETAG}
        self.headers = CaseInsensitiveDict(headers)
        self.url = None
        self.closed = False

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]

    def close(self):
        self.closed = True


def fake_http_connect(*code_iter, **kwargs):
    """
    Generate a callable which yields a series of stubbed outcomes, one per
    request. Each item of code_iter is a status code, a StubResponse, or an
    exception (class or instance) to raise from the transport.
    """
    etag_iter = iter(kwargs.get('etags') or [None] * len(code_iter))
    code_iter = iter(code_iter)

    def connect():
        status = next(code_iter)
        if isinstance(status, BaseException) or (
                isinstance(status, type) and
                issubclass(status, BaseException)):
            return status
        if isinstance(status, StubResponse):
            return FakeResponse(status.status, status.body,
                                status.headers or None)
        return FakeResponse(status, kwargs.get('body', b''),
                            kwargs.get('headers'), etag=next(etag_iter))

    connect.code_iter = code_iter
    return connect


class MockHttpTest(unittest.TestCase):

    def setUp(self):
        super(MockHttpTest, self).setUp()
        self.fake_connect = None
        self.request_log = []
        self.sleep_calls = []
        c.sleep = self.sleep_calls.append

        def fake_http_connection(*args, **kwargs):
            self.validateMockedRequestsConsumed()
            self.request_log = []
            self.fake_connect = fake_http_connect(*args, **kwargs)

            def wrapper(url, cacert=None, insecure=False,
                        default_user_agent=None, timeout=None):
                parsed = urlparse(url)

                class FakeConnection:
                    def close(self):
                        pass

                conn = FakeConnection()

                def request(method, path, data=None, headers=None):
                    if hasattr(data, 'read'):
                        body = data.read()
                    else:
                        body = data
                    try:
                        outcome = self.fake_connect()
                    except StopIteration:
                        self.fail('Unexpected %s request for %s' % (
                            method, path))
                    self.request_log.append(
                        (parsed, method, path, body, dict(headers or {}),
                         outcome))
                    if not isinstance(outcome, FakeResponse):
                        raise outcome
                    outcome.url = '%s://%s%s' % (
                        parsed.scheme, parsed.netloc, path)
                    return outcome

                conn.request = request
                return conn
            return wrapper
        self.fake_http_connection = fake_http_connection

    def iter_request_log(self):
        for parsed, method, path, body, headers, resp in self.request_log:
            full_path = '%s://%s%s' % (parsed.scheme, parsed.netloc, path)
            yield {
                'method': method,
                'host': parsed.netloc,
                'full_path': full_path,
                'parsed_path': urlparse(full_path),
                'path': path,
                'body': body,
                'headers': CaseInsensitiveDict(headers),
                'resp': resp,
                'status': getattr(resp, 'status_code', None),
            }

    def assert_request_equal(self, expected, real_request):
        method, path = expected[:2]
        if urlparse(path).scheme:
            match_path = real_request['full_path']
        else:
            match_path = real_request['path']
        self.assertEqual((method, path), (real_request['method'],
                                          match_path))
        if len(expected) > 2:
            body = expected[2]
            real_request['expected'] = body
            err_msg = 'Body mismatch for %(method)s %(path)s, ' \
                'expected %(expected)r, and got %(body)r' % real_request
            self.assertEqual(body, real_request['body'], err_msg)

        if len(expected) > 3:
            headers = CaseInsensitiveDict(expected[3])
            for key, value in headers.items():
                real_request['key'] = key
                real_request['expected_value'] = value
                real_request['value'] = real_request['headers'].get(key)
                err_msg = (
                    'Header mismatch on %(key)r, '
                    'expected %(expected_value)r and got %(value)r '
                    'for %(method)s %(path)s %(headers)r' % real_request)
                self.assertEqual(value, real_request['value'], err_msg)

    def assertRequests(self, expected_requests):
        """
        Make sure some requests were made like you expected, provide a list of
        expected requests, typically in the form of [(method, path), ...]
        or [(method, path, body, headers), ...]
        """
        real_requests = self.iter_request_log()
        for expected in expected_requests:
            try:
                real_request = next(real_requests)
            except StopIteration:
                self.fail('Expected request %r was never made' %
                          (expected,))
            self.assert_request_equal(expected, real_request)
        try:
            real_request = next(real_requests)
        except StopIteration:
            pass
        else:
            self.fail('At least one extra request received: %r' %
                      real_request)

    def validateMockedRequestsConsumed(self):
        if not self.fake_connect:
            return
        unused_responses = list(self.fake_connect.code_iter)
        if unused_responses:
            self.fail('Unused responses %r' % (unused_responses,))

    def tearDown(self):
        self.validateMockedRequestsConsumed()
        super(MockHttpTest, self).tearDown()
        # undo the module level patching of http_connection and sleep
        importlib.reload(c)
