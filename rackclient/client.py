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

"""
Authenticated HTTP request pipeline: the identity exchange, and a per-host
client that attaches the cached token, re-authenticates once on a 401 and
retries transport timeouts with a linear backoff.
"""
import json
import logging
import socket
from time import sleep
from urllib.parse import quote, unquote, urlparse

import requests
from requests.exceptions import Timeout as RequestsTimeout
from urllib3.exceptions import TimeoutError as Urllib3Timeout

from rackclient import version as rackclient_version
from rackclient.catalog import IdentityRecord
from rackclient.exceptions import (
    ArgumentError, ClientException, ClientTimeout, error_class_for_status)
from rackclient.utils import LengthWrapper, parse_api_response

IDENTITY_HOST = 'identity.api.rackspacecloud.com'
IDENTITY_PATH = '/v2.0/tokens'
IDENTITY_CREDENTIALS_FIELD = 'RAX-KSKEY:apiKeyCredentials'

DEFAULT_RETRIES = 3
DEFAULT_BACKOFF = 5
DEFAULT_TIMEOUT = 70

TIMEOUT_ERRORS = (RequestsTimeout, Urllib3Timeout, socket.timeout)

logger = logging.getLogger("rackclient")
logger.addHandler(logging.NullHandler())

#: Default behaviour is to redact header values known to contain secrets,
#: such as ``X-Auth-Key`` and ``X-Auth-Token``. Up to the first 16 chars
#: may be revealed.
#:
#: To disable, set the value of ``redact_sensitive_headers`` to ``False``.
#:
#: When header redaction is enabled, ``reveal_sensitive_prefix`` configures the
#: maximum length of any sensitive header data sent to the logs. If the header
#: is less than twice this length, only ``int(len(value)/2)`` chars will be
#: logged; if it is less than 15 chars long, even less will be logged.
logger_settings = {
    'redact_sensitive_headers': True,
    'reveal_sensitive_prefix': 16
}
#: A list of sensitive headers to redact in logs. Note that when extending this
#: list, the header names must be added in all lower case.
LOGGER_SENSITIVE_HEADERS = [
    'x-auth-token', 'x-auth-key', 'x-storage-token',
    'x-account-meta-temp-url-key', 'x-account-meta-temp-url-key-2',
    'x-container-meta-temp-url-key', 'set-cookie'
]


def safe_value(name, value):
    """
    Only show up to logger_settings['reveal_sensitive_prefix'] characters
    from a sensitive header.

    :param name: Header name
    :param value: Header value
    :return: Safe header value
    """
    if name.lower() in LOGGER_SENSITIVE_HEADERS:
        prefix_length = logger_settings.get('reveal_sensitive_prefix', 16)
        prefix_length = int(
            min(prefix_length, (len(value) ** 2) / 32, len(value) / 2)
        )
        redacted_value = value[0:prefix_length]
        return redacted_value + '...'
    return value


def scrub_headers(headers):
    """
    Redact header values that can contain sensitive information that
    should not be logged.

    :param headers: Either a dict or an iterable of two-element tuples
    :return: Safe dictionary of headers with sensitive information removed
    """
    if hasattr(headers, 'items'):
        headers = headers.items()
    headers = [
        (parse_header_string(key), parse_header_string(val))
        for (key, val) in headers
    ]
    if not logger_settings.get('redact_sensitive_headers', True):
        return dict(headers)
    if logger_settings.get('reveal_sensitive_prefix', 16) < 0:
        logger_settings['reveal_sensitive_prefix'] = 16
    return {key: safe_value(key, val) for (key, val) in headers}


def parse_header_string(data):
    if not isinstance(data, (str, bytes)):
        data = str(data)
    if isinstance(data, bytes):
        try:
            data = data.decode('ascii')
        except UnicodeDecodeError:
            data = quote(data)
    try:
        unquoted = unquote(data, errors='strict')
    except UnicodeDecodeError:
        return data
    return unquoted


def http_log(args, kwargs, resp, body):
    if not logger.isEnabledFor(logging.INFO):
        return

    # create and log equivalent curl command
    string_parts = ['curl -i']
    for element in args:
        if element == 'HEAD':
            string_parts.append(' -I')
        elif element in ('GET', 'POST', 'PUT', 'DELETE'):
            string_parts.append(' -X %s' % element)
        else:
            string_parts.append(' %s' % parse_header_string(element))
    if 'headers' in kwargs:
        headers = scrub_headers(kwargs['headers'])
        for element in headers:
            header = ' -H "%s: %s"' % (element, headers[element])
            string_parts.append(header)

    # log response as debug if good, or info if error
    if resp.status_code < 300:
        log_method = logger.debug
    else:
        log_method = logger.info

    log_method("REQ: %s", "".join(string_parts))
    log_method("RESP STATUS: %s %s", resp.status_code, resp.reason)
    log_method("RESP HEADERS: %s", scrub_headers(resp.headers))
    if body:
        log_method("RESP BODY: %s", body)


def encode_header_value(value):
    if type(value) in (int, float, bool):
        # requests only accepts str or bytes header values
        value = str(value)
    return value


class HTTPConnection:
    def __init__(self, url, cacert=None, insecure=False,
                 default_user_agent=None, timeout=None):
        """
        Make a requests-backed connection to one scheme and host.

        :param url: url to connect to; only the scheme and host are used
        :param cacert: A CA bundle file to use in verifying a TLS server
                       certificate.
        :param insecure: Allow to access servers without checking SSL certs.
                         The server's certificate will not be verified.
        :param default_user_agent: Set the User-Agent header on every request.
                                   If set to None (default), the user agent
                                   will be "python-rackclient-<version>".
        :param timeout: socket read timeout value, passed directly to
                        the requests library.
        :raises ClientException: Unable to handle protocol scheme
        """
        self.url = url
        self.parsed_url = urlparse(url)
        self.host = self.parsed_url.netloc
        self.requests_args = {}
        self.request_session = requests.Session()
        # Don't use requests's default headers
        self.request_session.headers = None
        self.resp = None
        if self.parsed_url.scheme not in ('http', 'https'):
            raise ClientException('Unsupported scheme "%s" in url "%s"'
                                  % (self.parsed_url.scheme, url))
        self.requests_args['verify'] = not insecure
        if cacert and not insecure:
            self.requests_args['verify'] = cacert
        self.requests_args['stream'] = True
        if default_user_agent is None:
            default_user_agent = \
                'python-rackclient-%s' % rackclient_version.version_string
        self.default_user_agent = default_user_agent
        if timeout:
            self.requests_args['timeout'] = timeout

    def _request(self, *arg, **kwarg):
        """Final wrapper before requests call, to be patched in tests"""
        return self.request_session.request(*arg, **kwarg)

    def request(self, method, full_path, data=None, headers=None):
        """Encode headers, then call requests.request"""
        headers = dict((name, encode_header_value(value))
                       for name, value in (headers or {}).items())
        if not any(name.lower() == 'user-agent' for name in headers):
            headers['User-Agent'] = self.default_user_agent
        url = "%s://%s%s" % (
            self.parsed_url.scheme,
            self.parsed_url.netloc,
            full_path)
        self.resp = self._request(method, url, headers=headers, data=data,
                                  **self.requests_args)
        return self.resp

    def close(self):
        if self.resp is not None:
            self.resp.close()
        self.request_session.close()


def http_connection(*arg, **kwarg):
    """:returns: an HTTPConnection object"""
    return HTTPConnection(*arg, **kwarg)


def get_auth(credentials, identity_host=IDENTITY_HOST, timeout=None,
             insecure=False, cacert=None):
    """
    Exchange account credentials for a token and service catalog.

    A 401 here means the credentials are wrong and is never retried.

    :param credentials: a :class:`rackclient.cache.Credentials`
    :returns: an :class:`IdentityRecord`
    :raises NotAuthorized: the identity service rejected the credentials
    :raises ClientException: any other non-2xx response
    :raises ClientTimeout: the identity service did not answer in time
    """
    url = 'https://%s' % identity_host
    payload = {
        'auth': {
            IDENTITY_CREDENTIALS_FIELD: {
                'username': credentials.username,
                'apiKey': credentials.api_key,
            }
        }
    }
    headers = {'Content-Type': 'application/json',
               'Accept': 'application/json'}
    method = 'POST'
    conn = http_connection(url, cacert=cacert, insecure=insecure,
                           timeout=timeout)
    try:
        resp = conn.request(method, IDENTITY_PATH, json.dumps(payload),
                            headers)
        body = resp.content
    except TIMEOUT_ERRORS:
        raise ClientTimeout('Timeout during identity exchange',
                            http_method=method, http_scheme='https',
                            http_host=identity_host, http_path=IDENTITY_PATH)
    finally:
        conn.close()

    ok = 200 <= resp.status_code < 300
    # a successful body carries the token, so only failures are logged in full
    http_log((url + IDENTITY_PATH, method), {'headers': headers}, resp,
             None if ok else body)
    if not ok:
        raise error_class_for_status(resp.status_code).from_response(
            resp, 'Identity exchange failed', body, method)
    return IdentityRecord.from_identity_response(
        parse_api_response(resp.headers, body))


class HttpClient:
    """
    Issue requests against a single host on behalf of an account.

    Every attempt carries the account's current ``X-Auth-Token``. A 401 makes
    the client invalidate the account's cached identity and re-issue the
    request once with a fresh token; a transport timeout is retried up to
    ``retries`` more times, sleeping ``starting_backoff`` seconds times the
    retry number in between. Any other non-2xx response raises the matching
    :mod:`rackclient.exceptions` class.

    You probably don't want to instantiate this directly, see
    :meth:`rackclient.account.Account.http_client`.
    """

    def __init__(self, account, hostname, retries=DEFAULT_RETRIES,
                 starting_backoff=DEFAULT_BACKOFF, timeout=DEFAULT_TIMEOUT,
                 insecure=False, cacert=None):
        hostname = str(hostname)
        if '://' in hostname:
            raise ArgumentError('hostname must be plain hostname, '
                                'leave the protocol out')
        self.account = account
        self.hostname = hostname
        self.url = 'https://%s' % hostname
        self.retries = retries
        self.starting_backoff = starting_backoff
        self.timeout = timeout
        self.insecure = insecure
        self.cacert = cacert
        self.http_conn = None
        # attempts made by the most recent request; not meaningful when the
        # client is shared between threads
        self.attempts = 0

    def __repr__(self):
        return '<%s %s>' % (type(self).__name__, self.hostname)

    def http_connection(self):
        return http_connection(self.url, cacert=self.cacert,
                               insecure=self.insecure, timeout=self.timeout)

    def close(self):
        if self.http_conn:
            self.http_conn.close()
            self.http_conn = None

    def get(self, path, headers=None):
        """
        The response body is not read; use ``resp.content`` or
        ``resp.iter_content()``.
        """
        return self._retry('GET', path, headers)

    def head(self, path, headers=None):
        return self._retry('HEAD', path, headers)

    def delete(self, path, headers=None):
        return self._retry('DELETE', path, headers)

    def put(self, path, headers=None, body=None):
        return self._retry('PUT', path, headers, body)

    def post(self, path, body=None, headers=None):
        return self._retry('POST', path, headers, body)

    def streaming_put(self, path, contents, byte_count, headers=None):
        """
        PUT ``byte_count`` bytes read from ``contents``.

        :param contents: a binary file-like object, positioned where the
                         upload starts. It is rewound to that position before
                         any retried attempt, so it must support ``seek`` and
                         ``tell`` (or be a :class:`LengthWrapper` over such an
                         object) if a retry is to succeed.
        """
        if not isinstance(contents, LengthWrapper):
            contents = LengthWrapper(contents, byte_count)
        headers = dict(headers or {})
        headers['Content-Length'] = str(byte_count)

        reset_func = getattr(contents, 'reset', None)
        if reset_func is None:
            def reset_func(*args, **kwargs):
                raise ClientException('PUT %s failure and no ability to '
                                      'reset contents for reupload.' % path)
        return self._retry('PUT', path, headers, contents, reset_func)

    def _attempt(self, method, path, headers, body):
        """
        Send one request. Returns the response, or None if the transport
        timed out.
        """
        req_headers = dict(headers or {})
        req_headers['X-Auth-Token'] = self.account.auth_token
        if not self.http_conn:
            self.http_conn = self.http_connection()
        try:
            resp = self.http_conn.request(method, path, body, req_headers)
        except TIMEOUT_ERRORS:
            # the connection state is unknown after a timeout
            self.http_conn = None
            return None

        if 200 <= resp.status_code < 300:
            http_log(('%s%s' % (self.url, path), method),
                     {'headers': req_headers}, resp, None)
        else:
            resp.body = resp.content
            http_log(('%s%s' % (self.url, path), method),
                     {'headers': req_headers}, resp, resp.body)
        return resp

    def _retry(self, method, path, headers=None, body=None, reset_func=None):
        retried_auth = False
        timeouts = 0
        attempts = 0
        while True:
            attempts += 1
            self.attempts = attempts
            resp = self._attempt(method, path, headers, body)

            if resp is None:
                if timeouts >= self.retries:
                    raise ClientTimeout(
                        'Timeout after %d attempts' % attempts,
                        http_method=method, http_scheme='https',
                        http_host=self.hostname, http_path=path)
                timeouts += 1
                backoff = self.starting_backoff * timeouts
                logger.warning('Timeout during %s %s%s; retrying in %ss',
                               method, self.url, path, backoff)
                sleep(backoff)
            elif resp.status_code == 401 and not retried_auth:
                logger.info('Received 401 for %s %s%s; refreshing auth '
                            'before retrying', method, self.url, path)
                resp.close()
                retried_auth = True
                self.account.invalidate()
            elif 200 <= resp.status_code < 300:
                return resp
            else:
                resp.close()
                raise error_class_for_status(resp.status_code).from_response(
                    resp, 'Request failed', resp.body, method)

            if reset_func:
                reset_func()
