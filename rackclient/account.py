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

import os

from rackclient import client
from rackclient.cache import CredentialCache, Credentials
from rackclient.catalog import EndpointCatalog
from rackclient.compute import Servers
from rackclient.exceptions import ArgumentError
from rackclient.identity import Users
from rackclient.storage import Containers
from rackclient.utils import config_true_value


class Account:
    """
    One set of credentials and everything derived from them.

    The identity service accepts a username and API key and returns a token
    plus the public endpoint of every service in every region. The account
    keeps that answer in its cache so the credentials are only used again
    once the token is rejected.

    Requests will have an X-Auth-Token header whose value is the cached
    token; see :class:`rackclient.client.HttpClient` for the retry rules.
    """

    def __init__(self, username, api_key, cache=None,
                 identity_host=client.IDENTITY_HOST,
                 retries=client.DEFAULT_RETRIES,
                 starting_backoff=client.DEFAULT_BACKOFF,
                 timeout=client.DEFAULT_TIMEOUT, insecure=False,
                 cacert=None):
        """
        :param username: user name to authenticate as
        :param api_key: API key to authenticate with
        :param cache: where identity records are kept between requests; an
                      object with ``read(key)``/``write(key, value)``
                      methods or a plain dict. Defaults to a private
                      in-memory store.
        :param identity_host: host name of the identity service
        :param retries: number of times to retry a request that timed out
        :param starting_backoff: delay before the first timeout retry
                                 (seconds); later retries wait proportionally
                                 longer
        :param timeout: read timeout for every HTTP request (seconds)
        :param insecure: Allow to access servers without checking SSL certs.
        :param cacert: A CA bundle file to use in verifying TLS certificates.
        """
        self.credentials = Credentials(username, api_key)
        self.identity_host = identity_host
        self.retries = retries
        self.starting_backoff = starting_backoff
        self.timeout = timeout
        self.insecure = insecure
        self.cacert = cacert
        self.cache = CredentialCache(self._authenticate, cache)

    @classmethod
    def from_environ(cls, environ=None, **kwargs):
        """
        Build an account from ``RACK_USERNAME`` and ``RACK_API_KEY``.

        ``RACK_IDENTITY_HOST``, ``RACKCLIENT_TIMEOUT``,
        ``RACKCLIENT_RETRIES`` and ``RACKCLIENT_INSECURE`` are honoured when
        set; explicit keyword arguments win over the environment.
        """
        if environ is None:
            environ = os.environ
        username = environ.get('RACK_USERNAME')
        api_key = environ.get('RACK_API_KEY')
        if not (username and api_key):
            raise ArgumentError('RACK_USERNAME and RACK_API_KEY must be set')
        options = {}
        if environ.get('RACK_IDENTITY_HOST'):
            options['identity_host'] = environ['RACK_IDENTITY_HOST']
        if environ.get('RACKCLIENT_TIMEOUT'):
            options['timeout'] = float(environ['RACKCLIENT_TIMEOUT'])
        if environ.get('RACKCLIENT_RETRIES'):
            options['retries'] = int(environ['RACKCLIENT_RETRIES'])
        if 'RACKCLIENT_INSECURE' in environ:
            options['insecure'] = config_true_value(
                environ['RACKCLIENT_INSECURE'])
        options.update(kwargs)
        return cls(username, api_key, **options)

    def __repr__(self):
        return '<%s username=%s>' % (type(self).__name__,
                                     self.credentials.username)

    @property
    def username(self):
        return self.credentials.username

    def _authenticate(self, credentials):
        return client.get_auth(credentials, identity_host=self.identity_host,
                               timeout=self.timeout, insecure=self.insecure,
                               cacert=self.cacert)

    @property
    def identity(self):
        return self.cache.get_identity(self.credentials)

    @property
    def auth_token(self):
        return self.identity.auth_token

    @property
    def catalog(self):
        return EndpointCatalog(self.identity.service_catalog)

    def public_endpoint(self, service_name, region=None):
        return self.catalog.resolve(service_name, region)

    def service_names(self):
        return self.catalog.service_names()

    def invalidate(self):
        self.cache.invalidate(self.credentials)

    def refresh_cache(self):
        self.invalidate()
        return self.identity

    def http_client(self, hostname):
        return client.HttpClient(self, hostname, retries=self.retries,
                                 starting_backoff=self.starting_backoff,
                                 timeout=self.timeout,
                                 insecure=self.insecure, cacert=self.cacert)

    def containers(self, region=None):
        return Containers(self, region)

    def servers(self, region=None):
        return Servers(self, region)

    def users(self):
        return Users(self)
