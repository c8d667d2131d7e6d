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

"""
Caching of identity records, so credentials are exchanged for a token once
per account rather than once per request.

Any object with ``read(key)`` and ``write(key, value)`` methods can back the
cache; a plain mutable mapping is wrapped in :class:`MemoryCache`.
"""
import collections
import collections.abc
import logging
import threading

logger = logging.getLogger("rackclient")

Credentials = collections.namedtuple('Credentials', ['username', 'api_key'])


def cache_key(credentials):
    # The key never includes the secret, so every handle for the same
    # username shares one slot.
    return 'rackclient-%s' % credentials.username


class MemoryCache:
    """read/write adapter over a mapping (a private dict by default)."""

    def __init__(self, store=None):
        self._store = {} if store is None else store

    def read(self, key):
        return self._store.get(key)

    def write(self, key, value):
        if value is None:
            self._store.pop(key, None)
        else:
            self._store[key] = value


class CredentialCache:

    def __init__(self, auth_func, backend=None):
        """
        :param auth_func: callable taking a :class:`Credentials` and
                          returning a fresh IdentityRecord
        :param backend: object with ``read``/``write`` methods, or a mutable
                        mapping; defaults to a new in-memory store
        """
        if backend is None:
            backend = MemoryCache()
        elif not (hasattr(backend, 'read') and hasattr(backend, 'write')):
            if not isinstance(backend, collections.abc.MutableMapping):
                raise TypeError('cache backend must provide read/write or '
                                'be a mutable mapping, not %s'
                                % type(backend).__name__)
            backend = MemoryCache(backend)
        self.backend = backend
        self.auth_func = auth_func
        self._lock = threading.Lock()

    def get_identity(self, credentials):
        key = cache_key(credentials)
        record = self.backend.read(key)
        if record is not None:
            return record
        with self._lock:
            # another thread may have refreshed while we waited
            record = self.backend.read(key)
            if record is None:
                logger.debug('No cached identity for %s; authenticating',
                             credentials.username)
                record = self.auth_func(credentials)
                self.backend.write(key, record)
        return record

    def invalidate(self, credentials):
        logger.debug('Invalidating cached identity for %s',
                     credentials.username)
        self.backend.write(cache_key(credentials), None)
