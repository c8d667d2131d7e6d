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

import logging

from rackclient.exceptions import NotFound
from rackclient.utils import parse_api_response, url_encode

logger = logging.getLogger("rackclient")

IDENTITY_SERVICE = 'identity'


class _IdentityFacade:

    def __init__(self, account):
        self.account = account
        self.identity = account.catalog.target(IDENTITY_SERVICE)
        self._identity_client = None

    @property
    def identity_client(self):
        if self._identity_client is None:
            self._identity_client = self.account.http_client(
                self.identity.host)
        return self._identity_client

    def _get_json(self, path):
        resp = self.identity_client.get(path)
        body = resp.content
        resp.close()
        return parse_api_response(resp.headers, body)


class Users(_IdentityFacade):
    """
    The users associated with an account.

    You probably don't want to instantiate this directly, see
    :meth:`rackclient.account.Account.users`.
    """

    def __repr__(self):
        return '<Users>'

    def list(self):
        path = self.identity.path('users')
        logger.debug('retrieving users list from %s', path)
        records = self._get_json(path)['users']
        return [User(self.account, record['username'])
                for record in records]

    def get(self, username):
        for user in self.list():
            if user.username == username:
                return user
        return None


class User(_IdentityFacade):

    def __init__(self, account, username):
        super(User, self).__init__(account)
        self.username = username

    def __repr__(self):
        return '<User %s>' % self.username

    @property
    def user_path(self):
        return '%s?name=%s' % (self.identity.path('users'),
                               url_encode(self.username))

    def details(self):
        """The user's record, or None if the identity service has none."""
        try:
            return self._get_json(self.user_path)['user']
        except NotFound:
            logger.debug('no user named %s', self.username)
            return None
