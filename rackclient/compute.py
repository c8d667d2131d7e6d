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

import base64
import json
import logging
from time import sleep

from rackclient.exceptions import ArgumentError, ClientException
from rackclient.utils import parse_api_response

logger = logging.getLogger("rackclient")

COMPUTE_SERVICE = 'cloudServersOpenStack'
JSON_HEADERS = {
    'Content-Type': 'application/json',
    'Accept': 'application/json',
}


def _json_body(resp):
    body = resp.content
    resp.close()
    return parse_api_response(resp.headers, body)


class _ComputeFacade:

    def __init__(self, account, region):
        self.account = account
        self.region = region
        self.compute = account.catalog.target(COMPUTE_SERVICE, region)
        self._servers_client = None

    @property
    def servers_client(self):
        if self._servers_client is None:
            self._servers_client = self.account.http_client(
                self.compute.host)
        return self._servers_client


class Servers(_ComputeFacade):
    """
    The cloud servers of an account within one region.

    You probably don't want to instantiate this directly, see
    :meth:`rackclient.account.Account.servers`.
    """

    def __init__(self, account, region):
        super(Servers, self).__init__(account, region)
        self._flavors = None
        self._images = None

    def __repr__(self):
        return '<Servers region=%s>' % self.region

    @property
    def servers_path(self):
        return self.compute.path('servers')

    def get(self, server_name):
        """Return the first server called ``server_name``, or None."""
        server_id = self._find_server_id(server_name)
        if server_id is None:
            return None
        return Server(self.account, self.region, server_id)

    def create(self, server_name, flavor_name, image_name, files=None):
        """
        Create a new server.

        :param server_name: free text name for the server
        :param flavor_name: part of a flavor name, e.g. "512"; an unknown
                            flavor raises ArgumentError listing valid ones
        :param image_name: part of an image name, e.g. "Ubuntu 12.04"
        :param files: optional dict mapping a path on the new server to the
                      bytes to place there
        :returns: a :class:`Server`
        """
        request = {
            'server': {
                'name': server_name,
                'imageRef': self.image_name_to_id(image_name),
                'flavorRef': self.flavor_name_to_id(flavor_name),
            }
        }
        for path, blob in (files or {}).items():
            if isinstance(blob, str):
                blob = blob.encode('utf-8')
            request['server'].setdefault('personality', []).append({
                'path': path,
                'contents': base64.b64encode(blob).decode('ascii'),
            })

        logger.debug('creating server %s in %s', server_name, self.region)
        resp = self.servers_client.post(
            self.servers_path, json.dumps(request), JSON_HEADERS)
        data = _json_body(resp)['server']
        return Server(self.account, self.region, data['id'])

    def list(self):
        logger.debug('retrieving servers list from %s', self.servers_path)
        resp = self.servers_client.get(self.servers_path, JSON_HEADERS)
        return _json_body(resp)['servers']

    def _find_server_id(self, server_name):
        for row in self.list():
            if row['name'] == server_name:
                return row['id']
        return None

    @property
    def flavors(self):
        if self._flavors is None:
            resp = self.servers_client.get(self.compute.path('flavors'),
                                           JSON_HEADERS)
            self._flavors = _json_body(resp)['flavors']
        return self._flavors

    @property
    def images(self):
        if self._images is None:
            resp = self.servers_client.get(self.compute.path('images'),
                                           JSON_HEADERS)
            self._images = _json_body(resp)['images']
        return self._images

    def flavor_name_to_id(self, name):
        return self._name_to_id(self.flavors, name, 'flavors')

    def image_name_to_id(self, name):
        return self._name_to_id(self.images, name, 'images')

    @staticmethod
    def _name_to_id(rows, name, kind):
        wanted = str(name).lower()
        for row in rows:
            if wanted in row['name'].lower():
                return row['id']
        raise ArgumentError('valid %s are: %s'
                            % (kind, ', '.join(row['name'] for row in rows)))


class Server(_ComputeFacade):
    """
    A single cloud server.

    You probably don't want to instantiate this directly, see
    :meth:`Servers.get` and :meth:`Servers.create`.
    """

    def __init__(self, account, region, server_id):
        super(Server, self).__init__(account, region)
        self.server_id = server_id

    def __repr__(self):
        return '<Server %s region=%s>' % (self.server_id, self.region)

    @property
    def server_path(self):
        return self.compute.path('servers', str(self.server_id))

    def delete(self):
        logger.debug('deleting server %s in %s', self.server_id, self.region)
        resp = self.servers_client.delete(self.server_path, JSON_HEADERS)
        return 200 <= resp.status_code < 300

    def details(self):
        """A dict of metadata about the server."""
        resp = self.servers_client.get(self.server_path, JSON_HEADERS)
        return _json_body(resp)['server']

    def private_addresses(self):
        """IPv4 and IPv6 private addresses of the server."""
        return [i['addr'] for i in self.details()['addresses']['private']]

    def public_addresses(self):
        return [i['addr'] for i in self.details()['addresses']['public']]

    def wait_for_active(self, interval=10, max_checks=None):
        """
        Poll until the server reports ACTIVE, e.g. after creating it.

        :param max_checks: give up with a ClientException after this many
                           polls; None polls forever
        """
        checks = 0
        while self.details()['status'] != 'ACTIVE':
            checks += 1
            if max_checks is not None and checks >= max_checks:
                raise ClientException('Server %s not active after %d checks'
                                      % (self.server_id, checks))
            logger.info('Server %s not online yet. Waiting...',
                        self.server_id)
            sleep(interval)
