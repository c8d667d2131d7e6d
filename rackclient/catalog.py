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
The identity service answers an authentication request with a token and a
service catalog: for every service, the list of regional public endpoints.
This module parses that answer and resolves service names to base URLs.
"""
import collections
from urllib.parse import urlparse

from rackclient.exceptions import AmbiguousRegionError, UnknownServiceError


RegionEndpoint = collections.namedtuple(
    'RegionEndpoint', ['region', 'public_url'])


class EndpointTarget(collections.namedtuple(
        'EndpointTarget', ['host', 'base_path'])):
    """The host and base path of a resolved endpoint URL."""

    __slots__ = ()

    @classmethod
    def from_url(cls, url):
        parsed = urlparse(url)
        return cls(parsed.netloc, parsed.path.rstrip('/'))

    def path(self, *parts):
        return '/'.join((self.base_path,) + parts)


def _normalize_region(region):
    if region is None:
        return None
    return str(region).upper()


def _extract_value(data, *keys):
    for key in keys:
        if not isinstance(data, dict) or not data.get(key):
            return None
        data = data[key]
    return data


class IdentityRecord:
    """
    The token and service catalog returned by one identity exchange.

    Instances are replaced wholesale on refresh and never mutated.
    """

    def __init__(self, auth_token, service_catalog=None):
        self.auth_token = auth_token
        self.service_catalog = dict(service_catalog or {})

    @classmethod
    def from_identity_response(cls, data):
        """
        Build a record from a decoded ``POST /v2.0/tokens`` response body.
        A missing or empty ``serviceCatalog`` yields an empty catalog.
        """
        token = _extract_value(data, 'access', 'token', 'id')
        catalog = {}
        for service in _extract_value(data, 'access', 'serviceCatalog') or []:
            name = service.get('name')
            if not name:
                continue
            catalog[name] = [
                RegionEndpoint(_normalize_region(endpoint.get('region')),
                               endpoint.get('publicURL'))
                for endpoint in service.get('endpoints') or []
            ]
        return cls(token, catalog)

    def __eq__(self, other):
        return (isinstance(other, IdentityRecord) and
                self.auth_token == other.auth_token and
                self.service_catalog == other.service_catalog)

    def __ne__(self, other):
        return not self.__eq__(other)

    def __repr__(self):
        return '<IdentityRecord services=%s>' % sorted(self.service_catalog)


class EndpointCatalog:

    def __init__(self, service_catalog):
        self.service_catalog = service_catalog

    def service_names(self):
        return set(self.service_catalog)

    def resolve(self, service_name, region=None):
        """
        Return the public URL for ``service_name``.

        :param region: region to pick when the service is regional; ignored
                       for services without regions.
        :raises UnknownServiceError: no endpoint for the service (or region)
        :raises AmbiguousRegionError: several regions and none requested
        """
        endpoints = self.service_catalog.get(service_name) or []
        if not endpoints:
            raise UnknownServiceError(
                'No endpoints found for service %r; known services are: %s'
                % (service_name, ', '.join(sorted(self.service_catalog))))

        regions = set(e.region for e in endpoints if e.region is not None)
        if not regions:
            return endpoints[0].public_url

        if region is None:
            if len(regions) > 1:
                raise AmbiguousRegionError(
                    'Service %r is available in regions %s; specify one'
                    % (service_name, ', '.join(sorted(regions))))
            return endpoints[0].public_url

        wanted = _normalize_region(region)
        for endpoint in endpoints:
            if endpoint.region == wanted:
                return endpoint.public_url
        raise UnknownServiceError(
            'Service %r has no endpoint in region %s (available: %s)'
            % (service_name, wanted, ', '.join(sorted(regions))))

    def target(self, service_name, region=None):
        return EndpointTarget.from_url(self.resolve(service_name, region))
