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
Object storage: containers, objects, large object uploads and listings.
"""
import json
import logging
import os
import time

from rackclient.exceptions import ArgumentError
from rackclient.utils import (
    LengthWrapper, content_type_needs_cors, extension_content_type,
    generate_temp_url, md5_hexdigest, parse_listing, url_encode)

logger = logging.getLogger("rackclient")

STORAGE_SERVICE = 'cloudFiles'
CDN_SERVICE = 'cloudFilesCDN'

MAX_ITEMS_PER_LIST = 10000
DEFAULT_LIST_MAX = 100000000
LARGE_FILE_THRESHOLD = 5368709120  # 5 GiB
LARGE_FILE_SEGMENT_SIZE = 104857600  # 100 MiB
DEFAULT_CDN_TTL = 259200  # 72 hours
DEFAULT_TEMP_URL_SECONDS = 60
DOWNLOAD_CHUNK_SIZE = 65536


def _is_success(resp):
    return 200 <= resp.status_code < 300


class SegmentedUploader:
    """
    Upload an object with one PUT, or as numbered segments plus a manifest
    once it is bigger than ``threshold`` bytes.

    Segments are named ``<key>.000``, ``<key>.001``... and uploaded in
    order; the manifest lists them in that same order. A failed segment
    aborts the upload before the manifest is written, leaving any segments
    already stored in place.
    """

    def __init__(self, client, container_name, container_path,
                 threshold=LARGE_FILE_THRESHOLD,
                 segment_size=LARGE_FILE_SEGMENT_SIZE):
        self.client = client
        self.container_name = container_name
        self.container_path = container_path
        self.threshold = threshold
        self.segment_size = segment_size

    def upload(self, key, fp, byte_count, headers=None):
        """
        :param fp: seekable binary file-like object holding the data
        :param byte_count: number of bytes to upload from ``fp``
        :returns: the ETag of the object (or of the manifest)
        """
        if byte_count <= self.threshold:
            fp.seek(0)
            return self.upload_standard(key, LengthWrapper(fp, byte_count),
                                        headers)
        return self.upload_large(key, fp, byte_count, headers)

    def _object_path(self, key):
        return '%s/%s' % (self.container_path, url_encode(key))

    def upload_standard(self, key, contents, headers=None):
        headers = dict(headers or {})
        full_path = self._object_path(key)

        content_type = headers.get('Content-Type') or \
            extension_content_type(key) or \
            extension_content_type(contents.name) or \
            'application/octet-stream'
        headers['Content-Type'] = content_type
        headers['ETag'] = md5_hexdigest(contents)
        contents.reset()
        if content_type_needs_cors(key):
            headers['Access-Control-Allow-Origin'] = '*'

        logger.debug('uploading %s bytes to %s', len(contents), full_path)
        return self._put(full_path, contents, len(contents), headers)

    def upload_large(self, key, fp, byte_count, headers=None):
        segment_count = -(-byte_count // self.segment_size)
        logger.debug('uploading %s bytes to %s as %s segments',
                     byte_count, self._object_path(key), segment_count)
        segments = []
        for index in range(segment_count):
            start = index * self.segment_size
            size = min(self.segment_size, byte_count - start)
            segment_key = '%s.%03d' % (key, index)
            fp.seek(start)
            etag = self.upload_standard(
                segment_key, LengthWrapper(fp, size), headers)
            segments.append({
                'path': '%s/%s' % (self.container_name, segment_key),
                'etag': etag,
                'size_bytes': size,
            })
        return self.upload_manifest(key, segments)

    def upload_manifest(self, key, segments):
        full_path = self._object_path(key) + '?multipart-manifest=put'
        manifest = json.dumps(segments).encode('utf-8')
        logger.debug('uploading manifest of %s segments to %s',
                     len(segments), full_path)
        return self._put(full_path, manifest, len(manifest), {})

    def _put(self, full_path, contents, byte_count, headers):
        if isinstance(contents, bytes):
            resp = self.client.put(
                full_path, dict(headers, **{'Content-Length': byte_count}),
                contents)
        else:
            resp = self.client.streaming_put(
                full_path, contents, byte_count, headers)
        resp.close()
        return resp.headers.get('etag', '').strip('"')


class PaginatedLister:
    """
    Collect a container listing across as many requests as it takes.

    Each request asks for at most ``per_page`` items, continuing from the
    last item of the previous page. A page shorter than requested means
    there is nothing left.
    """

    def __init__(self, client, container_path, per_page=MAX_ITEMS_PER_LIST):
        self.client = client
        self.container_path = container_path
        self.per_page = per_page

    def request_path(self, limit, marker=None, prefix=None, details=False):
        query_string = 'limit=%d' % limit
        if marker:
            query_string += '&marker=%s' % url_encode(marker)
        if prefix:
            query_string += '&prefix=%s' % url_encode(prefix)
        if details:
            query_string += '&format=json'
        return '%s?%s' % (self.container_path, query_string)

    def get_page(self, limit, marker=None, prefix=None, details=False):
        resp = self.client.get(
            self.request_path(limit, marker, prefix, details))
        body = resp.content
        resp.close()
        return parse_listing(resp.headers, body, details)

    def list(self, max_items=DEFAULT_LIST_MAX, marker=None, prefix=None,
             details=False):
        items = []
        remaining = max_items
        while remaining > 0:
            limit = min(remaining, self.per_page)
            page = self.get_page(limit, marker, prefix, details)
            items.extend(page)
            if remaining <= limit:
                logger.debug("Got %d items; we don't need any more.",
                             len(page))
                break
            if len(page) < limit:
                logger.debug("Got %d items; there can't be any more.",
                             len(page))
                break
            remaining -= len(page)
            marker = page[-1]['name'] if details else page[-1]
            logger.debug('Got %d items; requesting up to %d more.',
                         len(page), min(remaining, self.per_page))
        return items


class _StorageFacade:

    def __init__(self, account, region):
        self.account = account
        self.region = region
        self.storage = account.catalog.target(STORAGE_SERVICE, region)
        self._storage_client = None

    @property
    def storage_client(self):
        if self._storage_client is None:
            self._storage_client = self.account.http_client(
                self.storage.host)
        return self._storage_client


class Containers(_StorageFacade):
    """
    The object storage containers of an account within one region.

    You probably don't want to instantiate this directly, see
    :meth:`rackclient.account.Account.containers`.
    """

    def get(self, container_name):
        return Container(self.account, self.region, container_name)

    def metadata(self):
        """Return metadata on all containers."""
        logger.debug('retrieving containers metadata from %s',
                     self.storage.base_path)
        resp = self.storage_client.head(self.storage.path())
        return {
            'containers': int(resp.headers.get(
                'X-Account-Container-Count', 0)),
            'objects': int(resp.headers.get('X-Account-Object-Count', 0)),
            'bytes': int(resp.headers.get('X-Account-Bytes-Used', 0)),
        }

    def set_temp_url_key(self, secret):
        """
        Set the account-wide secret used to sign expiring URLs. This
        invalidates every expiring URL generated with the previous secret.
        """
        logger.debug('setting Account Temp URL Key on %s',
                     self.storage.base_path)
        resp = self.storage_client.post(
            self.storage.path(), None,
            {'X-Account-Meta-Temp-Url-Key': str(secret)})
        return _is_success(resp)

    def __repr__(self):
        return '<Containers region=%s>' % self.region


class Container(_StorageFacade):
    """
    A single object storage container: upload, download, list, stats, CDN.

    You probably don't want to instantiate this directly, see
    :meth:`Containers.get`.
    """

    def __init__(self, account, region, container_name):
        if '/' in container_name:
            raise ArgumentError("The container name must not contain '/'.")
        super(Container, self).__init__(account, region)
        self.container_name = container_name
        self.container_path = self.storage.path(url_encode(container_name))
        self._cdn = None
        self._cdn_client = None

    def __repr__(self):
        return '<Container %s region=%s>' % (self.container_name,
                                             self.region)

    @property
    def cdn(self):
        if self._cdn is None:
            self._cdn = self.account.catalog.target(
                CDN_SERVICE, self.region)
        return self._cdn

    @property
    def cdn_client(self):
        if self._cdn_client is None:
            self._cdn_client = self.account.http_client(self.cdn.host)
        return self._cdn_client

    @property
    def cdn_container_path(self):
        return self.cdn.path(url_encode(self.container_name))

    def object_path(self, key):
        return '%s/%s' % (self.container_path, url_encode(key))

    def upload(self, key, data_or_path, headers=None):
        """
        Upload ``data_or_path`` (a filename, or a seekable binary file-like
        object) to the container as ``key``.

        Extra ``headers`` are sent with the upload; use them to set the
        content type, content disposition and so on.

        :returns: the ETag of the stored object
        """
        if isinstance(data_or_path, str):
            with open(data_or_path, 'rb') as fp:
                return self._upload_fp(key, fp, os.fstat(fp.fileno()).st_size,
                                       headers)
        if hasattr(data_or_path, 'read') and hasattr(data_or_path, 'seek'):
            data_or_path.seek(0, os.SEEK_END)
            byte_count = data_or_path.tell()
            return self._upload_fp(key, data_or_path, byte_count, headers)
        raise ArgumentError('data_or_path must be a seekable file-like '
                            'object or a filename string')

    def _upload_fp(self, key, fp, byte_count, headers):
        uploader = SegmentedUploader(
            self.storage_client, self.container_name, self.container_path,
            threshold=LARGE_FILE_THRESHOLD,
            segment_size=LARGE_FILE_SEGMENT_SIZE)
        return uploader.upload(key, fp, byte_count, headers)

    def download(self, key, filepath):
        """
        Download the object at ``key`` into a local file at ``filepath``.

        :returns: the number of bytes downloaded
        """
        logger.debug('downloading %s from %s', key, self.container_path)
        resp = self.storage_client.get(self.object_path(key))
        try:
            with open(filepath, 'wb') as fp:
                for chunk in resp.iter_content(DOWNLOAD_CHUNK_SIZE):
                    fp.write(chunk)
        finally:
            resp.close()
        return int(resp.headers.get('Content-Length', 0))

    def delete(self, key):
        """
        Delete ``key`` from the container. A CDN-enabled object is served
        from the CDN until its TTL expires.
        """
        logger.debug('deleting %s from %s', key, self.container_path)
        resp = self.storage_client.delete(self.object_path(key))
        return _is_success(resp)

    def purge_from_akamai(self, key, email_address):
        """
        Remove ``key`` from the CDN edge caches; it is not deleted from the
        container. This is expensive for the provider, so only use it when
        an object has to be taken down.
        """
        path = '%s/%s' % (self.cdn_container_path, url_encode(key))
        logger.debug('Requesting %s to be purged from the CDN', path)
        resp = self.cdn_client.delete(path, {'X-Purge-Email': email_address})
        return _is_success(resp)

    def object_metadata(self, key):
        path = self.object_path(key)
        logger.debug('Requesting metadata from %s', path)
        resp = self.storage_client.head(path)
        return {
            'content_type': resp.headers.get('Content-Type'),
            'bytes': int(resp.headers.get('Content-Length', 0)),
        }

    def list(self, max_items=DEFAULT_LIST_MAX, marker=None, prefix=None,
             details=False):
        """
        Return the keys in the container, or their detail records when
        ``details`` is set.

        :param max_items: the maximum number of items to return
        :param marker: return items alphabetically after this key
        :param prefix: only return items that start with this string
        :param details: return a dict per object (name, bytes, hash...)
        """
        logger.debug('retrieving up to %s items from %s',
                     max_items, self.container_path)
        lister = PaginatedLister(self.storage_client, self.container_path,
                                 per_page=MAX_ITEMS_PER_LIST)
        return lister.list(max_items, marker=marker, prefix=prefix,
                           details=details)

    def search(self, prefix):
        logger.debug('retrieving container listing from %s items starting '
                     'with %s', self.container_path, prefix)
        return self.list(prefix=prefix)

    def metadata(self):
        logger.debug('retrieving container metadata from %s',
                     self.container_path)
        resp = self.storage_client.head(self.container_path)
        return {
            'objects': int(resp.headers.get('X-Container-Object-Count', 0)),
            'bytes': int(resp.headers.get('X-Container-Bytes-Used', 0)),
        }

    def cdn_metadata(self):
        """
        CDN details for the container. Works on containers that are not
        CDN enabled, but the values are not meaningful then.
        """
        logger.debug('retrieving container CDN metadata from %s',
                     self.cdn_container_path)
        resp = self.cdn_client.head(self.cdn_container_path)
        headers = resp.headers
        return {
            'cdn_enabled': headers.get('X-CDN-Enabled') == 'True',
            'host': headers.get('X-CDN-URI'),
            'ssl_host': headers.get('X-CDN-SSL-URI'),
            'streaming_host': headers.get('X-CDN-STREAMING-URI'),
            'ttl': int(headers.get('X-TTL', 0)),
            'log_retention': headers.get('X-Log-Retention') == 'True',
        }

    def cdn_enable(self, ttl=DEFAULT_CDN_TTL):
        """
        Publish every object in the container on the CDN, cached for
        ``ttl`` seconds.
        """
        logger.debug('enabling CDN access to %s with a cache expiry of %s '
                     'minutes', self.cdn_container_path, ttl // 60)
        resp = self.cdn_client.put(self.cdn_container_path,
                                   {'X-TTL': str(int(ttl))})
        return _is_success(resp)

    def expiring_url(self, key, temp_url_key, expires_at=None):
        """
        Generate a URL granting temporary GET access to a private object.
        The account's temp URL key must have been set to ``temp_url_key``,
        see :meth:`Containers.set_temp_url_key`.

        :param expires_at: Unix timestamp; defaults to one minute from now
        """
        if expires_at is None:
            expires_at = int(time.time()) + DEFAULT_TEMP_URL_SECONDS
        path = '%s/%s/%s' % (self.storage.base_path, self.container_name,
                             key)
        return 'https://%s%s' % (
            self.storage.host,
            generate_temp_url(path, int(expires_at), temp_url_key,
                              absolute=True))
