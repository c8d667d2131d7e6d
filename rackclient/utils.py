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
"""Miscellaneous utility functions used across rackclient."""
import hashlib
import hmac
import json
import os
import time
from urllib.parse import quote

TRUE_VALUES = set(('true', '1', 'yes', 'on', 't', 'y'))
EMPTY_ETAG = 'd41d8cd98f00b204e9800998ecf8427e'
MD5_CHUNK_SIZE = 128 * 1024

EXTENSION_CONTENT_TYPES = {
    '.css': 'text/css',
    '.eot': 'application/vnd.ms-fontobject',
    '.html': 'text/html',
    '.js': 'application/javascript',
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.txt': 'text/plain',
    '.woff': 'font/woff',
    '.zip': 'application/zip',
}
# Fonts need CORS headers to load cross-origin in some browsers
CORS_EXTENSIONS = ('.eot', '.ttf', '.woff')


def config_true_value(value):
    """
    Returns True if the value is either True or a string in TRUE_VALUES.
    Returns False otherwise.
    """
    return value is True or \
        (isinstance(value, str) and value.lower() in TRUE_VALUES)


def url_encode(value):
    """
    Percent-encode a key or path segment for use in a request path.

    Only ASCII letters, digits and ``_.-/`` are left alone; everything else,
    ``~`` included, is escaped byte by byte from its UTF-8 encoding, as
    uppercase ``%XX``.
    """
    if isinstance(value, bytes):
        value = value.decode('utf-8')
    # quote() always treats '~' as unreserved
    return quote(value, safe='/').replace('~', '%7E')


def extension_content_type(path):
    if not path:
        return None
    return EXTENSION_CONTENT_TYPES.get(os.path.splitext(path)[1])


def content_type_needs_cors(path):
    return os.path.splitext(path)[1] in CORS_EXTENSIONS


def md5_hexdigest(readable, chunk_size=MD5_CHUNK_SIZE):
    """
    Hex MD5 of everything left in ``readable``. The caller is responsible
    for rewinding it afterwards.
    """
    digest = hashlib.md5()
    while True:
        chunk = readable.read(chunk_size)
        if not chunk:
            break
        digest.update(chunk)
    return digest.hexdigest()


def get_temp_url_signature(path, expires, key, method='GET'):
    hmac_body = u'\n'.join([method.upper(), str(expires), path])
    if not isinstance(key, bytes):
        key = key.encode('utf-8')
    return hmac.new(key, hmac_body.encode('utf-8'), hashlib.sha1).hexdigest()


def generate_temp_url(path, seconds, key, method='GET', absolute=False):
    """Generates a temporary URL that gives unauthenticated access to an
    object.

    :param path: The full, unencoded path to the object. Example:
        /v1/MossoCloudFS_abc/container/object name
    :param seconds: time in seconds. If absolute is False this is the
        amount of time the temporary URL will be valid for; otherwise it is
        a Unix timestamp at which the URL expires.
    :param key: The secret temporary URL key set on the account.
    :param method: A HTTP method, typically GET, to allow for this URL.
    :param absolute: if True then the seconds parameter is interpreted as a
        Unix timestamp.
    :raises ValueError: if seconds is not a non-negative whole number.
    :return: the encoded path portion of a temporary URL, with query string
    """
    try:
        timestamp = float(seconds)
    except (TypeError, ValueError):
        raise ValueError('time must be a whole number of seconds')
    if not timestamp.is_integer() or timestamp < 0:
        raise ValueError('time must be a whole number of seconds')
    timestamp = int(timestamp)

    if absolute:
        expiration = timestamp
    else:
        expiration = int(time.time() + timestamp)

    sig = get_temp_url_signature(path, expiration, key, method)
    return u'{path}?temp_url_sig={sig}&temp_url_expires={exp}'.format(
        path=url_encode(path), sig=sig, exp=expiration)


def _charset(headers):
    charset = 'utf-8'
    content_type = headers.get('content-type', '')
    if '; charset=' in content_type:
        charset = content_type.split('; charset=', 1)[1].split(';', 1)[0]
    return charset


def parse_api_response(headers, body):
    return json.loads(body.decode(_charset(headers)))


def parse_listing(headers, body, details=False):
    """
    Turn a container listing body into a list: JSON records when
    ``details`` is set, otherwise one name per non-empty line.
    """
    if not body:
        return []
    if details:
        return parse_api_response(headers, body)
    text = body.decode(_charset(headers))
    return [line for line in text.split('\n') if line]


class LengthWrapper:
    """
    Wrap a filelike object with a maximum length, starting from its
    current position.

    This is how a segment of a larger file is exposed as a request body:
    seek the file to the segment start, then wrap it with the segment size.
    It is recommended to use this class only on files opened in binary mode.
    """
    def __init__(self, readable, length):
        """
        :param readable: The filelike object to read from.
        :param length: The maximum amount of content that can be read from
                       the filelike object before it is simulated to be
                       empty.
        """
        self._length = self._remaining = length
        self._readable = readable
        self._can_reset = all(hasattr(readable, attr)
                              for attr in ('seek', 'tell'))
        if self._can_reset:
            self._start = readable.tell()

    def __len__(self):
        return self._length

    @property
    def name(self):
        return getattr(self._readable, 'name', None)

    def read(self, size=-1):
        if self._remaining <= 0:
            return b''

        to_read = self._remaining if size is None or size < 0 \
            else min(size, self._remaining)
        chunk = self._readable.read(to_read)
        self._remaining -= len(chunk)
        return chunk

    @property
    def reset(self):
        if self._can_reset:
            return self._reset
        raise AttributeError("%r object has no attribute 'reset'" %
                             type(self).__name__)

    def _reset(self, *args, **kwargs):
        self._readable.seek(self._start)
        self._remaining = self._length
