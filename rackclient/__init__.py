# -*- encoding: utf-8 -*-
"""
Rackspace cloud Python client binding.
"""
from rackclient.account import Account  # noqa
from rackclient.cache import Credentials, MemoryCache  # noqa
from rackclient.client import HttpClient, get_auth  # noqa
from rackclient.exceptions import (  # noqa
    AmbiguousRegionError, ArgumentError, BadRequest, ClientException,
    ClientTimeout, HTTPError, NotAuthorized, NotFound, ServerError,
    UnknownServiceError)
from rackclient import version

__version__ = version.version_string
