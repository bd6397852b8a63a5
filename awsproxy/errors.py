# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Exceptions raised while preparing a proxied request.

Every error is terminal for the request it occurred in.  The addon maps
``status_code`` onto the response returned to the caller; nothing is
forwarded upstream once one of these is raised.
"""


class ProxyError(Exception):
    """Base exception for request preparation failures."""

    status_code = 500
    error_code = "proxy_error"


class InvalidRequestError(ProxyError):
    """Inbound path has no usable upstream host segment."""

    status_code = 400
    error_code = "invalid_request"


class ConfigurationError(ProxyError):
    """Credentials or proxy configuration are missing or invalid.

    Unlike the other errors this is global: every request fails until
    the configuration is fixed.
    """

    status_code = 500
    error_code = "configuration_error"


class RoutingError(ProxyError):
    """Resolved target cannot be turned into a usable endpoint."""

    status_code = 502
    error_code = "routing_error"


class BodyReadError(ProxyError):
    """Inbound payload could not be buffered for hashing."""

    status_code = 400
    error_code = "body_read_error"
