# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Signing reverse proxy for AWS object storage.

Inbound requests carry the upstream host as their first path segment
(``/mybucket.s3.amazonaws.com/key``).  The proxy routes each request to
``https://{host}/{rest}`` and signs it with AWS Signature Version 4 so
callers never see the secret key.

Subpackages / modules:

- ``awsproxy.routing``: host and path extraction from the inbound path
- ``awsproxy.aws_signing``: SigV4 canonicalization and signing
- ``awsproxy.headers``: AWS header collection and merging
- ``awsproxy.pipeline``: ordered request preparation stages
- ``awsproxy.addon``: mitmproxy addon wiring the pipeline into flows
"""
