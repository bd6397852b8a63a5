# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the signing pipeline."""

from collections.abc import Callable
from datetime import datetime
from unittest.mock import patch

import pytest
from mitmproxy.http import Headers

from awsproxy.config import Credentials, ProxyConfig
from awsproxy.errors import ConfigurationError, InvalidRequestError
from awsproxy.pipeline import SigningPipeline
from awsproxy.request import ROOT_PATH, ProxyRequest
from tests.vectors import (
    ACCESS_KEY_ID,
    EXAMPLE_TIMESTAMP,
    HELLO_SHA256,
    SECRET_KEY,
)


def _request(
    method: str = "GET",
    uri: str = "/mybucket.s3.amazonaws.com/file.txt",
    headers: list[tuple[str, str]] | None = None,
    body: bytes = b"",
) -> ProxyRequest:
    fields = [(k.encode(), v.encode()) for k, v in headers or []]
    return ProxyRequest.from_uri(
        method, uri, headers=Headers(fields), body=body
    )


class TestStageOrder:
    """The pipeline runs its stages in a fixed order."""

    def test_stage_names(self, config: ProxyConfig) -> None:
        pipeline = SigningPipeline(config)
        assert [name for name, _ in pipeline.stages] == [
            "strip_mount_prefix",
            "route",
            "validate_credentials",
            "collect_headers",
            "sign",
            "inject_headers",
        ]


class TestProcess:
    """Tests for SigningPipeline.process."""

    def test_get_scenario(
        self, config: ProxyConfig, fixed_clock: Callable[[], datetime]
    ) -> None:
        req = SigningPipeline(config, fixed_clock).process(_request())
        assert req.upstream_url == "https://mybucket.s3.amazonaws.com/file.txt"
        assert req.path == ROOT_PATH
        auth = req.outgoing_headers["Authorization"]
        assert auth.startswith(
            f"AWS4-HMAC-SHA256 Credential={ACCESS_KEY_ID}/20130524/"
            "us-east-1/s3/aws4_request, "
        )
        assert req.outgoing_headers["X-Amz-Date"] == EXAMPLE_TIMESTAMP
        assert req.outgoing_headers["Host"] == "mybucket.s3.amazonaws.com"

    def test_put_scenario(
        self, config: ProxyConfig, fixed_clock: Callable[[], datetime]
    ) -> None:
        req = SigningPipeline(config, fixed_clock).process(
            _request("PUT", body=b"hello")
        )
        assert req.outgoing_headers["X-Amz-Content-Sha256"] == HELLO_SHA256
        assert "/us-east-1/s3/aws4_request" in req.outgoing_headers[
            "Authorization"
        ]

    def test_mount_prefix_stripped(
        self, credentials: Credentials, fixed_clock: Callable[[], datetime]
    ) -> None:
        config = ProxyConfig(credentials=credentials, mount_prefix="/aws")
        req = SigningPipeline(config, fixed_clock).process(
            _request(uri="/aws/mybucket.s3.amazonaws.com/a/b?x=1")
        )
        assert req.upstream_url == "https://mybucket.s3.amazonaws.com/a/b?x=1"

    def test_deterministic_with_fixed_clock(
        self, config: ProxyConfig, fixed_clock: Callable[[], datetime]
    ) -> None:
        pipeline = SigningPipeline(config, fixed_clock)
        first = pipeline.process(_request()).outgoing_headers["Authorization"]
        second = pipeline.process(_request()).outgoing_headers["Authorization"]
        assert first == second

    def test_headers_pass_through(
        self, config: ProxyConfig, fixed_clock: Callable[[], datetime]
    ) -> None:
        req = SigningPipeline(config, fixed_clock).process(
            _request(
                headers=[
                    ("Content-Type", "text/plain"),
                    ("X-Amz-Acl", "private"),
                    ("X-Amz-Meta-Owner", "alice"),
                    ("x-amz-meta-owner", "bob"),
                ]
            )
        )
        out = req.outgoing_headers
        assert out["Content-Type"] == "text/plain"
        assert out["X-Amz-Acl"] == "private"
        assert out.get_all("x-amz-meta-owner") == ["alice"]
        signed = out["Authorization"].split("SignedHeaders=")[1].split(",")[0]
        assert signed == (
            "host;x-amz-acl;x-amz-content-sha256;x-amz-date;x-amz-meta-owner"
        )

    def test_signer_wins_on_collision(
        self, config: ProxyConfig, fixed_clock: Callable[[], datetime]
    ) -> None:
        req = SigningPipeline(config, fixed_clock).process(
            _request(
                headers=[
                    ("Authorization", "Basic Zm9vOmJhcg=="),
                    ("X-Amz-Date", "19990101T000000Z"),
                ]
            )
        )
        out = req.outgoing_headers
        assert out.get_all("authorization") == [
            req.signature_headers["Authorization"]
        ]
        assert out.get_all("x-amz-date") == [EXAMPLE_TIMESTAMP]

    def test_empty_path_rejected_before_signing(
        self, config: ProxyConfig
    ) -> None:
        with patch("awsproxy.pipeline.sign_request") as mock_sign:
            with pytest.raises(InvalidRequestError):
                SigningPipeline(config).process(_request(uri="/"))
        mock_sign.assert_not_called()

    @pytest.mark.parametrize(
        ("access_key_id", "secret_key"),
        [("", SECRET_KEY), (ACCESS_KEY_ID, ""), (ACCESS_KEY_ID, "   ")],
    )
    def test_blank_credentials_rejected(
        self, access_key_id: str, secret_key: str
    ) -> None:
        config = ProxyConfig(
            credentials=Credentials(
                access_key_id=access_key_id, secret_key=secret_key
            )
        )
        with (
            patch(
                "awsproxy.aws_signing.build_canonical_request"
            ) as mock_creq,
            patch("awsproxy.pipeline.collect_aws_headers") as mock_collect,
        ):
            for _ in range(3):
                with pytest.raises(ConfigurationError):
                    SigningPipeline(config).process(_request())
        mock_creq.assert_not_called()
        mock_collect.assert_not_called()
