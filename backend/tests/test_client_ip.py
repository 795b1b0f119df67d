"""Tests for rate limit client IP resolution."""

import ipaddress
from unittest.mock import MagicMock

import pytest

from app import rate_limit
from app.rate_limit import _load_trusted_cidrs, get_client_ip


def _request(peer: str, forwarded: str | None = None):
    request = MagicMock()
    request.client.host = peer
    request.headers = {"x-forwarded-for": forwarded} if forwarded else {}
    return request


@pytest.fixture(autouse=True)
def default_networks(monkeypatch):
    monkeypatch.setattr(rate_limit, "_trusted_networks", _load_trusted_cidrs(""))


class TestTrustedCidrs:
    def test_defaults(self):
        networks = _load_trusted_cidrs("")
        assert ipaddress.ip_network("10.0.0.0/8") in networks

    def test_custom_list_skips_invalid(self):
        networks = _load_trusted_cidrs("203.0.113.0/24, not-a-cidr")
        assert networks == [ipaddress.ip_network("203.0.113.0/24")]


class TestGetClientIp:
    def test_direct_client(self):
        assert get_client_ip(_request("203.0.113.9")) == "203.0.113.9"

    def test_untrusted_peer_cannot_spoof(self):
        request = _request("203.0.113.9", forwarded="1.2.3.4")
        assert get_client_ip(request) == "203.0.113.9"

    def test_trusted_proxy_forwards_leftmost(self):
        request = _request("10.0.0.5", forwarded="198.51.100.7, 10.0.0.2")
        assert get_client_ip(request) == "198.51.100.7"

    def test_trusted_proxy_without_header(self):
        assert get_client_ip(_request("127.0.0.1")) == "127.0.0.1"
