"""Tests for local/remote host classification."""

import pytest

from iispool.core import locality


@pytest.fixture
def machine(monkeypatch):
    monkeypatch.setattr(locality.socket, "gethostname", lambda: "web01.corp.example.com")
    monkeypatch.setattr(locality.socket, "getfqdn", lambda: "web01.corp.example.com")
    monkeypatch.setenv("COMPUTERNAME", "WEB01")
    locality._machine_names.cache_clear()
    yield
    locality._machine_names.cache_clear()


@pytest.mark.parametrize(
    "host",
    ["web01", "WEB01", "Web01.Corp.Example.com", "localhost", "LOCALHOST", ".", "127.0.0.1", "::1"],
)
def test_local_names_are_classified_local(machine, host):
    assert locality.is_local_host(host) is True


@pytest.mark.parametrize("host", ["web02", "web01.other.example.com", "10.0.0.5", ""])
def test_other_names_are_classified_remote(machine, host):
    assert locality.is_local_host(host) is False


def test_none_is_not_local(machine):
    assert locality.is_local_host(None) is False


def test_configured_extra_aliases_are_local(machine, monkeypatch):
    monkeypatch.setattr(locality.settings, "local_host_aliases", "web-vip, iis-cluster")

    assert locality.is_local_host("WEB-VIP") is True
    assert locality.is_local_host("iis-cluster") is True


def test_explicit_alias_set_overrides_discovery():
    aliases = ["alpha", "Beta"]

    assert locality.is_local_host("ALPHA", aliases) is True
    assert locality.is_local_host("beta", aliases) is True
    assert locality.is_local_host("localhost", aliases) is False


def test_classification_is_deterministic(machine):
    results = {locality.is_local_host("web01") for _ in range(5)}

    assert results == {True}
