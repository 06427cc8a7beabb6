from datetime import datetime, timezone

import pytest

from iispool.core import config_validation
from iispool.core.config import Settings


@pytest.fixture(autouse=True)
def restore_config_validation(monkeypatch):
    monkeypatch.setattr(config_validation, "settings", Settings(), raising=False)
    monkeypatch.setattr(
        config_validation,
        "set_config_validation_result",
        lambda result: None,
        raising=False,
    )
    monkeypatch.setattr(
        config_validation,
        "get_config_validation_result",
        lambda: None,
        raising=False,
    )


def _use(monkeypatch, **values):
    monkeypatch.setattr(config_validation, "settings", Settings(**values), raising=False)


def _messages(issues):
    return [issue.message for issue in issues]


def test_defaults_only_warn_about_missing_api_token():
    result = config_validation.run_config_checks(force=True)

    assert not result.has_errors
    assert any("API_TOKEN" in message for message in _messages(result.warnings))


def test_unsupported_transport_is_an_error(monkeypatch):
    _use(monkeypatch, winrm_transport="telnet", api_token="t")

    result = config_validation.run_config_checks(force=True)

    assert any("WINRM_TRANSPORT 'telnet'" in message for message in _messages(result.errors))
    assert "negotiate" in result.errors[0].hint


def test_password_without_username_is_an_error(monkeypatch):
    _use(monkeypatch, winrm_password="pw", api_token="t")

    result = config_validation.run_config_checks(force=True)

    assert any("WINRM_USERNAME is missing" in message for message in _messages(result.errors))


def test_username_without_password_warns_except_for_kerberos(monkeypatch):
    _use(monkeypatch, winrm_username="ops", api_token="t")
    warnings = _messages(config_validation.run_config_checks(force=True).warnings)
    assert any("WINRM_PASSWORD is missing" in message for message in warnings)

    _use(monkeypatch, winrm_username="ops", winrm_transport="kerberos", api_token="t")
    assert not config_validation.run_config_checks(force=True).has_warnings


def test_basic_without_ssl_warns(monkeypatch):
    _use(monkeypatch, winrm_transport="basic", winrm_username="ops", winrm_password="pw", api_token="t")

    warnings = _messages(config_validation.run_config_checks(force=True).warnings)

    assert any("without SSL" in message for message in warnings)


def test_basic_without_credential_warns(monkeypatch):
    _use(monkeypatch, winrm_transport="basic", winrm_port=5986, api_token="t")

    warnings = _messages(config_validation.run_config_checks(force=True).warnings)

    assert any("No default WinRM credential" in message for message in warnings)
    assert not any("without SSL" in message for message in warnings)


def test_disabled_cert_validation_warns_when_ssl_used(monkeypatch):
    _use(monkeypatch, winrm_port=5986, winrm_cert_validation=False, api_token="t")

    warnings = _messages(config_validation.run_config_checks(force=True).warnings)

    assert any("WINRM_CERT_VALIDATION" in message for message in warnings)


def test_https_port_with_ssl_disabled_warns(monkeypatch):
    _use(monkeypatch, winrm_port=5986, winrm_ssl=False, api_token="t")

    warnings = _messages(config_validation.run_config_checks(force=True).warnings)

    assert any("5986" in message for message in warnings)


def test_non_positive_local_timeout_is_an_error(monkeypatch):
    _use(monkeypatch, local_command_timeout=0, api_token="t")

    result = config_validation.run_config_checks(force=True)

    assert any("LOCAL_COMMAND_TIMEOUT" in message for message in _messages(result.errors))


def test_run_config_checks_returns_cached_result(monkeypatch):
    cached_result = config_validation.ConfigValidationResult(
        checked_at=datetime.now(timezone.utc)
    )

    def fail_if_called(_):
        raise AssertionError("set_config_validation_result should not be called when cached")

    monkeypatch.setattr(config_validation, "get_config_validation_result", lambda: cached_result, raising=False)
    monkeypatch.setattr(config_validation, "set_config_validation_result", fail_if_called, raising=False)

    assert config_validation.run_config_checks() is cached_result


def test_run_config_checks_caches_new_result(monkeypatch):
    stored = []
    monkeypatch.setattr(config_validation, "set_config_validation_result", stored.append, raising=False)

    result = config_validation.run_config_checks()

    assert stored == [result]
