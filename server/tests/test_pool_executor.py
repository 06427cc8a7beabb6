"""Tests for the pool lifecycle executors."""

import pytest
from pydantic import SecretStr

from conftest import FakeShell, FakeWinRM, json_output

from iispool.core.models import PoolState, PoolTarget, SessionContext, WinRMCredential
from iispool.services.pool_executor import (
    LocalPoolExecutor,
    PoolCommandError,
    RemotePoolExecutor,
    build_lookup_script,
    build_query_script,
    build_recycle_script,
    build_stop_script,
    select_executor,
    strip_transport_metadata,
)
from iispool.services.winrm_service import WinRMTransportError


def test_recycle_script_catches_restart_failures_and_queries_started_pool():
    script = build_recycle_script("Pool'1", pass_thru=True)

    assert "Import-Module WebAdministration" in script
    assert "$poolName = 'Pool''1'" in script
    assert "$passThru = $true" in script
    assert "$stateFilter = 'Started'" in script
    assert "Restart-WebAppPool -Name $poolName -ErrorAction Stop" in script
    assert "} catch {" in script
    assert "ConvertTo-Json -InputObject @($results) -Compress" in script


def test_recycle_script_without_pass_thru():
    assert "$passThru = $false" in build_recycle_script("Pool1", pass_thru=False)


def test_stop_script_suppresses_errors_and_forwards_pass_thru():
    script = build_stop_script("Pool1", pass_thru=True)

    assert "Stop-WebAppPool -Name $poolName -ErrorAction SilentlyContinue -Passthru:$passThru" in script
    assert "$passThru = $true" in script
    assert "Get-ChildItem" not in script


def test_query_script_filters_by_state():
    assert "$stateFilter = 'Stopped'" in build_query_script("Pool1", PoolState.STOPPED)
    assert "$stateFilter = $null" in build_query_script("Pool1", None)


def test_lookup_script_collects_sites_and_applications():
    script = build_lookup_script("Pool1")

    assert "Get-Website" in script
    assert "Get-WebApplication" in script
    assert "Applications = @($sites | Select-Object -Unique)" in script


def test_local_recycle_returns_failure_record_as_data():
    failure = {"ComputerName": "WEB01", "Name": "Pool1", "Action": "recycle", "Error": "denied"}
    shell = FakeShell([(json_output([failure]), "", 0)])
    executor = LocalPoolExecutor("WEB01", shell=shell)

    items = executor.recycle_pool("Pool1")

    assert items == [failure]
    assert len(shell.calls) == 1
    assert "Restart-WebAppPool" in shell.calls[0]


def test_local_recycle_pass_thru_runs_single_invocation():
    started = {"Name": "Pool1", "State": "Started", "ComputerName": "WEB01"}
    shell = FakeShell([(json_output([started]), "", 0)])
    executor = LocalPoolExecutor("WEB01", shell=shell)

    items = executor.recycle_pool("Pool1", pass_thru=True)

    assert items == [started]
    assert len(shell.calls) == 1
    assert "$passThru = $true" in shell.calls[0]


def test_restart_pool_returns_nothing_on_success():
    shell = FakeShell([("[]\n", "", 0)])

    assert LocalPoolExecutor("WEB01", shell=shell).restart_pool("Pool1") is None
    assert "$passThru = $false" in shell.calls[0]


def test_restart_pool_raises_reported_failure():
    failure = {"ComputerName": "SRV1", "Name": "Pool1", "Action": "recycle", "Error": "denied"}
    winrm = FakeWinRM([(json_output([failure]), "", 0)])

    with pytest.raises(PoolCommandError) as exc:
        RemotePoolExecutor("SRV1", winrm=winrm).restart_pool("Pool1")

    assert exc.value.action == "recycle"
    assert exc.value.hostname == "SRV1"
    assert exc.value.message == "denied"


def test_single_object_payload_is_wrapped_in_list():
    shell = FakeShell([(json_output({"Name": "Pool1", "State": "Stopped"}), "", 0)])

    items = LocalPoolExecutor("WEB01", shell=shell).stop_pool("Pool1", pass_thru=True)

    assert items == [{"Name": "Pool1", "State": "Stopped"}]


def test_empty_output_means_no_items():
    shell = FakeShell([("", "", 0)])

    assert LocalPoolExecutor("WEB01", shell=shell).stop_pool("Pool1") == []


def test_output_uses_last_non_empty_line_and_ignores_bom():
    stdout = "\ufeffWARNING: something noisy\n" + json_output([{"Name": "Pool1", "State": "Started"}])
    shell = FakeShell([(stdout, "", 0)])

    items = LocalPoolExecutor("WEB01", shell=shell).query_pool("Pool1")

    assert items[0]["State"] == "Started"


def test_non_zero_exit_raises_pool_command_error():
    shell = FakeShell([("", "The specified module 'WebAdministration' was not loaded", 1)])

    with pytest.raises(PoolCommandError) as exc:
        LocalPoolExecutor("WEB01", shell=shell).stop_pool("Pool1")

    assert exc.value.action == "stop"
    assert exc.value.hostname == "WEB01"
    assert exc.value.pool_name == "Pool1"
    assert "WebAdministration" in exc.value.message


def test_unparseable_output_raises_pool_command_error():
    shell = FakeShell([("not json at all\n", "", 0)])

    with pytest.raises(PoolCommandError) as exc:
        LocalPoolExecutor("WEB01", shell=shell).recycle_pool("Pool1")

    assert "Unparseable" in exc.value.message


def test_remote_executor_passes_host_and_credential():
    credential = WinRMCredential(username="CORP\\ops", password=SecretStr("secret"))
    winrm = FakeWinRM()
    executor = RemotePoolExecutor("SRV1", credential=credential, winrm=winrm)

    executor.recycle_pool("Pool1")

    assert winrm.calls[0]["hostname"] == "SRV1"
    assert winrm.calls[0]["credential"] is credential
    assert "$poolName = 'Pool1'" in winrm.calls[0]["command"]


def test_remote_executor_strips_transport_metadata():
    item = {
        "Name": "Pool1",
        "State": "Started",
        "RunspaceId": "3f2a5a1e-0000-0000-0000-000000000000",
        "PSShowComputerName": True,
    }
    winrm = FakeWinRM([(json_output([item]), "", 0)])

    items = RemotePoolExecutor("SRV1", winrm=winrm).stop_pool("Pool1", pass_thru=True)

    assert items == [{"Name": "Pool1", "State": "Started"}]


def test_remote_transport_errors_propagate_unchanged():
    error = WinRMTransportError("connection refused")
    winrm = FakeWinRM([error])

    with pytest.raises(WinRMTransportError) as exc:
        RemotePoolExecutor("SRV1", winrm=winrm).recycle_pool("Pool1")

    assert exc.value is error


def test_strip_transport_metadata_keeps_other_fields():
    assert strip_transport_metadata({"RunspaceId": "x", "PSComputerName": "SRV1"}) == {
        "PSComputerName": "SRV1"
    }


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"Applications": ["a", "b"]}, ["a", "b"]),
        ({"Applications": {"value": ["a"], "Count": 1}}, ["a"]),
        ({"Applications": "a"}, ["a"]),
        ({"Applications": None}, []),
    ],
)
def test_lookup_pool_normalizes_applications(payload, expected):
    shell = FakeShell([(json_output(payload), "", 0)])

    info = LocalPoolExecutor("WEB01", shell=shell).lookup_pool("Pool1")

    assert info["Applications"] == expected


def test_lookup_pool_without_output():
    shell = FakeShell([("[]\n", "", 0)])

    assert LocalPoolExecutor("WEB01", shell=shell).lookup_pool("Pool1") == {"Applications": []}


def test_select_executor_uses_resolved_target_host(local_aliases):
    credential = WinRMCredential(username="ops", password=SecretStr("pw"))
    session = SessionContext(credential=credential)

    remote = select_executor(PoolTarget(computer_name="SRV2", name="PoolX"), session, aliases=local_aliases)
    local = select_executor(PoolTarget(computer_name="LOCALHOST", name="PoolX"), session, aliases=local_aliases)

    assert isinstance(remote, RemotePoolExecutor)
    assert remote.hostname == "SRV2"
    assert remote.credential is credential
    assert isinstance(local, LocalPoolExecutor)
    assert local.hostname == "LOCALHOST"


def test_select_executor_without_session_has_no_credential(local_aliases):
    executor = select_executor(PoolTarget(computer_name="SRV2", name="PoolX"), aliases=local_aliases)

    assert executor.credential is None
