"""Tests for the firewall gateway and the --list-all parser."""

import asyncio
import os
import stat

import pytest

from firecontrol.service.errors import (
    ExternalToolFailure,
    InvalidArgument,
    SanitizationRejected,
)
from firecontrol.service.firewall import FirewallGateway, parse_list_all, sanitize

from .conftest import LIST_ALL_OUTPUT


class TestSanitize:
    @pytest.mark.parametrize("value", ["10.0.0.5", "public", "trusted2", "a.b.c"])
    def test_accepts_safe_values(self, value):
        assert sanitize(value, "source") == value

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_is_invalid_argument(self, value):
        with pytest.raises(InvalidArgument) as exc:
            sanitize(value, "source")
        assert str(exc.value) == "source not provided."
        assert not isinstance(exc.value, SanitizationRejected)

    @pytest.mark.parametrize(
        "value",
        [
            "10.0.0.5;reboot",
            "10.0.0.5 --reload",
            "$(id)",
            "10.0.0.0/24",
            "fe80::1",
            "--zone=trusted",
        ],
    )
    def test_rejects_instead_of_stripping(self, value):
        with pytest.raises(SanitizationRejected):
            sanitize(value, "source")


class TestScriptedGateway:
    @pytest.mark.asyncio
    async def test_grant_adds_permanent_source_then_reloads(self, gateway):
        await gateway.grant("public", "10.0.0.5")

        assert gateway.calls == [
            ("--permanent", "--zone=public", "--add-source=10.0.0.5"),
            ("--reload",),
        ]

    @pytest.mark.asyncio
    async def test_revoke_removes_permanent_source_then_reloads(self, gateway):
        await gateway.revoke("public", "10.0.0.5")

        assert gateway.calls == [
            ("--permanent", "--zone=public", "--remove-source=10.0.0.5"),
            ("--reload",),
        ]

    @pytest.mark.asyncio
    async def test_rejected_input_never_reaches_tool(self, gateway):
        with pytest.raises(SanitizationRejected):
            await gateway.grant("public", "10.0.0.5;reboot")
        with pytest.raises(InvalidArgument):
            await gateway.revoke("", "10.0.0.5")

        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_rule_failure_carries_diagnostic_and_skips_reload(self, gateway):
        gateway.fail("add", stderr="Error: INVALID_ZONE: nozone\n")

        with pytest.raises(ExternalToolFailure) as exc:
            await gateway.grant("nozone", "10.0.0.5")

        assert exc.value.diagnostic == "Error: INVALID_ZONE: nozone"
        assert exc.value.returncode == 1
        assert gateway.actions() == ["add"]

    @pytest.mark.asyncio
    async def test_reload_failure_fails_the_grant(self, gateway):
        gateway.fail("reload", stderr="Error: COMMAND_FAILED")

        with pytest.raises(ExternalToolFailure) as exc:
            await gateway.grant("public", "10.0.0.5")

        assert "COMMAND_FAILED" in str(exc.value)
        assert gateway.actions() == ["add", "reload"]

    @pytest.mark.asyncio
    async def test_already_enabled_on_add_is_success(self, gateway):
        gateway.script("add", 11, stderr="Error: ALREADY_ENABLED: 10.0.0.5")

        await gateway.grant("public", "10.0.0.5")

        assert gateway.actions() == ["add", "reload"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["NOT_ENABLED", "UNKNOWN_SOURCE"])
    async def test_absent_source_on_remove_is_success(self, gateway, code):
        gateway.script("remove", 2, stderr=f"Error: {code}: 10.0.0.5")

        await gateway.revoke("public", "10.0.0.5")

        assert gateway.actions() == ["remove", "reload"]

    @pytest.mark.asyncio
    async def test_warning_on_success_is_not_failure(self, gateway):
        gateway.script("add", 0, stderr="Warning: ALREADY_ENABLED: 10.0.0.5")

        await gateway.grant("public", "10.0.0.5")

    @pytest.mark.asyncio
    async def test_list_zone(self, gateway):
        summary = await gateway.list_zone("public")

        assert gateway.calls == [("--zone=public", "--list-all")]
        assert summary.title == "public (active)"
        assert summary.config["sources"] == ["10.0.0.5", "10.0.0.6"]

    @pytest.mark.asyncio
    async def test_list_zone_failure(self, gateway):
        gateway.fail("list", stderr="Error: INVALID_ZONE: nozone")

        with pytest.raises(ExternalToolFailure):
            await gateway.list_zone("nozone")


class TestParseListAll:
    def test_single_and_multi_value_fields(self):
        summary = parse_list_all(LIST_ALL_OUTPUT)

        assert summary.title == "public (active)"
        assert summary.config["target"] == "default"
        assert summary.config["icmp-block-inversion"] == "no"
        assert summary.config["masquerade"] == "no"
        assert summary.config["interfaces"] == ["eth0"]
        assert summary.config["services"] == ["dhcpv6-client", "ssh"]
        assert summary.config["ports"] == []

    def test_rich_rules_are_kept_whole(self):
        summary = parse_list_all(LIST_ALL_OUTPUT)

        assert summary.config["rich rules"] == [
            'rule family="ipv4" source address="192.168.1.0" accept'
        ]

    def test_fields_keep_output_order(self):
        summary = parse_list_all(LIST_ALL_OUTPUT)

        assert list(summary.config)[:3] == ["target", "icmp-block-inversion", "interfaces"]

    def test_empty_output(self):
        summary = parse_list_all("")

        assert summary.title == ""
        assert summary.config == {}


# --- Real subprocess path against a stand-in firewall-cmd script ---

FAKE_TOOL = """#!/bin/sh
echo "$@" >> "{log}"
if [ -f "{slow}" ]; then rm -f "{slow}"; sleep 1.5; fi
if [ -f "{fail}" ]; then echo "Error: INVALID_ZONE: $2" >&2; exit 112; fi
echo success
"""


@pytest.fixture
def fake_tool(tmp_path):
    if not os.path.exists("/bin/sh"):
        pytest.skip("needs /bin/sh")
    paths = {
        "log": tmp_path / "calls.log",
        "slow": tmp_path / "slow",
        "fail": tmp_path / "fail",
    }
    script = tmp_path / "firewall-cmd"
    script.write_text(FAKE_TOOL.format(**{k: str(v) for k, v in paths.items()}))
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    paths["binary"] = script
    return paths


def _logged(fake_tool):
    if not fake_tool["log"].exists():
        return []
    return fake_tool["log"].read_text().splitlines()


class TestSubprocessGateway:
    @pytest.mark.asyncio
    async def test_grant_runs_tool(self, fake_tool):
        gateway = FirewallGateway(binary=str(fake_tool["binary"]), timeout=5)

        await gateway.grant("public", "10.0.0.5")

        assert _logged(fake_tool) == [
            "--permanent --zone=public --add-source=10.0.0.5",
            "--reload",
        ]

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_failure(self, fake_tool):
        fake_tool["fail"].write_text("")
        gateway = FirewallGateway(binary=str(fake_tool["binary"]), timeout=5)

        with pytest.raises(ExternalToolFailure) as exc:
            await gateway.grant("public", "10.0.0.5")

        assert exc.value.returncode == 112
        assert "INVALID_ZONE" in exc.value.diagnostic

    @pytest.mark.asyncio
    async def test_missing_binary_is_failure(self, tmp_path):
        gateway = FirewallGateway(binary=str(tmp_path / "no-such-tool"), timeout=5)

        with pytest.raises(ExternalToolFailure):
            await gateway.reload()

    @pytest.mark.asyncio
    async def test_timeout_is_failure_and_next_command_waits(self, fake_tool):
        fake_tool["slow"].write_text("")
        gateway = FirewallGateway(binary=str(fake_tool["binary"]), timeout=0.3)

        with pytest.raises(ExternalToolFailure) as exc:
            await gateway.reload()
        assert "timed out" in str(exc.value)

        # The timed-out command is still running; nothing may overlap it
        with pytest.raises(ExternalToolFailure) as exc:
            await gateway.reload()
        assert "still running" in str(exc.value)
        assert _logged(fake_tool) == ["--reload"]

        await asyncio.sleep(1.5)
        await gateway.reload()
        assert _logged(fake_tool) == ["--reload", "--reload"]
