"""Tests for the rtxcraft command line."""
import argparse
import json

import pytest

from conftest import FakeRouter
from rtx_reconciler import cli
from rtx_reconciler.config.inventory import DeviceInventory
from rtx_reconciler.errors import NotFoundError

INVENTORY = """
engine:
  command_timeout: 2

devices:
  rtx-test:
    host: 192.0.2.1
    username: user
    password: userpass
    admin_password: adminpass
"""


@pytest.fixture
def inventory_file(tmp_path):
    path = tmp_path / "devices.yaml"
    path.write_text(INVENTORY)
    return path


@pytest.fixture
def fake_router(monkeypatch):
    """Route the CLI's connections to a fake router and keep logs out of $HOME."""
    router = FakeRouter(config=(
        "syslog host 10.0.0.1",
        "syslog facility local0",
        "nat descriptor type 1000 masquerade",
        "nat descriptor address outer 1000 primary",
    ))
    monkeypatch.setattr(cli, "create_transport", router.transport)
    monkeypatch.setattr(cli, "setup_logging", lambda console=True: None)
    monkeypatch.setattr(cli, "setup_audit_logging", lambda log_dir=None: None)
    return router


def parse(*argv):
    return cli.build_parser().parse_args(list(argv))


class TestArguments:
    """Tests for argument parsing."""

    def test_parse_params(self):
        assert cli.parse_params(["descriptor_id=1000", " network = 10.0.0.0/8 "]) == {
            "descriptor_id": "1000",
            "network": "10.0.0.0/8",
        }
        assert cli.parse_params(None) == {}

    def test_parse_params_rejects_bare_words(self):
        with pytest.raises(argparse.ArgumentTypeError):
            cli.parse_params(["descriptor_id"])

    def test_apply_needs_file(self):
        with pytest.raises(SystemExit):
            parse("apply", "rtx-test", "syslog")

    def test_options(self):
        args = parse("--deadline", "30", "apply", "rtx-test", "static_route",
                     "-p", "network=default", "-f", "route.yaml", "--save")
        assert args.operation == "apply"
        assert args.deadline == 30.0
        assert args.param == ["network=default"]
        assert args.save is True

    def test_load_desired(self, tmp_path):
        path = tmp_path / "desired.yaml"
        path.write_text("notice: on\nhosts:\n  - address: 10.0.0.2\n")
        assert cli.load_desired(path) == {"notice": True, "hosts": [{"address": "10.0.0.2"}]}

    def test_load_desired_rejects_lists(self, tmp_path):
        path = tmp_path / "desired.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            cli.load_desired(path)


class TestRun:
    """Tests for operations run through the CLI layer."""

    @pytest.mark.asyncio
    async def test_read(self, inventory_file, fake_router):
        inventory = DeviceInventory(str(inventory_file))
        result = await cli.run(parse("read", "rtx-test", "syslog"), inventory, fake_router.transport)
        assert result["device"] == "rtx-test"
        assert result["record"]["facility"] == "local0"

    @pytest.mark.asyncio
    async def test_plan(self, inventory_file, fake_router, tmp_path):
        desired = tmp_path / "desired.yaml"
        desired.write_text("debug: true\n")
        inventory = DeviceInventory(str(inventory_file))

        result = await cli.run(parse("plan", "rtx-test", "syslog", "-f", str(desired)),
                               inventory, fake_router.transport)
        assert [c["command"] for c in result["commands"]] == ["syslog debug on"]
        assert fake_router.config_commands == []

    @pytest.mark.asyncio
    async def test_import_missing(self, inventory_file, fake_router):
        inventory = DeviceInventory(str(inventory_file))
        with pytest.raises(NotFoundError):
            await cli.run(parse("import", "rtx-test", "nat_masquerade", "-p", "descriptor_id=2"),
                          inventory, fake_router.transport)


class TestMain:
    """Tests for the entry point."""

    def test_read_prints_json(self, inventory_file, fake_router, capsys):
        code = cli.main(["--config", str(inventory_file), "import", "rtx-test",
                         "nat-masquerade", "--param", "descriptor_id=1000"])
        assert code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["record"] == {
            "descriptor_id": 1000,
            "outer_address": "primary",
            "static_entries": [],
        }

    def test_apply_and_delete(self, inventory_file, fake_router, tmp_path, capsys):
        desired = tmp_path / "desired.yaml"
        desired.write_text("hosts:\n  - address: 10.0.0.2\n    port: 1514\n")

        code = cli.main(["--config", str(inventory_file), "apply", "rtx-test", "syslog",
                         "-f", str(desired), "--save"])
        assert code == 0
        assert json.loads(capsys.readouterr().out)["record"]["hosts"] == [
            {"address": "10.0.0.2", "port": 1514},
        ]
        assert fake_router.saves == 1

        code = cli.main(["--config", str(inventory_file), "delete", "rtx-test", "syslog"])
        assert code == 0
        assert json.loads(capsys.readouterr().out)["deleted"] is True
        assert fake_router.grep("syslog") == []

    def test_apply_failure(self, inventory_file, fake_router, tmp_path, capsys):
        fake_router.fail_on["syslog debug"] = "Error: Invalid parameter"
        desired = tmp_path / "desired.yaml"
        desired.write_text("debug: true\n")

        code = cli.main(["--config", str(inventory_file), "apply", "rtx-test", "syslog",
                         "-f", str(desired)])
        assert code == 1
        output = json.loads(capsys.readouterr().out)
        assert output["failed"] == "syslog debug on"
        assert output["signal"] == "device_error"
        assert output["device_message"] == "Error: Invalid parameter"

    def test_engine_error(self, inventory_file, fake_router, capsys):
        code = cli.main(["--config", str(inventory_file), "read", "rtx-test", "static_route"])
        assert code == 1
        assert json.loads(capsys.readouterr().out)["type"] == "GrammarError"

    def test_unknown_resource(self, inventory_file, fake_router):
        assert cli.main(["--config", str(inventory_file), "read", "rtx-test", "ospf"]) == 2

    def test_unknown_device(self, inventory_file, fake_router):
        assert cli.main(["--config", str(inventory_file), "read", "nope", "syslog"]) == 2

    def test_missing_inventory(self, tmp_path, fake_router):
        assert cli.main(["--config", str(tmp_path / "missing.yaml"), "read", "rtx-test", "syslog"]) == 2
