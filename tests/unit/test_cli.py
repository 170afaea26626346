"""Unit tests for the command line interface."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from docker import errors as docker_errors

from imagetest.__main__ import Imagetest
from imagetest.cli import parse_duration, parse_labels
from imagetest.cli import main as cli_main
from imagetest.constants import DEBUG_ENV_VAR, EXIT_CONFIG_ERROR, EXIT_ERROR
from imagetest.exceptions import HarnessNotFoundError, HarnessSetupError, InventoryError

CONFIG = """\
inventory:
  seed: suite-a
harnesses:
  k3s:
    timeouts:
      create: 30s
features:
  smoke:
    harness: k3s
    labels:
      env: dev
    steps:
      - kubectl get nodes
      - echo done
"""


class TestParseLabels:
    """Test runtime label parsing."""

    def test_parse_pairs(self) -> None:
        assert parse_labels("env=dev, arch=arm64") == {"env": "dev", "arch": "arm64"}

    def test_empty_values(self) -> None:
        assert parse_labels("") == {}
        assert parse_labels(None) == {}
        assert parse_labels("env=") == {"env": ""}

    def test_mapping_values_stringified(self) -> None:
        assert parse_labels({"tier": 1}) == {"tier": "1"}

    @pytest.mark.parametrize("labels", ["env", "=dev", "env=dev,arch"])
    def test_invalid(self, labels: str) -> None:
        with pytest.raises(ValueError, match="expected key=value"):
            parse_labels(labels)


class TestParseDuration:
    """Test duration parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("90s", 90.0),
            ("5m", 300.0),
            ("1h", 3600.0),
            ("500ms", 0.5),
            ("45", 45.0),
            (12, 12.0),
            (1.5, 1.5),
            (None, None),
        ],
    )
    def test_valid(self, value, expected) -> None:
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["soon", "5d", "-1s", "", True])
    def test_invalid(self, value) -> None:
        with pytest.raises(ValueError, match="Invalid duration"):
            parse_duration(value)

    def test_zero_rejected(self) -> None:
        with pytest.raises(ValueError, match="must be positive"):
            parse_duration("0s")


@pytest.fixture
def config_file(tmp_path: Path) -> str:
    path = tmp_path / "imagetest.yaml"
    path.write_text(CONFIG)
    return str(path)


@pytest.fixture
def handles() -> dict:
    return {}


@pytest.fixture
def imagetest(keychain, handles, make_handle) -> Imagetest:
    """Imagetest wired to fake handles instead of Docker."""

    def factory(harness_id, client, spec, keychain):
        handle = make_handle()
        handles[harness_id] = handle
        return handle

    return Imagetest(
        docker_client_factory=MagicMock,
        keychain=keychain,
        handle_factory=factory,
    )


class TestImagetestPlan:
    """Test the plan command."""

    def test_plan_prints_harnesses(self, imagetest, config_file, capsys, handles) -> None:
        """Test planning lists each harness without creating it."""
        imagetest.plan(config=config_file)

        out = capsys.readouterr().out
        assert "NAME" in out
        assert "k3s-" in out
        assert "planned" in out
        assert handles == {}

    def test_plan_invalid_config(self, imagetest, tmp_path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("inventory: {}\n")

        with pytest.raises(ValueError, match="inventory.seed is required"):
            imagetest.plan(config=str(path))

    def test_invalid_parallelism(self, imagetest, config_file) -> None:
        with pytest.raises(ValueError, match="parallelism"):
            imagetest.plan(config=config_file, parallelism=0)


class TestImagetestApply:
    """Test the apply command."""

    def test_apply_creates_and_runs_features(
        self, imagetest, config_file, capsys, handles
    ) -> None:
        """Test apply sets up the harness and runs the feature steps."""
        imagetest.apply(config=config_file)

        (handle,) = handles.values()
        assert handle.setup_calls == 1
        assert handle.commands == ["kubectl get nodes", "echo done"]
        assert "created" in capsys.readouterr().out

    def test_apply_skips_on_label_mismatch(
        self, imagetest, config_file, capsys, handles
    ) -> None:
        """Test runtime labels that conflict with a feature skip its harness."""
        imagetest.apply(config=config_file, labels="env=prod")

        assert handles == {}
        assert "skipped" in capsys.readouterr().out

    def test_apply_matching_labels_creates(self, imagetest, config_file, handles) -> None:
        imagetest.apply(config=config_file, labels="env=dev")

        assert len(handles) == 1

    def test_apply_step_failure_exits(self, keychain, config_file, make_handle) -> None:
        """Test a failing feature makes apply exit with an error."""
        handle = make_handle()

        def run(command, deadline=None):
            raise HarnessSetupError("sandbox gone")

        handle.run = run
        imagetest = Imagetest(
            docker_client_factory=MagicMock,
            keychain=keychain,
            handle_factory=lambda *args: handle,
        )

        with pytest.raises(SystemExit) as exc_info:
            imagetest.apply(config=config_file)

        assert exc_info.value.code == EXIT_ERROR

    def test_apply_setup_failure_fails_features(
        self, keychain, config_file, make_handle, capsys
    ) -> None:
        """Test features of a harness that failed setup are reported and not run."""
        handle = make_handle(fail_with=HarnessSetupError("pull failed"))
        imagetest = Imagetest(
            docker_client_factory=MagicMock,
            keychain=keychain,
            handle_factory=lambda *args: handle,
        )

        with pytest.raises(SystemExit):
            imagetest.apply(config=config_file)

        assert handle.commands == []
        assert "failed" in capsys.readouterr().out

    def test_apply_with_file_inventory(self, imagetest, tmp_path, handles) -> None:
        """Test a configured inventory directory stores inventories on disk."""
        inventory_dir = tmp_path / "inventory"
        path = tmp_path / "file.yaml"
        path.write_text(f"provider:\n  inventory_dir: {inventory_dir}\n{CONFIG}")

        imagetest.apply(config=str(path))

        assert len(handles) == 1
        assert list(inventory_dir.glob("inventory-*.json"))


class TestImagetestInventory:
    """Test the inventory command."""

    def test_inventory_lists_features(self, imagetest, config_file, capsys) -> None:
        imagetest.inventory(config=config_file)

        out = capsys.readouterr().out
        assert "Inventory suite-a (" in out
        assert "smoke" in out
        assert "env=dev" in out

    def test_inventory_shows_skip_decision(self, imagetest, config_file, capsys) -> None:
        imagetest.inventory(config=config_file, labels="env=prod")

        line = next(l for l in capsys.readouterr().out.splitlines() if "smoke" in l)
        assert "yes" in line.split()

    def test_inventory_empty(self, imagetest, tmp_path, capsys) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("inventory:\n  seed: suite-a\n")

        imagetest.inventory(config=str(path))

        assert "No harnesses defined" in capsys.readouterr().out


class TestMain:
    """Test error handling around the Fire entry point."""

    @pytest.fixture
    def fire_raises(self, monkeypatch):
        def install(error: Exception) -> None:
            def fake_fire(component):
                raise error

            monkeypatch.setattr(cli_main.fire, "Fire", fake_fire)

        return install

    def test_config_error_exit_code(self, fire_raises, capsys) -> None:
        fire_raises(ValueError("inventory.seed is required"))

        with pytest.raises(SystemExit) as exc_info:
            cli_main.main()

        assert exc_info.value.code == EXIT_CONFIG_ERROR
        assert "Configuration error: inventory.seed is required" in capsys.readouterr().err

    def test_missing_harness_is_config_error(self, fire_raises) -> None:
        fire_raises(HarnessNotFoundError("k3s-abc"))

        with pytest.raises(SystemExit) as exc_info:
            cli_main.main()

        assert exc_info.value.code == EXIT_CONFIG_ERROR

    def test_docker_error(self, fire_raises, capsys) -> None:
        fire_raises(docker_errors.DockerException("connection refused"))

        with pytest.raises(SystemExit) as exc_info:
            cli_main.main()

        assert exc_info.value.code == EXIT_ERROR
        assert "Docker daemon is not running" in capsys.readouterr().err

    def test_imagetest_error(self, fire_raises, capsys) -> None:
        fire_raises(InventoryError("store down"))

        with pytest.raises(SystemExit) as exc_info:
            cli_main.main()

        assert exc_info.value.code == EXIT_ERROR
        assert "Error: store down" in capsys.readouterr().err

    def test_debug_mode_reraises(self, fire_raises, monkeypatch) -> None:
        monkeypatch.setenv(DEBUG_ENV_VAR, "1")
        fire_raises(InventoryError("store down"))

        with pytest.raises(InventoryError):
            cli_main.main()
