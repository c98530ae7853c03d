"""Tests for the click-based CLI."""

import logging
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner
from pymongo.errors import ServerSelectionTimeoutError

from step_migrator.cli.commands import cli, handle_exception
from step_migrator.exceptions import ConfigError, MigrationAbortedError
from tests.unit.conftest import make_recording_processor, seed


@pytest.fixture(autouse=True)
def _isolate(tmp_path, monkeypatch):
    """Run every command from a temp dir and detach file handlers afterwards."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("MONGODB_URI", raising=False)
    monkeypatch.delenv("MONGO_URI", raising=False)
    yield
    logger = logging.getLogger("step_migrator")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture()
def config_file(tmp_path, sample_config_dict) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(sample_config_dict, sort_keys=False))
    return path


@pytest.fixture()
def seeded_db(fake_db):
    seed(fake_db["communityusers"], 3)
    seed(fake_db["users"], 4)
    seed(fake_db["carelogs"], 5)
    return fake_db


def _report(tmp_path: Path) -> dict:
    (report,) = tmp_path.glob("migration_logs/run_*/migration_report.yaml")
    return yaml.safe_load(report.read_text())


class TestCLIGroup:
    """Tests for the CLI group structure."""

    def test_cli_has_all_subcommands(self):
        assert set(cli.commands.keys()) == {"migrate", "status", "verify", "init-config"}

    def test_version_flag(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "step-migrator" in result.output

    def test_short_help_flag(self):
        result = CliRunner().invoke(cli, ["-h"])
        assert result.exit_code == 0
        assert "migrate" in result.output


class TestMigrateCommand:
    """Tests for the migrate subcommand."""

    def test_help_shows_all_options(self):
        result = CliRunner().invoke(cli, ["migrate", "--help"])
        assert result.exit_code == 0
        for opt in ["--config", "--mongo_uri", "--dry_run", "--resume", "--batch_size", "--step", "--drop_old"]:
            assert opt in result.output

    def test_missing_uri_exits_with_error(self, tmp_path):
        result = CliRunner().invoke(cli, ["migrate", "--config", str(tmp_path / "none.yaml")])
        assert result.exit_code == 1

    def test_rejects_zero_batch_size(self, config_file):
        result = CliRunner().invoke(cli, ["migrate", "--config", str(config_file), "-b", "0"])
        assert result.exit_code == 2

    def test_full_run(self, config_file, seeded_db, make_runner, tmp_path):
        with patch("step_migrator.cli.migrate_cmd.create_runner", lambda cfg: make_runner()):
            result = CliRunner().invoke(cli, ["migrate", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "MIGRATION SUMMARY" in result.output
        assert seeded_db["users_v2"].count_documents({"source": "users"}) == 7
        assert seeded_db["plant_logs"].count_documents({"source": "plantlogs"}) == 5
        assert seeded_db["_migrations"].docs["usersStep_users"]["status"] == "completed"

        report = _report(tmp_path)
        assert report["summary"]["inserted"] == 12
        assert [s["step"] for s in report["steps"]] == ["usersStep", "plantLogsStep"]

    def test_single_step_and_dry_run(self, config_file, seeded_db, make_runner, tmp_path):
        with patch("step_migrator.cli.migrate_cmd.create_runner", lambda cfg: make_runner()):
            result = CliRunner().invoke(
                cli, ["migrate", "--config", str(config_file), "--step", "plantLogsStep", "--dry_run"]
            )

        assert result.exit_code == 0, result.output
        assert "DRY RUN SUMMARY" in result.output
        assert seeded_db["plant_logs"].docs == {}
        assert seeded_db["_migrations"].writes == []
        assert [s["step"] for s in _report(tmp_path)["steps"]] == ["plantLogsStep"]

    def test_unknown_step_exits_with_error(self, config_file, make_runner):
        with patch("step_migrator.cli.migrate_cmd.create_runner", lambda cfg: make_runner()):
            result = CliRunner().invoke(cli, ["migrate", "--config", str(config_file), "-s", "nope"])
        assert result.exit_code == 1

    def test_step_failure_stops_run(self, config_file, seeded_db, make_runner, tmp_path):
        failing = make_recording_processor(fail_on_call=1)
        with patch("step_migrator.cli.migrate_cmd.create_runner", lambda cfg: make_runner()), patch(
            "step_migrator.steps.copy.make_document_processor", return_value=failing
        ):
            result = CliRunner().invoke(cli, ["migrate", "--config", str(config_file)])

        assert result.exit_code == 1
        assert seeded_db["_migrations"].docs["usersStep_communityusers"]["status"] == "failed"
        assert "plantLogsStep_carelogs" not in seeded_db["_migrations"].docs
        steps = _report(tmp_path)["steps"]
        assert [s["status"] for s in steps] == ["failed"]

    def test_drop_old_after_success(self, config_file, seeded_db, make_runner):
        with patch("step_migrator.cli.migrate_cmd.create_runner", lambda cfg: make_runner()):
            result = CliRunner().invoke(cli, ["migrate", "--config", str(config_file), "--drop_old"])

        assert result.exit_code == 0, result.output
        assert seeded_db.dropped == ["communityusers", "users", "carelogs"]

    def test_resume_skips_completed_steps(self, config_file, seeded_db, make_runner):
        with patch("step_migrator.cli.migrate_cmd.create_runner", lambda cfg: make_runner()):
            CliRunner().invoke(cli, ["migrate", "--config", str(config_file)])
            writes = len(seeded_db["_migrations"].writes)
            result = CliRunner().invoke(cli, ["migrate", "--config", str(config_file), "--resume"])

        assert result.exit_code == 0, result.output
        assert len(seeded_db["_migrations"].writes) == writes


class TestStatusCommand:
    def test_lists_checkpoints(self, config_file, seeded_db, make_runner):
        with patch("step_migrator.cli.migrate_cmd.create_runner", lambda cfg: make_runner()):
            CliRunner().invoke(cli, ["migrate", "--config", str(config_file), "-s", "plantLogsStep"])
        with patch("step_migrator.cli.status_cmd.create_runner", lambda cfg: make_runner(load=False)):
            result = CliRunner().invoke(cli, ["status", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "plantLogsStep_carelogs" in result.output
        assert "5/5" in result.output

    def test_no_checkpoints(self, config_file, make_runner):
        with patch("step_migrator.cli.status_cmd.create_runner", lambda cfg: make_runner(load=False)):
            result = CliRunner().invoke(cli, ["status", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "No checkpoints recorded." in result.output


class TestVerifyCommand:
    def test_uses_configured_target_and_tag(self, config_file, fake_db, make_runner):
        fake_db["users_v2"].insert_many([{"_id": i, "source": "users"} for i in range(3)])
        with patch("step_migrator.cli.status_cmd.create_runner", lambda cfg: make_runner(load=False)):
            result = CliRunner().invoke(
                cli, ["verify", "--config", str(config_file), "-s", "usersStep", "--expected", "3"]
            )

        assert result.exit_code == 0, result.output
        assert "users_v2: 3 document(s) tagged 'users'" in result.output

    def test_mismatch_exits_nonzero(self, config_file, make_runner):
        with patch("step_migrator.cli.status_cmd.create_runner", lambda cfg: make_runner(load=False)):
            result = CliRunner().invoke(
                cli, ["verify", "--config", str(config_file), "-s", "usersStep", "--expected", "3"]
            )

        assert result.exit_code == 1
        assert "Count mismatch: expected 3, got 0" in result.output

    def test_unconfigured_step_needs_target(self, config_file):
        result = CliRunner().invoke(cli, ["verify", "--config", str(config_file), "-s", "otherStep"])
        assert result.exit_code == 2


class TestInitConfigCommand:
    def test_creates_file(self, tmp_path):
        result = CliRunner().invoke(cli, ["init-config", "--output", "new.yaml"])
        assert result.exit_code == 0
        assert (tmp_path / "new.yaml").exists()

    def test_refuses_to_overwrite(self, tmp_path):
        (tmp_path / "config.yaml").write_text("x: 1\n")
        result = CliRunner().invoke(cli, ["init-config"])
        assert result.exit_code == 1


class TestHandleException:
    """Tests for handle_exception()."""

    def test_migrator_error_logs_message(self, caplog):
        with caplog.at_level(logging.ERROR, logger="step_migrator"):
            handle_exception(ConfigError("bad config"))
        assert "bad config" in caplog.text

    def test_database_error_suggests_resume(self, caplog):
        with caplog.at_level(logging.INFO, logger="step_migrator"):
            handle_exception(ServerSelectionTimeoutError("no servers"))
        assert "Database error during migration" in caplog.text
        assert "--resume" in caplog.text

    def test_keyboard_interrupt(self, caplog):
        with caplog.at_level(logging.INFO, logger="step_migrator"):
            handle_exception(KeyboardInterrupt())
        assert "interrupted" in caplog.text

    def test_aborted_error_is_a_migrator_error(self, caplog):
        with caplog.at_level(logging.ERROR, logger="step_migrator"):
            handle_exception(MigrationAbortedError("Migration completed with errors"))
        assert "Migration completed with errors" in caplog.text

    def test_unexpected_error(self, caplog):
        with caplog.at_level(logging.ERROR, logger="step_migrator"):
            handle_exception(RuntimeError("boom"))
        assert "Migration failed: boom" in caplog.text
