import os

import pytest

from batchgen.utils.env import default_env_path, load_env_file, parse_env_lines


def test_parse_env_lines_handles_exports_quotes_and_comments() -> None:
  lines = [
    "# local overrides",
    "",
    "export BATCHGEN_DEBUG=true",
    'BATCHGEN_GENERATION_MODEL="gpt-4o-mini"',
    "BATCHGEN_TASK_SECRET='a # kept'",
    "BATCHGEN_GENERATION_MAX_RETRY=5 # bumped for load tests",
    "not-a-pair",
    "=orphan",
  ]

  assert parse_env_lines(lines) == {
    "BATCHGEN_DEBUG": "true",
    "BATCHGEN_GENERATION_MODEL": "gpt-4o-mini",
    "BATCHGEN_TASK_SECRET": "a # kept",
    "BATCHGEN_GENERATION_MAX_RETRY": "5",
  }


def test_load_env_file_never_overrides_real_environment(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
  env_file = tmp_path / ".env"
  env_file.write_text("BATCHGEN_TEST_KEPT=file\nBATCHGEN_TEST_NEW=file\n", encoding="utf-8")
  monkeypatch.setenv("BATCHGEN_TEST_KEPT", "process")
  monkeypatch.setenv("BATCHGEN_TEST_NEW", "")
  monkeypatch.delenv("BATCHGEN_TEST_NEW")

  applied = load_env_file(env_file)

  assert applied == ["BATCHGEN_TEST_NEW"]
  assert os.environ["BATCHGEN_TEST_KEPT"] == "process"
  assert os.environ["BATCHGEN_TEST_NEW"] == "file"


def test_missing_env_file_is_ignored(tmp_path) -> None:
  assert load_env_file(tmp_path / "absent.env") == []


def test_env_file_location_can_be_overridden(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("BATCHGEN_ENV_FILE", str(tmp_path / "staging.env"))
  assert default_env_path() == tmp_path / "staging.env"
