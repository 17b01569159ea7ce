"""
tests/test_config.py
Config file merge, environment overrides, derived values.
"""

import json

from commbook.config import (
    DEFAULT_CONFIG,
    load_config,
    parse_bool,
    resolve_cron_url,
    resolve_from_address,
    resolve_path,
    resolve_token,
    save_config,
)


class TestParseBool:
    def test_truthy_spellings(self):
        for v in ("true", "TRUE", " on ", "yes", "1", True):
            assert parse_bool(v) is True

    def test_everything_else_is_false(self):
        for v in ("false", "off", "0", "", "enabled", None, False):
            assert parse_bool(v) is False


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path):
        config = load_config(tmp_path, environ={})
        assert config == DEFAULT_CONFIG

    def test_file_values_merge_over_defaults(self, tmp_path):
        (tmp_path / "commbook_config.json").write_text(
            json.dumps({"app_url": "https://school.example", "weekly_threshold": 4}),
            encoding="utf-8",
        )
        config = load_config(tmp_path, environ={})
        assert config["app_url"] == "https://school.example"
        assert config["weekly_threshold"] == 4
        assert config["cumulative_threshold"] == DEFAULT_CONFIG["cumulative_threshold"]

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        (tmp_path / "commbook_config.json").write_text("{not json", encoding="utf-8")
        assert load_config(tmp_path, environ={}) == DEFAULT_CONFIG

    def test_env_overrides_file(self, tmp_path):
        (tmp_path / "commbook_config.json").write_text(
            json.dumps({"smtp_host": "file.example"}), encoding="utf-8",
        )
        config = load_config(tmp_path, environ={
            "SMTP_HOST": "env.example",
            "SMTP_PORT": "465",
            "SMTP_USE_SSL": "yes",
            "DAILY_REPORTS": "on",
            "CRON_JOB_TOKEN": "t0k",
        })
        assert config["smtp_host"] == "env.example"
        assert config["smtp_port"] == 465
        assert config["smtp_use_ssl"] is True
        assert config["daily_reports"] is True
        assert config["cron_job_token"] == "t0k"

    def test_bad_port_uses_default(self, tmp_path):
        config = load_config(tmp_path, environ={"SMTP_PORT": "smtp"})
        assert config["smtp_port"] == 587

    def test_empty_env_values_ignored(self, tmp_path):
        config = load_config(tmp_path, environ={"SMTP_HOST": "", "DAILY_REPORTS": ""})
        assert config["smtp_host"] is None
        assert config["daily_reports"] is False


class TestSaveConfig:
    def test_secrets_not_written(self, tmp_path):
        config = dict(DEFAULT_CONFIG, smtp_pass="pw", cron_job_token="tok", auth_secret="sec")
        path = save_config(config, tmp_path)
        saved = json.loads(path.read_text(encoding="utf-8"))
        assert "smtp_pass" not in saved
        assert "cron_job_token" not in saved
        assert "auth_secret" not in saved
        assert saved["db_path"] == DEFAULT_CONFIG["db_path"]


class TestResolvers:
    def test_token_falls_back_to_auth_secret(self):
        assert resolve_token({"cron_job_token": "a", "auth_secret": "b"}) == "a"
        assert resolve_token({"cron_job_token": "", "auth_secret": "b"}) == "b"
        assert resolve_token({}) == ""

    def test_from_address_falls_back_to_user(self):
        assert resolve_from_address({"smtp_from_email": "f@x", "smtp_user": "u@x"}) == "f@x"
        assert resolve_from_address({"smtp_user": "u@x"}) == "u@x"
        assert resolve_from_address({}) is None

    def test_cron_url_derived_from_app_url(self):
        assert resolve_cron_url({"app_url": "https://school.example/"}) == "https://school.example/api/cron"
        assert resolve_cron_url({"cron_job_url": "http://x/y"}) == "http://x/y"

    def test_relative_paths_use_project_root(self, tmp_path):
        assert resolve_path({"db_path": "a.db"}, "db_path", tmp_path) == tmp_path / "a.db"
        absolute = tmp_path / "elsewhere.db"
        assert resolve_path({"db_path": str(absolute)}, "db_path", None) == absolute
