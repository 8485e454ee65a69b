#!/usr/bin/env python3
"""Unit tests for credstore configuration loading."""

import importlib
import json
import logging
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

config_mod = importlib.import_module("credstore.config")
StoreConfig = config_mod.StoreConfig
load_config = config_mod.load_config
ConfigError = importlib.import_module("credstore.errors").ConfigError


class TestStoreConfig:
    def test_defaults(self):
        config = StoreConfig(database_name="authen.db")
        assert config.backend == "sqlite"
        assert config.table_name == "authentication"
        assert config.create_if_missing is False
        assert config.password_scheme == "sha1"

    def test_database_name_required(self):
        with pytest.raises(ConfigError):
            StoreConfig(database_name="")

    def test_backend_is_case_insensitive(self):
        assert StoreConfig(database_name="x", backend="MySQL").backend == "mysql"
        assert StoreConfig(database_name="x", backend="SQLite").backend == "sqlite"

    def test_unknown_backend(self):
        with pytest.raises(ConfigError):
            StoreConfig(database_name="x", backend="oracle")

    @pytest.mark.parametrize("name", ["auth; DROP TABLE x", "1table", "a-b", "a b"])
    def test_table_name_must_be_identifier(self, name):
        with pytest.raises(ConfigError):
            StoreConfig(database_name="x", table_name=name)

    def test_unknown_password_scheme(self):
        with pytest.raises(ConfigError):
            StoreConfig(database_name="x", password_scheme="md5")

    @pytest.mark.parametrize("timeout", [0, -1, 0.0])
    def test_connect_timeout_must_be_positive(self, timeout):
        with pytest.raises(ConfigError):
            StoreConfig(database_name="x", connect_timeout=timeout)

    def test_password_hidden_from_repr(self):
        config = StoreConfig(database_name="x", backend="mysql", password="secret")
        assert "secret" not in repr(config)


class TestFromDict:
    def test_legacy_keys(self):
        config = StoreConfig.from_dict(
            {
                "dbtype": "MySQL",
                "dbname": "authdb",
                "authen_table": "authen_table",
                "create": 1,
                "dbuser": "app",
                "dbpass": "pw",
                "dbhost": "mysql.example.org",
            }
        )
        assert config.backend == "mysql"
        assert config.database_name == "authdb"
        assert config.table_name == "authen_table"
        assert config.create_if_missing is True
        assert config.user == "app"
        assert config.password == "pw"
        assert config.host == "mysql.example.org"

    def test_unknown_keys_are_ignored(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = StoreConfig.from_dict({"database_name": "a.db", "colour": "blue"})
        assert config.database_name == "a.db"
        assert "colour" in caplog.text

    def test_missing_database_name(self):
        with pytest.raises(ConfigError):
            StoreConfig.from_dict({"backend": "sqlite"})


class TestLoadConfig:
    def test_store_section(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps({"store": {"database_name": "a.db", "create_if_missing": True}})
        )
        config = load_config(path)
        assert config.database_name == "a.db"
        assert config.create_if_missing is True

    def test_whole_document(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"database_name": "b.db"}))
        assert load_config(path).database_name == "b.db"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "absent.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_config(path)
