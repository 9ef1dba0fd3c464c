"""
Config System (config.py)

Tests ConfigLoader source merging, value parsing and validation.
"""

import json

import pytest

from quarry import DbManager
from quarry.config import ConfigLoader
from quarry.faults import ConfigInvalidFault


# ============================================================================
# ConfigLoader
# ============================================================================

class TestConfigLoader:

    def test_init_defaults(self):
        loader = ConfigLoader()
        assert loader.env_prefix == "QUARRY_"
        assert loader.config_data == {}

    def test_custom_prefix(self):
        loader = ConfigLoader(env_prefix="APP_")
        assert loader.env_prefix == "APP_"

    def test_merge_dict(self):
        loader = ConfigLoader()
        target = {"connections": {"mysql": {"hostname": "a", "port": 3306}}}
        loader._merge_dict(target, {"connections": {"mysql": {"hostname": "b"}}})
        assert target == {"connections": {"mysql": {"hostname": "b", "port": 3306}}}

    def test_merge_dict_overwrite(self):
        loader = ConfigLoader()
        target = {"a": {"b": 1}}
        loader._merge_dict(target, {"a": 5})
        assert target == {"a": 5}

    def test_get_dot_path(self):
        loader = ConfigLoader.load(overrides={"connections": {"sqlite": {"database": "x.db"}}})
        assert loader.get("connections.sqlite.database") == "x.db"
        assert loader.get("connections.mysql.hostname", "localhost") == "localhost"
        assert loader.get("connections.sqlite.database.deeper") is None

    def test_parse_value_bool(self):
        assert ConfigLoader._parse_value("true") is True
        assert ConfigLoader._parse_value("YES") is True
        assert ConfigLoader._parse_value("false") is False
        assert ConfigLoader._parse_value("no") is False

    def test_parse_value_numbers(self):
        assert ConfigLoader._parse_value("3306") == 3306
        assert ConfigLoader._parse_value("1.5") == 1.5
        assert ConfigLoader._parse_value("localhost") == "localhost"

    def test_parse_value_json(self):
        assert ConfigLoader._parse_value('{"a": 1}') == {"a": 1}
        assert ConfigLoader._parse_value("[1, 2]") == [1, 2]
        assert ConfigLoader._parse_value("{broken") == "{broken"

    def test_to_dict_is_copy(self):
        loader = ConfigLoader.load(overrides={"connections": {"sqlite": {"database": "a"}}})
        data = loader.to_dict()
        data["connections"]["sqlite"]["database"] = "b"
        assert loader.get("connections.sqlite.database") == "a"

    def test_repr(self):
        loader = ConfigLoader.load(overrides={"default": "sqlite", "connections": {"sqlite": {}}})
        assert "QUARRY_" in repr(loader)
        assert "connections" in repr(loader)


# ============================================================================
# Sources
# ============================================================================

class TestConfigSources:

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "database.yaml"
        path.write_text(
            "default: sqlite\n"
            "connections:\n"
            "  sqlite:\n"
            "    type: sqlite\n"
            "    database: app.db\n"
        )
        loader = ConfigLoader.load([str(path)])
        assert loader.get("default") == "sqlite"
        assert loader.get("connections.sqlite.database") == "app.db"

    def test_json_file(self, tmp_path):
        path = tmp_path / "database.json"
        path.write_text(json.dumps({"connections": {"mysql": {"hostname": "db1"}}}))
        loader = ConfigLoader.load([str(path)])
        assert loader.get("connections.mysql.hostname") == "db1"

    def test_glob_pattern(self, tmp_path):
        (tmp_path / "a.yaml").write_text("connections:\n  mysql:\n    hostname: a\n")
        (tmp_path / "b.yaml").write_text("connections:\n  mysql:\n    port: 3307\n")
        loader = ConfigLoader.load([str(tmp_path / "*.yaml")])
        assert loader.get("connections.mysql") == {"hostname": "a", "port": 3307}

    def test_env_file(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text(
            "QUARRY_CONNECTIONS__MYSQL__HOSTNAME=db2\n"
            "QUARRY_CONNECTIONS__MYSQL__HOSTPORT=3308\n"
            "OTHER_KEY=ignored\n"
        )
        loader = ConfigLoader.load(env_file=str(env))
        assert loader.get("connections.mysql.hostname") == "db2"
        assert loader.get("connections.mysql.hostport") == 3308
        assert loader.get("other_key") is None

    def test_missing_env_file(self, tmp_path):
        loader = ConfigLoader.load(env_file=str(tmp_path / "missing.env"))
        assert loader.get("connections") is None

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("QUARRY_CONNECTIONS__SQLITE__DEBUG", "true")
        loader = ConfigLoader.load()
        assert loader.get("connections.sqlite.debug") is True

    def test_precedence(self, tmp_path, monkeypatch):
        path = tmp_path / "database.yaml"
        path.write_text("connections:\n  mysql:\n    hostname: file\n    database: app\n")
        env = tmp_path / ".env"
        env.write_text("QUARRY_CONNECTIONS__MYSQL__HOSTNAME=dotenv\n")
        monkeypatch.setenv("QUARRY_CONNECTIONS__MYSQL__DATABASE", "environ")

        loader = ConfigLoader.load([str(path)], env_file=str(env))
        assert loader.get("connections.mysql.hostname") == "dotenv"
        assert loader.get("connections.mysql.database") == "environ"

        loader = ConfigLoader.load(
            [str(path)], env_file=str(env),
            overrides={"connections": {"mysql": {"hostname": "override"}}},
        )
        assert loader.get("connections.mysql.hostname") == "override"


# ============================================================================
# Validation
# ============================================================================

class TestConfigValidation:

    def test_connections_must_be_mapping(self):
        with pytest.raises(ConfigInvalidFault):
            ConfigLoader.load(overrides={"connections": ["mysql"]})

    def test_connection_entry_must_be_mapping(self):
        with pytest.raises(ConfigInvalidFault) as exc:
            ConfigLoader.load(overrides={"connections": {"mysql": "localhost"}})
        assert exc.value.metadata["key"] == "connections.mysql"

    def test_default_must_exist(self):
        with pytest.raises(ConfigInvalidFault):
            ConfigLoader.load(overrides={"default": "pgsql", "connections": {"mysql": {}}})

    def test_default_without_connections(self):
        loader = ConfigLoader.load(overrides={"default": "pgsql"})
        assert loader.get("default") == "pgsql"


# ============================================================================
# Manager integration
# ============================================================================

class TestManagerFromConfig:

    def test_from_config(self):
        loader = ConfigLoader.load(overrides={
            "default": "sqlite",
            "connections": {"sqlite": {"type": "sqlite", "database": ":memory:"}},
        })
        db = DbManager.from_config(loader)
        try:
            assert db.query("SELECT 1 AS one") == [{"one": 1}]
        finally:
            db.close()
