import pytest

from dialogtree.config import (
    AiConfig,
    ChatAnywhereConfig,
    Config,
    ConfigError,
    DBConfig,
    SystemConfig,
    read_conf,
    set_conf,
)

YAML_TEXT = """
system:
  mode: debug
  ip: ""
  port: "8080"
  env: dev
  ginMode: release
logrus:
  app: dialog
  dir: logs
db:
  user: user
  password: password
  host: localhost
  port: 5432
  dbname: dialog
  source: pgsql
redis:
  addr: localhost:6379
  db: 2
ai:
  enable: true
  chatAnywhere:
    model: gpt-4o
    secretKey: secret
  backendAi:
    model: deepseek-v3
"""


def test_read_conf_maps_yaml_keys(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(YAML_TEXT, encoding="utf-8")
    config = read_conf(True, path)
    assert config.system.gin_mode == "release"
    assert config.system.mode == "debug"
    assert config.db.port == 5432
    assert config.redis.db == 2
    assert config.ai.enable is True
    assert config.ai.chat_anywhere.model == "gpt-4o"
    assert config.ai.chat_anywhere.secret_key == "secret"
    assert config.ai.backend_ai.model == "deepseek-v3"


def test_read_conf_reports_when_not_quiet(tmp_path, capsys):
    path = tmp_path / "config.yaml"
    path.write_text(YAML_TEXT, encoding="utf-8")
    read_conf(False, path)
    assert "configuration of:" in capsys.readouterr().out


def test_read_conf_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_conf(True, tmp_path / "absent.yaml")


def test_read_conf_invalid_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("system: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError):
        read_conf(True, path)


def test_empty_document_gives_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("", encoding="utf-8")
    assert read_conf(True, path) == Config()


def test_wrong_type_for_int_field():
    with pytest.raises(ConfigError):
        Config.from_dict({"db": {"port": "not a number"}})


def test_section_must_be_mapping():
    with pytest.raises(ConfigError):
        Config.from_dict({"redis": ["a", "b"]})


def test_scalar_becomes_string():
    config = Config.from_dict({"system": {"port": 8080}})
    assert config.system.port == str(8080)


def test_addr_defaults_to_localhost():
    assert SystemConfig(port="9000").addr() == "localhost:9000"


def test_addr_uses_ip():
    assert SystemConfig(ip="127.0.0.1", port="80").addr() == "127.0.0.1:80"


def test_mysql_dsn():
    password = "password"
    db = DBConfig(user="user", password=password, host="localhost", port=3306,
                  dbname="dialog", source="mysql")
    assert db.dsn() == (
        "user:password@tcp(localhost:3306)/dialog"
        "?charset=utf8mb4&parseTime=true&loc=Local"
    )


def test_pgsql_dsn():
    password = "password"
    db = DBConfig(user="user", password=password, host="localhost", port=5432,
                  dbname="dialog", source="pgsql")
    assert db.dsn() == (
        "user=user password=password host=localhost port=5432 "
        "dbname=dialog sslmode=disable"
    )


def test_dsn_without_db_targets_maintenance_database():
    db = DBConfig(host="localhost", port=5432, dbname="dialog", source="pgsql")
    result = db.dsn_without_db()
    assert "dbname=postgres" in result
    assert "dbname=dialog" not in result


def test_unsupported_source():
    assert DBConfig(source="oracle").dsn() == "unsupported db source"


def test_to_dict_round_trip():
    config = Config(
        system=SystemConfig(mode="debug", gin_mode="release"),
        ai=AiConfig(chat_anywhere=ChatAnywhereConfig(model="gpt-4o", secret_key="secret")),
    )
    data = config.to_dict()
    assert data["system"]["ginMode"] == "release"
    assert data["ai"]["chatAnywhere"]["secretKey"] == "secret"
    assert Config.from_dict(data) == config


def test_set_conf_round_trip(tmp_path):
    config = Config(system=SystemConfig(mode="debug", port="8080"))
    path = tmp_path / "settings.yaml"
    assert set_conf(config, path) is True
    assert read_conf(True, path) == config


def test_set_conf_failure_returns_false(tmp_path):
    assert set_conf(Config(), tmp_path / "missing" / "settings.yaml") is False