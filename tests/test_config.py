from pathlib import Path

import pytest

from giveaway_daemon.config import ConfigError, load_config


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_minimal_config_uses_defaults(tmp_path):
    config = load_config(write_config(tmp_path, "token: abc\napplication_id: 42\n"))

    assert config.token == "abc"
    assert config.application_id == 42
    assert config.data_dir == Path("data")
    assert config.logging.level == "INFO"
    assert config.giveaways.channel_id is None
    assert config.giveaways.join_emoji == "🎉"
    assert config.giveaways.winning_cooldown_days == 30
    assert config.giveaways.daemon_interval_seconds == 5
    assert config.permissions.admin_roles == []


def test_full_config(tmp_path, monkeypatch):
    monkeypatch.setenv("GIVEAWAY_TOKEN", "from-env")
    path = write_config(
        tmp_path,
        """
token: ${GIVEAWAY_TOKEN}
application_id: "77"
data_dir: /var/lib/giveaways
logging:
  level: DEBUG
giveaways:
  channel_id: "555"
  join_emoji: "🎁"
  winning_cooldown_days: 14
  retention_days: 3
  daemon_interval_seconds: 10
permissions:
  admin_roles: [1, "2"]
  development_guild_id: 99
""",
    )

    config = load_config(path)

    assert config.token == "from-env"
    assert config.application_id == 77
    assert config.data_dir == Path("/var/lib/giveaways")
    assert config.giveaways.channel_id == 555
    assert config.giveaways.join_emoji == "🎁"
    assert config.giveaways.winning_cooldown_days == 14
    assert config.giveaways.retention_days == 3
    assert config.giveaways.daemon_interval_seconds == 10
    assert config.permissions.admin_roles == [1, 2]
    assert config.permissions.development_guild_id == 99


@pytest.mark.parametrize(
    "text, message",
    [
        ("application_id: 1\n", "token"),
        ("token: abc\n", "application_id"),
        ("token: ${MISSING_GIVEAWAY_TOKEN}\napplication_id: 1\n", "MISSING_GIVEAWAY_TOKEN"),
        ("token: abc\napplication_id: 1\ngiveaways:\n  winning_cooldown_days: -1\n", "winning_cooldown_days"),
        ("token: abc\napplication_id: 1\ngiveaways:\n  daemon_interval_seconds: 0\n", "daemon_interval_seconds"),
        ("token: abc\napplication_id: 1\ngiveaways:\n  channel_id: general\n", "channel_id"),
        ("token: abc\napplication_id: 1\npermissions:\n  admin_roles: admins\n", "admin_roles"),
        ("- just\n- a list\n", "mapping"),
    ],
)
def test_invalid_config(tmp_path, monkeypatch, text, message):
    monkeypatch.delenv("MISSING_GIVEAWAY_TOKEN", raising=False)

    with pytest.raises(ConfigError, match=message):
        load_config(write_config(tmp_path, text))


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.yaml")
