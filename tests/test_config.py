import pytest
from typer.testing import CliRunner

from courier.config import AppConfig, load_config
from courier.errors import ConfigError
from courier.main import app

CONFIG_YAML = """
discord:
  token: abc
  channel_id: 1234567890
  error_channel_id: 1234567890
rate_limit:
  channel_capacity: 2
  channel_refill_rate: 2
retry:
  max_retries: 5
  retryable_http_codes: [503, 500, 503]
logging:
  level: DEBUG
  rich: false
"""


def test_load_config_applies_defaults_and_coercions(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")

    config = load_config(path)

    assert config.discord.channel_id == "1234567890"
    # An error channel equal to the primary channel adds nothing.
    assert config.discord.error_channel_id is None
    assert config.rate_limit.global_capacity == 50
    assert config.rate_limit.channel_capacity == 2
    assert config.interaction.ack_deadline_ms == 3000

    policy = config.retry.to_policy()
    assert policy.max_retries == 5
    assert policy.base_delay_ms == 1000
    assert policy.retryable_http_codes == frozenset({500, 503})


def test_load_config_missing_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_load_config_rejects_invalid_values(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("discord: {channel_id: '1'}\nretry: {retryable_http_codes: [42]}\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)

    path.write_text("discord: {channel_id: '1'}\nunknown_section: {}\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_default_retry_policy_matches_defaults() -> None:
    config = AppConfig.model_validate({"discord": {"channel_id": "1"}})
    policy = config.retry.to_policy()
    assert policy.max_retries == 3
    assert policy.base_delay_ms == 1000
    assert policy.retryable_http_codes == frozenset({429, 500, 502, 503, 504})


def test_check_config_command_prints_limits(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")

    result = CliRunner().invoke(app, ["check-config", "--config", str(path)])

    assert result.exit_code == 0
    assert "channel bucket: capacity=2 refill=2.0/s" in result.output
    assert "interaction ack deadline: 3000ms" in result.output


def test_load_config_rejects_unknown_alert_level(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("discord: {channel_id: '1'}\nlogging: {alert_level: WARNING}\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)

    path.write_text("discord: {channel_id: '1'}\nlogging: {alert_level: WARN}\n", encoding="utf-8")
    assert load_config(path).logging.alert_level == "WARN"
