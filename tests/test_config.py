"""Tests for TopupConfig: builders and environment loading."""

import os

import pytest

from topup import TopupConfig, configure_logging

ENV_VARS = (
    "TOPUP_API_BASE_URL",
    "TOPUP_AUTH_URL",
    "TOPUP_ANON_KEY",
    "TOPUP_READ_TIMEOUT",
    "TOPUP_WRITE_TIMEOUT",
    "TOPUP_PAYMENT_TIMEOUT",
    "TOPUP_UPLOAD_TIMEOUT",
    "TOPUP_AUTH_TIMEOUT",
    "TOPUP_CURRENCY",
    "TOPUP_RETURN_URL",
    "TOPUP_CANCEL_URL",
    "TOPUP_REDIRECT_DB_URL",
    "TOPUP_LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keep a developer's .env out of the picture
    monkeypatch.chdir(tmp_path)
    yield monkeypatch
    # load_dotenv writes straight into os.environ
    for name in ENV_VARS:
        os.environ.pop(name, None)


def test_builders_return_new_configs():
    base = TopupConfig()
    tuned = base.with_api_base_url("https://shop.example.com/server/").with_timeouts(payment=45)

    assert tuned.api_base_url == "https://shop.example.com/server"
    assert tuned.timeouts.payment == 45
    assert tuned.timeouts.read == base.timeouts.read
    assert base.api_base_url != tuned.api_base_url


def test_currency_normalised():
    assert TopupConfig().with_currency("twd").currency == "TWD"


def test_from_env_defaults(clean_env):
    config = TopupConfig.from_env()

    assert config == TopupConfig()


def test_from_env_reads_variables(clean_env):
    clean_env.setenv("TOPUP_API_BASE_URL", "https://api.example.com/server/")
    clean_env.setenv("TOPUP_ANON_KEY", "anon")
    clean_env.setenv("TOPUP_PAYMENT_TIMEOUT", "45")
    clean_env.setenv("TOPUP_AUTH_TIMEOUT", "2.5")
    clean_env.setenv("TOPUP_CURRENCY", "twd")
    clean_env.setenv("TOPUP_LOG_LEVEL", "debug")

    config = TopupConfig.from_env()

    assert config.api_base_url == "https://api.example.com/server"
    assert config.anon_key == "anon"
    assert config.timeouts.payment == 45
    assert config.timeouts.auth == 2.5
    assert config.timeouts.read == 15
    assert config.currency == "TWD"
    assert config.log_level == "DEBUG"


def test_from_dotenv_file(clean_env, tmp_path):
    env_file = tmp_path / "shop.env"
    env_file.write_text("TOPUP_ANON_KEY=from-file\nTOPUP_READ_TIMEOUT=3\n")

    config = TopupConfig.from_env(str(env_file))

    assert config.anon_key == "from-file"
    assert config.timeouts.read == 3


def test_bad_timeout_rejected(clean_env):
    clean_env.setenv("TOPUP_READ_TIMEOUT", "soon")

    with pytest.raises(ValueError, match="TOPUP_READ_TIMEOUT"):
        TopupConfig.from_env()


def test_configure_logging_accepts_level_names():
    configure_logging("debug")
    configure_logging("not-a-level")
