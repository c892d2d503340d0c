from __future__ import annotations

import importlib


def _reload_config(monkeypatch, env: dict[str, str] | None = None):
    env = env or {}
    for key in [
        "ENV",
        "LOG_LEVEL",
        "TRADELAB_DATA_DIR",
        "TRADELAB_INITIAL_CASH",
        "TRADELAB_SYMBOLS",
        "TRADELAB_BATCH_PRETTY",
        "TRADELAB_BATCH_INDENT",
    ]:
        monkeypatch.delenv(key, raising=False)
    for key, value in env.items():
        monkeypatch.setenv(key, value)

    import tradelab.utils.env as env_module

    importlib.reload(env_module)
    import tradelab.config as config_module

    importlib.reload(config_module)
    return config_module


def test_settings_defaults_are_deterministic(monkeypatch):
    config_module = _reload_config(monkeypatch)
    settings = config_module.settings

    assert settings.environment == "local"
    assert settings.log_level == "INFO"
    assert settings.data_dir == "data"
    assert settings.default_initial_cash == 10_000.0
    assert settings.default_symbols == ["BTCUSDT", "ETHUSDT"]
    assert settings.batch_pretty is True
    assert settings.batch_indent == 2


def test_settings_respect_env_overrides(monkeypatch):
    config_module = _reload_config(
        monkeypatch,
        env={
            "ENV": "prod",
            "TRADELAB_DATA_DIR": "/srv/bars",
            "TRADELAB_INITIAL_CASH": "2500.5",
            "TRADELAB_SYMBOLS": " AAPL , MSFT,, ",
            "TRADELAB_BATCH_PRETTY": "no",
            "TRADELAB_BATCH_INDENT": "not-a-number",
        },
    )

    settings = config_module.settings
    from tradelab import __version__

    assert settings.VERSION == __version__
    assert settings.environment == "prod"
    assert settings.data_dir == "/srv/bars"
    assert settings.default_initial_cash == 2500.5
    assert settings.default_symbols == ["AAPL", "MSFT"]
    assert settings.batch_pretty is False
    assert settings.batch_indent == 2


def test_restore_config(monkeypatch):
    # leave module-level settings built from a clean environment for later tests
    _reload_config(monkeypatch)
