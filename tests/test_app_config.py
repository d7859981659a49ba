import pytest

from txmonitor.infrastructure.config.app_config import AppConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    import os

    for key in list(os.environ):
        if key.startswith("TXMON__"):
            monkeypatch.delenv(key)


def write_settings(tmp_path, text):
    path = tmp_path / "settings.toml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_defaults_without_file(tmp_path):
    cfg = AppConfig.load(str(tmp_path / "missing.toml"))

    assert cfg.monitor.poll_interval_seconds == 1.0
    assert cfg.monitor.poll_ceiling_seconds == 1800
    assert cfg.storage.key == "transactions"
    assert cfg.loaded_files == []


def test_file_values_and_env_overrides(tmp_path, monkeypatch):
    path = write_settings(
        tmp_path,
        """
[chain]
network_id = "5"
rpc_url = "https://rpc.example"

[monitor]
safe_confirmations = 6
poll_interval_seconds = 2.0
""",
    )
    monkeypatch.setenv("TXMON__MONITOR__SAFE_CONFIRMATIONS", "3")
    monkeypatch.setenv("TXMON__CHAIN__NETWORK_ID", "0x01")

    cfg = AppConfig.load(path)

    assert cfg.chain.rpc_url == "https://rpc.example"
    assert cfg.chain.network_id == "0x01"
    assert cfg.monitor.safe_confirmations == 3
    assert cfg.monitor.poll_interval_seconds == 2.0
    assert cfg.loaded_files == ["settings.toml"]
    assert {o.key for o in cfg.overrides} == {"monitor.safe_confirmations", "chain.network_id"}


@pytest.mark.parametrize(
    "section",
    [
        "[monitor]\npoll_interval_seconds = 0\n",
        "[monitor]\npoll_interval_seconds = 5\npoll_ceiling_seconds = 1\n",
        "[monitor]\nsafe_confirmations = -1\n",
        "[monitor]\nsafe_confirmations = true\n",
        "[storage]\nkey = \"  \"\n",
    ],
)
def test_invalid_values_are_rejected(tmp_path, section):
    with pytest.raises(ValueError):
        AppConfig.load(write_settings(tmp_path, section))
