import json

import pytest

from storecore.config import load_env, validate_currency


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in ("AIRTABLE_API_KEY", "AIRTABLE_BASE_ID", "APP_ENV", "CURRENCY", "CATALOG_REQUEST_DELAY"):
        monkeypatch.delenv(key, raising=False)
    cfg = load_env(tmp_path / "missing.json")
    assert cfg.currency == "USD"
    assert cfg.catalog_request_delay == 2.0
    assert cfg.catalog_cache_ttl == 1800
    assert cfg.mirror_max_attempts == 3
    assert cfg.session_lifetime_days == 7
    assert not cfg.airtable_enabled
    assert not cfg.is_production
    assert cfg.bank_info["bankName"]


def test_settings_file_beats_env_for_plain_keys(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    settings = tmp_path / "settings.json"
    settings.write_text(
        json.dumps({"AIRTABLE_BASE_ID": "appFromFile", "AIRTABLE_API_KEY": "ignored", "BANK_INFO": {"bankName": "Other"}}),
        encoding="utf-8",
    )
    monkeypatch.setenv("AIRTABLE_BASE_ID", "appFromEnv")
    monkeypatch.setenv("AIRTABLE_API_KEY", "keyFromEnv")
    monkeypatch.setenv("CATALOG_REQUEST_DELAY", "-3")
    cfg = load_env(settings)
    assert cfg.airtable_base_id == "appFromFile"
    assert cfg.airtable_api_key == "keyFromEnv"
    assert cfg.catalog_request_delay == 2.0
    assert cfg.bank_info["bankName"] == "Other"
    assert cfg.bank_info["routingNumber"]
    assert cfg.airtable_enabled


def test_validate_currency():
    assert validate_currency(" usd ") == "USD"
    with pytest.raises(ValueError):
        validate_currency("dollars")
