"""Settings precedence tests."""

from pathlib import Path

from s3local.config import Settings


def test_defaults() -> None:
    settings = Settings()
    assert settings.port == 4569
    assert settings.host == "localhost"
    assert settings.endpoint == "http://localhost:4569"


def test_service_options_override_environment(monkeypatch) -> None:
    monkeypatch.setenv("S3LOCAL_PORT", "9000")
    monkeypatch.setenv("S3LOCAL_REGION", "eu-west-1")

    settings = Settings().merged({"port": 8000, "directory": "./custom-buckets", "noStart": True}, {})

    assert settings.port == 8000
    assert settings.directory == Path("./custom-buckets")
    assert settings.no_start is True
    assert settings.region == "eu-west-1"


def test_cli_overrides_win_and_none_is_ignored() -> None:
    settings = Settings().merged(
        {"port": 8000, "address": "0.0.0.0"},
        {"port": 7000, "host": None, "provided_runtime": "python3.12"},
    )

    assert settings.port == 7000
    assert settings.host == "0.0.0.0"
    assert settings.provided_runtime == "python3.12"


def test_unknown_service_options_are_ignored() -> None:
    settings = Settings().merged({"cors": True, "website": "./site"}, {})
    assert settings == Settings()
