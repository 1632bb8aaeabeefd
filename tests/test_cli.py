"""Command line entry point tests."""

import textwrap
from pathlib import Path

import pytest

from s3local.__main__ import build_parser, main, resolve_settings

SERVICE = textwrap.dedent(
    """
    service: cli
    provider:
      runtime: python3.12
    custom:
      s3:
        port: 8000
    resources:
      Resources:
        Uploads:
          Type: AWS::S3::Bucket
          Properties:
            BucketName: uploads-bucket
    """
)


@pytest.fixture
def service_file(tmp_path: Path) -> Path:
    path = tmp_path / "serverless.yml"
    path.write_text(SERVICE)
    return path


def test_resolve_settings_layers_service_and_flags(service_file: Path) -> None:
    args = build_parser().parse_args(["--config", str(service_file), "start", "--host", "0.0.0.0"])
    settings = resolve_settings(args)

    assert settings.port == 8000
    assert settings.host == "0.0.0.0"
    assert settings.service_file == service_file

    args = build_parser().parse_args(["--config", str(service_file), "start", "--port", "9999"])
    assert resolve_settings(args).port == 9999


def test_create_and_remove_buckets(service_file: Path, tmp_path: Path) -> None:
    directory = tmp_path / "data"
    common = ["--config", str(service_file), "--directory", str(directory), "--silent"]

    assert main([*common, "create", "--buckets", "extra-bucket"]) == 0
    assert sorted(p.name for p in directory.iterdir()) == ["extra-bucket", "uploads-bucket"]

    assert main([*common, "remove"]) == 0
    assert main([*common, "remove"]) == 0
    assert [p.name for p in directory.iterdir()] == ["extra-bucket"]


def test_invalid_service_file_fails(tmp_path: Path) -> None:
    bad = tmp_path / "serverless.yml"
    bad.write_text("- not a mapping\n")

    assert main(["--config", str(bad), "--directory", str(tmp_path / "data"), "create"]) == 1


def test_invalid_option_value_fails(tmp_path: Path) -> None:
    path = tmp_path / "serverless.yml"
    path.write_text("custom:\n  s3:\n    port: abc\n")

    assert main(["--config", str(path), "--directory", str(tmp_path / "data"), "--silent", "create"]) == 1
