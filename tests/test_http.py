"""S3 REST surface and internal endpoint tests."""

from fastapi.testclient import TestClient


def test_liveness_returns_alive(client: TestClient) -> None:
    response = client.get("/_s3local/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "alive"}


def test_readiness_reports_attached_dispatch(client: TestClient) -> None:
    response = client.get("/_s3local/health/ready")
    data = response.json()

    assert response.status_code == 200
    assert data["status"] == "ready"
    assert data["dispatch"] == "attached"
    assert data["subscriptions"] == 0


def test_bucket_and_object_lifecycle(client: TestClient) -> None:
    assert client.put("/local-bucket").status_code == 200
    assert "<Name>local-bucket</Name>" in client.get("/").text

    put = client.put("/local-bucket/incoming/img.txt", content=b"hello")
    assert put.status_code == 200
    assert put.headers["etag"] == '"5d41402abc4b2a76b9719d911017c592"'

    get = client.get("/local-bucket/incoming/img.txt")
    assert get.status_code == 200
    assert get.content == b"hello"
    assert get.headers["content-type"].startswith("text/plain")

    listing = client.get("/local-bucket", params={"prefix": "incoming/"})
    assert "<Key>incoming/img.txt</Key>" in listing.text
    assert "<KeyCount>1</KeyCount>" in listing.text

    not_empty = client.delete("/local-bucket")
    assert not_empty.status_code == 409
    assert "<Code>BucketNotEmpty</Code>" in not_empty.text

    assert client.delete("/local-bucket/incoming/img.txt").status_code == 204
    assert client.delete("/local-bucket").status_code == 204


def test_s3_error_documents(client: TestClient) -> None:
    missing_bucket = client.get("/no-such-bucket")
    assert missing_bucket.status_code == 404
    assert "<Code>NoSuchBucket</Code>" in missing_bucket.text

    client.put("/local-bucket")
    missing_key = client.get("/local-bucket/nope.txt")
    assert missing_key.status_code == 404
    assert "<Code>NoSuchKey</Code>" in missing_key.text

    invalid = client.put("/Invalid_Bucket")
    assert invalid.status_code == 400
    assert "<Code>InvalidBucketName</Code>" in invalid.text


def test_delete_missing_bucket_is_404(client: TestClient) -> None:
    response = client.delete("/no-such-bucket")
    assert response.status_code == 404


def test_colliding_key_is_409(client: TestClient) -> None:
    client.put("/local-bucket")
    assert client.put("/local-bucket/a", content=b"file").status_code == 200

    conflict = client.put("/local-bucket/a/b", content=b"nested")

    assert conflict.status_code == 409
    assert "<Code>KeyConflict</Code>" in conflict.text
