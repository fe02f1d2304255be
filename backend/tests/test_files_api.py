import os
from datetime import timedelta
from urllib.parse import urlparse

import pytest

from filevault.services import clock


def _upload(client, headers, name="report.pdf", data=b"hello vault"):
    return client.post(
        "/api/files/upload",
        files={"file": (name, data, "application/octet-stream")},
        headers=headers,
    )


def _share(client, headers, file_id):
    return client.post(f"/api/files/share/{file_id}", headers=headers)


@pytest.fixture
def uploaded(client, alice):
    data = os.urandom(50_000)
    response = _upload(client, alice, "photo.jpg", data)
    assert response.status_code == 201, response.text
    return response.json(), data


def test_upload_returns_full_record(client, alice, storage_dir):
    response = _upload(client, alice, "report.pdf", b"x" * 1000)

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["originalName"] == "report.pdf"
    assert body["ownerId"] == "user-a"
    assert body["sizeBytes"] == 1000
    assert len(body["encryptionKey"]) == 64
    assert len(body["iv"]) == 32
    assert body["shareToken"] is None
    assert "storageLocation" not in body
    assert len(os.listdir(storage_dir)) == 1


def test_upload_requires_identity(client, storage_dir):
    response = _upload(client, {})

    assert response.status_code == 401
    assert response.json() == {"detail": "No valid token, authorization denied", "reason": "unauthenticated"}
    assert os.listdir(storage_dir) == []


def test_invalid_token_is_rejected(client):
    response = client.get("/api/files", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401
    assert response.json()["reason"] == "unauthenticated"


def test_upload_without_file_is_validation_error(client, alice):
    response = client.post("/api/files/upload", headers=alice)

    assert response.status_code == 422
    assert response.json()["reason"] == "validation_error"


def test_upload_storage_failure_is_reported(client, alice, storage_dir, monkeypatch):
    from filevault.services.file_storage import file_storage

    async def failing_publish(partial_path, final_path):
        raise OSError("disk full")

    monkeypatch.setattr(file_storage, "publish", failing_publish)

    response = _upload(client, alice)

    assert response.status_code == 500
    assert response.json() == {"detail": "Could not store encrypted file", "reason": "storage_error"}
    assert os.listdir(storage_dir) == []
    assert client.get("/api/files", headers=alice).json() == []


def test_list_is_scoped_to_owner_and_hides_keys(client, alice, bob, uploaded):
    record, _ = uploaded
    _upload(client, bob, "bobs.txt")

    response = client.get("/api/files", headers=alice)

    assert response.status_code == 200
    files = response.json()
    assert [f["id"] for f in files] == [record["id"]]
    assert "encryptionKey" not in files[0]
    assert "iv" not in files[0]
    assert files[0]["sizeBytes"] == 50_000


def test_list_requires_identity(client):
    assert client.get("/api/files").status_code == 401


def test_owner_download_round_trip(client, alice, uploaded):
    record, data = uploaded

    response = client.get(f"/api/files/download/{record['id']}", headers=alice)

    assert response.status_code == 200
    assert response.content == data
    assert response.headers["content-type"] == "application/octet-stream"
    assert 'filename="photo.jpg"' in response.headers["content-disposition"]


def test_download_non_ascii_name(client, alice):
    record = _upload(client, alice, "résumé.txt", b"bonjour").json()

    response = client.get(f"/api/files/download/{record['id']}", headers=alice)

    assert response.status_code == 200
    assert response.content == b"bonjour"
    assert "filename*=UTF-8''r%C3%A9sum%C3%A9.txt" in response.headers["content-disposition"]


def test_empty_file_round_trip(client, alice):
    record = _upload(client, alice, "empty.txt", b"").json()
    assert record["sizeBytes"] == 0

    response = client.get(f"/api/files/download/{record['id']}", headers=alice)

    assert response.status_code == 200
    assert response.content == b""


def test_non_owner_download_is_unauthorized(client, bob, uploaded):
    record, _ = uploaded

    response = client.get(f"/api/files/download/{record['id']}", headers=bob)

    assert response.status_code == 403
    assert response.json()["reason"] == "unauthorized"


def test_download_unknown_id_is_not_found(client, alice):
    response = client.get("/api/files/download/00000000-0000-0000-0000-000000000000", headers=alice)

    assert response.status_code == 404
    assert response.json()["reason"] == "file_not_found"


def test_download_with_missing_ciphertext(client, alice, uploaded, storage_dir):
    record, _ = uploaded
    for name in os.listdir(storage_dir):
        os.remove(storage_dir / name)

    response = client.get(f"/api/files/download/{record['id']}", headers=alice)

    assert response.status_code == 404
    assert response.json()["reason"] == "ciphertext_missing"
    assert str(storage_dir) not in response.text


def test_share_link_download_without_auth(client, alice, uploaded):
    record, data = uploaded

    response = _share(client, alice, record["id"])

    assert response.status_code == 200
    body = response.json()
    token = body["shareToken"]
    assert len(token) == 64 and all(c in "0123456789abcdef" for c in token)
    assert token != record["id"].replace("-", "")
    assert body["shareUrl"] == f"http://testserver/api/files/download/shared/{token}"

    download = client.get(urlparse(body["shareUrl"]).path)
    assert download.status_code == 200
    assert download.content == data


def test_share_requires_owner(client, alice, bob, uploaded):
    record, _ = uploaded

    assert _share(client, {}, record["id"]).status_code == 401
    assert _share(client, bob, record["id"]).status_code == 403
    assert _share(client, alice, "00000000-0000-0000-0000-000000000000").status_code == 404


def test_reissue_invalidates_previous_token(client, alice, uploaded):
    record, data = uploaded
    first = _share(client, alice, record["id"]).json()["shareToken"]
    second = _share(client, alice, record["id"]).json()["shareToken"]

    assert first != second
    old = client.get(f"/api/files/download/shared/{first}")
    assert old.status_code == 404
    assert old.json() == {"detail": "File not found or invalid link", "reason": "file_not_found"}
    assert client.get(f"/api/files/download/shared/{second}").content == data


def test_share_link_expires_after_24_hours(client, alice, uploaded, monkeypatch):
    record, data = uploaded
    token = _share(client, alice, record["id"]).json()["shareToken"]
    issued_at = clock.now()

    monkeypatch.setattr(clock, "now", lambda: issued_at + timedelta(hours=23, minutes=59))
    assert client.get(f"/api/files/download/shared/{token}").content == data

    monkeypatch.setattr(clock, "now", lambda: issued_at + timedelta(hours=24, minutes=1))
    expired = client.get(f"/api/files/download/shared/{token}")
    assert expired.status_code == 410
    assert expired.json() == {"detail": "Link has expired", "reason": "expired"}

    # Record and ciphertext are still there for the owner
    assert client.get(f"/api/files/download/{record['id']}", headers=alice).content == data


def test_revoke_share_link(client, alice, bob, uploaded):
    record, _ = uploaded
    token = _share(client, alice, record["id"]).json()["shareToken"]

    assert client.delete(f"/api/files/share/{record['id']}", headers=bob).status_code == 403
    response = client.delete(f"/api/files/share/{record['id']}", headers=alice)

    assert response.status_code == 200
    assert response.json()["shareToken"] is None
    assert response.json()["shareExpiresAt"] is None
    assert client.get(f"/api/files/download/shared/{token}").status_code == 404
    # Revoking again is harmless
    assert client.delete(f"/api/files/share/{record['id']}", headers=alice).status_code == 200


def test_unknown_share_token(client):
    response = client.get(f"/api/files/download/shared/{'ab' * 32}")

    assert response.status_code == 404
    assert response.json()["reason"] == "file_not_found"


def test_delete_removes_record_and_ciphertext(client, alice, uploaded, storage_dir):
    record, _ = uploaded
    token = _share(client, alice, record["id"]).json()["shareToken"]

    response = client.delete(f"/api/files/{record['id']}", headers=alice)

    assert response.status_code == 200
    assert response.json()["deleted"] is True
    assert response.json()["id"] == record["id"]
    assert os.listdir(storage_dir) == []
    assert client.get("/api/files", headers=alice).json() == []
    assert client.get(f"/api/files/download/{record['id']}", headers=alice).status_code == 404
    assert client.get(f"/api/files/download/shared/{token}").status_code == 404
    assert client.delete(f"/api/files/{record['id']}", headers=alice).status_code == 404


def test_delete_by_non_owner_is_unauthorized(client, alice, bob, uploaded, storage_dir):
    record, _ = uploaded

    assert client.delete(f"/api/files/{record['id']}", headers=bob).status_code == 403
    assert client.delete(f"/api/files/{record['id']}").status_code == 401
    assert len(os.listdir(storage_dir)) == 1
    assert len(client.get("/api/files", headers=alice).json()) == 1


def test_malformed_file_id(client, alice):
    response = client.get("/api/files/download/not-a-uuid", headers=alice)

    assert response.status_code == 422
    assert response.json()["reason"] == "validation_error"


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok", "database": "connected"}


def test_ten_megabyte_scenario(client, alice, bob, monkeypatch):
    data = os.urandom(10 * 1024 * 1024)

    uploaded = _upload(client, alice, "report.pdf", data)
    assert uploaded.status_code == 201
    record = uploaded.json()
    assert record["id"]
    assert record["sizeBytes"] == 10_485_760

    listing = client.get("/api/files", headers=alice).json()
    assert [f["id"] for f in listing] == [record["id"]]
    assert "encryptionKey" not in listing[0] and "iv" not in listing[0]

    assert client.get(f"/api/files/download/{record['id']}", headers=bob).status_code == 403

    share = _share(client, alice, record["id"]).json()
    assert len(share["shareToken"]) == 64
    assert share["shareToken"] in share["shareUrl"]
    path = urlparse(share["shareUrl"]).path

    assert client.get(path).content == data

    later = clock.now() + timedelta(hours=24, seconds=1)
    monkeypatch.setattr(clock, "now", lambda: later)
    assert client.get(path).status_code == 410
