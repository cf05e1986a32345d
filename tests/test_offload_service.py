from __future__ import annotations

import logging

import pytest
from botocore.exceptions import ClientError

from urlfixer.domain.tenants import Tenant
from urlfixer.services import offload_service
from urlfixer.services.offload_service import MediaOffloader
from urlfixer.services.rewriter import Rewriter

TENANT = Tenant(tenant_id=3, network_id=1, domain="blog-dev.localhost:81")


class FakeS3:
    """In-memory versioned bucket with the handful of calls the offloader makes."""

    page_size = 2

    def __init__(self):
        self.versions: list[dict] = []
        self.markers: list[dict] = []
        self.puts: list[dict] = []
        self.deletes: list[dict] = []
        self.list_calls: list[dict] = []
        self._next_version = 0

    def _entry(self, key: str) -> dict:
        self._next_version += 1
        return {"Key": key, "VersionId": f"v{self._next_version:03d}"}

    def add(self, key: str) -> None:
        self.versions.append(self._entry(key))

    def add_marker(self, key: str) -> None:
        self.markers.append(self._entry(key))

    def put_object(self, Bucket, Key, Body, ContentLength, ACL):
        self.puts.append({"Bucket": Bucket, "Key": Key, "Body": Body.read(), "ContentLength": ContentLength, "ACL": ACL})
        self.add(Key)
        return {}

    def list_object_versions(self, Bucket, Prefix, KeyMarker=None, VersionIdMarker=None):
        self.list_calls.append({"Prefix": Prefix, "KeyMarker": KeyMarker, "VersionIdMarker": VersionIdMarker})
        tagged = [("Versions", v) for v in self.versions] + [("DeleteMarkers", m) for m in self.markers]
        matching = sorted(
            (t for t in tagged if t[1]["Key"].startswith(Prefix)),
            key=lambda t: (t[1]["Key"], t[1]["VersionId"]),
        )
        start = 0
        if KeyMarker is not None:
            start = 1 + next(
                i for i, (_, v) in enumerate(matching) if (v["Key"], v["VersionId"]) == (KeyMarker, VersionIdMarker)
            )
        page = matching[start:start + self.page_size]
        truncated = start + self.page_size < len(matching)
        response = {
            "Versions": [dict(v) for kind, v in page if kind == "Versions"],
            "DeleteMarkers": [dict(v) for kind, v in page if kind == "DeleteMarkers"],
            "IsTruncated": truncated,
        }
        if truncated:
            response["NextKeyMarker"] = page[-1][1]["Key"]
            response["NextVersionIdMarker"] = page[-1][1]["VersionId"]
        return response

    def delete_objects(self, Bucket, Delete):
        self.deletes.append(Delete)
        doomed = {(o["Key"], o["VersionId"]) for o in Delete["Objects"]}
        self.versions = [v for v in self.versions if (v["Key"], v["VersionId"]) not in doomed]
        self.markers = [m for m in self.markers if (m["Key"], m["VersionId"]) not in doomed]
        return {}


class FailingS3(FakeS3):
    def list_object_versions(self, **kwargs):
        raise ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, "ListObjectVersions")


@pytest.fixture()
def uploads(tmp_path):
    root = tmp_path / "uploads"
    (root / "2024" / "11").mkdir(parents=True)
    return root


@pytest.fixture()
def store_settings(make_settings, uploads):
    return make_settings(
        {
            "APP_ENV": "development",
            "HOME_URL": "http://localhost",
            "PROXY_PORT": "81",
            "MULTISITE": "1",
            "STORE_URL": "https://store.example.com",
            "STORE_BUCKET": "assets",
            "STORE_KEY": "key",
            "STORE_SECRET": "secret",
            "UPLOADS_DIR": str(uploads),
            "UPLOAD_WAIT_RETRIES": "3",
            "UPLOAD_WAIT_INTERVAL": "0",
        }
    )


@pytest.fixture()
def s3():
    return FakeS3()


@pytest.fixture()
def offloader(store_settings, s3):
    return MediaOffloader(store_settings, client=s3)


def _write(path, data=b"data"):
    path.write_bytes(data)
    return path


def test_upload_uses_tenant_prefix_and_public_read(offloader, s3, uploads):
    local = _write(uploads / "2024" / "11" / "a.jpg", b"jpeg-bytes")
    result = offloader.upload(str(local), TENANT)
    assert result.url == "https://store.example.com/assets/uploads/sites/3/2024/11/a.jpg"
    assert result.size == len(b"jpeg-bytes")
    assert s3.puts == [
        {
            "Bucket": "assets",
            "Key": "uploads/sites/3/2024/11/a.jpg",
            "Body": b"jpeg-bytes",
            "ContentLength": len(b"jpeg-bytes"),
            "ACL": "public-read",
        }
    ]


def test_handle_upload_replaces_url(offloader, uploads):
    local = _write(uploads / "2024" / "11" / "a.jpg")
    upload = {"file": str(local), "url": "http://localhost:81/app/uploads/sites/3/2024/11/a.jpg", "type": "image/jpeg"}
    result = offloader.handle_upload(upload, Tenant())
    assert result["url"] == "https://store.example.com/assets/uploads/2024/11/a.jpg"
    assert result["type"] == "image/jpeg"


def test_missing_credentials_skip_everything_and_warn_once(make_settings, s3, caplog):
    offloader = MediaOffloader(make_settings({"STORE_URL": "https://store.example.com"}), client=s3)
    upload = {"file": "/tmp/a.jpg", "url": "http://localhost/app/uploads/a.jpg"}
    with caplog.at_level(logging.WARNING, logger="urlfixer"):
        assert offloader.handle_upload(dict(upload), TENANT) == upload
        assert offloader.offload_metadata({"file": "a.jpg", "sizes": {}}, TENANT) == {"file": "a.jpg", "sizes": {}}
        assert offloader.delete(TENANT, {"file": "a.jpg"}) == 0
    assert s3.puts == [] and s3.deletes == []
    assert caplog.text.count("credentials missing") == 1


def test_upload_times_out_when_file_never_appears(offloader, s3, uploads, monkeypatch):
    sleeps = []
    monkeypatch.setattr(offload_service.time, "sleep", sleeps.append)
    assert offloader.upload(str(uploads / "2024" / "11" / "ghost.jpg"), TENANT) is None
    assert sleeps == [0.0, 0.0, 0.0]
    assert s3.puts == []


def test_sizes_sharing_a_file_are_uploaded_once(offloader, s3, uploads):
    thumb = _write(uploads / "2024" / "11" / "a-150x150.jpg")
    metadata = {
        "file": "2024/11/a.jpg",
        "sizes": {
            "thumbnail": {"file": "a-150x150.jpg"},
            "square": {"file": "a-150x150.jpg"},
        },
    }
    result = offloader.offload_metadata(metadata, TENANT)
    expected = "https://store.example.com/assets/uploads/sites/3/2024/11/a-150x150.jpg"
    assert [p["Key"] for p in s3.puts] == ["uploads/sites/3/2024/11/a-150x150.jpg"]
    assert result["sizes"]["thumbnail"]["url"] == expected
    assert result["sizes"]["square"]["url"] == expected
    assert not thumb.exists()


def test_non_create_context_is_left_alone(offloader, s3, uploads):
    _write(uploads / "2024" / "11" / "a-150x150.jpg")
    metadata = {"file": "2024/11/a.jpg", "sizes": {"thumbnail": {"file": "a-150x150.jpg"}}}
    assert offloader.offload_metadata(metadata, TENANT, context="edit") == metadata
    assert s3.puts == []


def test_update_metadata_ignores_unedited_files(offloader, s3):
    metadata = {"file": "2024/11/a.jpg", "sizes": {"thumbnail": {"file": "a-150x150.jpg"}}}
    assert offloader.update_metadata(metadata, TENANT) == metadata
    assert s3.puts == []


def test_update_metadata_reuploads_edited_image_and_sizes(offloader, s3, uploads):
    main = _write(uploads / "2024" / "11" / "a-e1234567890ab.jpg")
    _write(uploads / "2024" / "11" / "a-e1234567890ab-150x150.jpg")
    metadata = {
        "file": "2024/11/a-e1234567890ab.jpg",
        "sizes": {"thumbnail": {"file": "a-e1234567890ab-150x150.jpg"}},
    }
    result = offloader.update_metadata(metadata, TENANT)
    assert result["url"] == "https://store.example.com/assets/uploads/sites/3/2024/11/a-e1234567890ab.jpg"
    assert result["sizes"]["thumbnail"]["url"].endswith("/2024/11/a-e1234567890ab-150x150.jpg")
    assert len(s3.puts) == 2
    assert not main.exists()


def test_delete_purges_every_version_and_delete_marker(offloader, s3):
    for key in (
        "uploads/sites/3/2024/11/a.jpg",
        "uploads/sites/3/2024/11/a.jpg",
        "uploads/sites/3/2024/11/a-e1234567890ab.jpg",
        "uploads/sites/3/2024/11/a-150x150.jpg",
        "uploads/sites/3/2024/11/b.jpg",
    ):
        s3.add(key)
    s3.add_marker("uploads/sites/3/2024/11/a.jpg")
    s3.add_marker("uploads/sites/3/2024/11/a-e1234567890ab.jpg")
    s3.add_marker("uploads/sites/3/2024/11/b.jpg")
    metadata = {"file": "2024/11/a.jpg", "sizes": {"thumbnail": {"file": "a-150x150.jpg"}}}

    assert offloader.delete(TENANT, metadata) == 2
    # six entries under the main prefix span three pages of two
    assert any(call["KeyMarker"] is not None for call in s3.list_calls)
    assert offloader.list_key_versions("uploads/sites/3/2024/11/a") == []
    assert [v["Key"] for v in s3.versions] == ["uploads/sites/3/2024/11/b.jpg"]
    assert [m["Key"] for m in s3.markers] == ["uploads/sites/3/2024/11/b.jpg"]
    assert all(d["Quiet"] is True for d in s3.deletes)


def test_list_key_versions_follows_pagination(offloader, s3):
    for name in ("c.jpg", "c-300x200.jpg", "c-150x150.jpg"):
        s3.add(f"uploads/sites/3/2024/11/{name}")
        s3.add_marker(f"uploads/sites/3/2024/11/{name}")
    found = offloader.list_key_versions("uploads/sites/3/2024/11/c")
    assert len(found) == 6
    assert len({(e["Key"], e["VersionId"]) for e in found}) == 6
    assert len(s3.list_calls) == 3


def test_malformed_store_endpoint_is_logged_not_raised(make_settings, uploads, caplog):
    settings = make_settings(
        {
            "STORE_URL": "store.example.com",
            "STORE_BUCKET": "assets",
            "STORE_KEY": "key",
            "STORE_SECRET": "secret",
            "UPLOADS_DIR": str(uploads),
        }
    )
    offloader = MediaOffloader(settings)
    local = _write(uploads / "2024" / "11" / "a.jpg")
    with caplog.at_level(logging.ERROR, logger="urlfixer"):
        assert offloader.upload(str(local), Tenant()) is None
        assert offloader.delete(Tenant(), {"file": "2024/11/a.jpg"}) == 0
        assert offloader.handle_upload({"file": str(local)}, Tenant()) == {"file": str(local)}
    assert caplog.text.count("Cannot create object store client") == 1
    assert local.exists()


def test_delete_without_metadata_is_a_noop(offloader, s3):
    assert offloader.delete(TENANT, {}) == 0
    assert s3.deletes == []


def test_purge_failure_is_logged_not_raised(store_settings, caplog):
    offloader = MediaOffloader(store_settings, client=FailingS3())
    with caplog.at_level(logging.ERROR, logger="urlfixer"):
        assert offloader.delete(TENANT, {"file": "2024/11/a.jpg"}) == 0
    assert "Failed to purge key versions" in caplog.text


def test_save_edited_image_offloads_and_removes_local_copy(offloader, s3, uploads):
    target = uploads / "2024" / "11" / "a-e1234567890ab.jpg"
    url = offloader.save_edited_image(str(target), TENANT, save=lambda path: _write(target, b"edited"))
    assert url == "https://store.example.com/assets/uploads/sites/3/2024/11/a-e1234567890ab.jpg"
    assert s3.puts[0]["Body"] == b"edited"
    assert not target.exists()


def test_save_edited_image_reports_save_errors(offloader, s3, uploads):
    def broken(path):
        raise OSError("disk full")

    assert offloader.save_edited_image(str(uploads / "x.jpg"), TENANT, save=broken) is None
    assert s3.puts == []


def test_upload_dir_urls_go_through_the_rewriter(offloader, store_settings):
    rewriter = Rewriter(store_settings, TENANT)
    info = {
        "path": "/srv/uploads/sites/3/2024/11",
        "url": "http://localhost:81/app/uploads/sites/3/2024/11",
        "baseurl": "http://localhost:81/app/uploads/sites/3",
        "error": False,
    }
    result = offloader.upload_dir(info, rewriter)
    assert result["url"] == "https://store.example.com/assets/uploads/sites/3/2024/11"
    assert result["baseurl"] == "https://store.example.com/assets/uploads/sites/3"
    assert result["path"] == "/srv/uploads/sites/3/2024/11"
    assert result["error"] is False
