"""
Media offload to an S3-compatible object store.

Uploaded files and every generated size are copied to the store under the
tenant's key prefix and their public URLs are pointed at the store. Edits
(files carrying an edit fingerprint) are re-uploaded, and deleting an
attachment purges every object version under the keys derived from it.

Every store call is wrapped: failures are logged and turned into a None/no-op
result so the caller keeps its local file and the request carries on.
"""
from __future__ import annotations

import logging
import os
import posixpath
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from urlfixer.core.config import Settings, get_settings
from urlfixer.core.utils import human_readable_filesize
from urlfixer.domain.media import attachment_key_base, canonical_key_prefix, is_edited_filename
from urlfixer.domain.tenants import Tenant, upload_path_prefix
from urlfixer.services.rewriter import Rewriter
from urlfixer.services.store_client import create_s3_client

logger = logging.getLogger(__name__)

STORE_ERRORS = (BotoCoreError, ClientError, OSError)
# boto3 raises ValueError for a malformed endpoint URL
CLIENT_ERRORS = (BotoCoreError, ValueError)
DELETE_BATCH_LIMIT = 1000


@dataclass(frozen=True)
class UploadResult:
    url: str
    size: int


class MediaOffloader:
    """Uploads, re-uploads and purges tenant media in the object store."""

    def __init__(self, settings: Settings | None = None, client: Any = None) -> None:
        self.settings = settings or get_settings()
        self.bucket = self.settings.store_bucket
        self.store_url = self.settings.store_url
        self._client = client
        self._missing_logged = False
        self._client_failed = False

    # -------------------------------------------------------------- helpers
    @property
    def client(self):
        """Store client, built on first use; None when the endpoint settings are unusable."""
        if self._client is None and not self._client_failed:
            try:
                self._client = create_s3_client(self.settings)
            except CLIENT_ERRORS as exc:
                logger.error("Cannot create object store client for %r: %s", self.store_url, exc)
                self._client_failed = True
        return self._client

    def ensure_credentials(self) -> bool:
        if not self.settings.store_configured:
            if not self._missing_logged:
                logger.warning("Object store credentials missing. Skipping offload.")
                self._missing_logged = True
            return False
        return self.client is not None

    def key_for(self, local_path: str, tenant: Tenant) -> str:
        """Tenant prefix + path relative to the uploads dir (keeps the date folders)."""
        base_dir = os.path.abspath(self.settings.uploads_dir)
        absolute = os.path.abspath(local_path)
        if os.path.commonpath([base_dir, absolute]) == base_dir:
            relative = os.path.relpath(absolute, base_dir)
        else:
            relative = local_path
        relative = relative.replace(os.sep, "/").lstrip("/")
        return upload_path_prefix(tenant, self.settings.multisite) + relative

    def local_dir(self, attached_file: str) -> str:
        """Directory on disk holding an attachment's files (uploads_dir/<date dir>)."""
        relative = posixpath.dirname(attached_file.replace("\\", "/").lstrip("/"))
        return os.path.join(self.settings.uploads_dir, *relative.split("/")) if relative else self.settings.uploads_dir

    def wait_for_file(self, path: str, max_retries: int | None = None, interval: float | None = None) -> bool:
        retries = max_retries if max_retries is not None else self.settings.upload_wait_retries
        pause = interval if interval is not None else self.settings.upload_wait_interval
        for _attempt in range(max(1, retries)):
            if os.path.isfile(path) and os.access(path, os.R_OK):
                return True
            time.sleep(pause)
        return False

    def _remove_local(self, path: str) -> None:
        try:
            os.unlink(path)
        except OSError as exc:
            logger.warning("Could not remove local copy %s: %s", path, exc)

    # ---------------------------------------------------------- operations
    def upload(self, local_path: str, tenant: Tenant) -> Optional[UploadResult]:
        """Stream local_path to the store with public-read; None on any failure."""
        if not self.ensure_credentials():
            return None
        if not self.wait_for_file(local_path):
            logger.error("Timeout waiting for: %s", local_path)
            return None

        key = self.key_for(local_path, tenant)
        try:
            size = os.path.getsize(local_path)
            with open(local_path, "rb") as stream:
                self.client.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=stream,
                    ContentLength=size,
                    ACL="public-read",
                )
        except STORE_ERRORS as exc:
            logger.error("Upload failed for %s: %s", local_path, exc)
            return None

        url = f"{self.store_url}/{self.bucket}/{key}"
        logger.info("Successfully uploaded %s -> %s (%s)", key, url, human_readable_filesize(size))
        return UploadResult(url=url, size=size)

    def handle_upload(self, upload: dict, tenant: Tenant) -> dict:
        if not self.ensure_credentials():
            return upload
        local_path = upload.get("file") or ""
        result = self.upload(local_path, tenant) if local_path else None
        if result:
            upload["url"] = result.url
        else:
            logger.warning("Failed to offload %s", local_path or "<missing file>")
        return upload

    def save_edited_image(
        self,
        local_file: str,
        tenant: Tenant,
        save: Callable[[str], Any] | None = None,
    ) -> Optional[str]:
        """Let the image editor write local_file, then offload it; returns the new URL."""
        if not self.ensure_credentials():
            return None
        if save is not None:
            try:
                save(local_file)
            except Exception as exc:
                logger.error("Image save error for %s: %s", local_file, exc)
                return None
        result = self.upload(local_file, tenant)
        if not result:
            logger.error("Offload error for %s", local_file)
            return None
        self._remove_local(local_file)
        return result.url

    def offload_metadata(self, metadata: dict, tenant: Tenant, context: str = "create") -> dict:
        if not self.ensure_credentials():
            return metadata
        if context != "create":
            logger.info("Not a create context, skipping thumbnail offload. (context: %s)", context)
            return metadata
        sizes = metadata.get("sizes")
        if sizes:
            self._offload_sizes(sizes, self.local_dir(metadata.get("file") or ""), tenant)
        return metadata

    def update_metadata(self, metadata: dict, tenant: Tenant) -> dict:
        if not self.ensure_credentials():
            return metadata
        if not metadata.get("sizes"):
            return self.offload_metadata(metadata, tenant)

        main_file = metadata.get("file") or ""
        if not is_edited_filename(main_file):
            return metadata

        base_dir = self.local_dir(main_file)
        main_local = os.path.join(base_dir, posixpath.basename(main_file))
        result = self.upload(main_local, tenant)
        if result:
            metadata["url"] = result.url
            self._remove_local(main_local)

        self._offload_sizes(metadata["sizes"], base_dir, tenant)
        return metadata

    def _offload_sizes(self, sizes: dict, base_dir: str, tenant: Tenant) -> None:
        processed: dict[str, UploadResult] = {}
        for info in sizes.values():
            filename = info.get("file")
            if not filename:
                continue
            if filename in processed:
                info["url"] = processed[filename].url
                continue
            local = os.path.join(base_dir, filename)
            result = self.upload(local, tenant)
            if result:
                info["url"] = result.url
                processed[filename] = result
                self._remove_local(local)

    def delete(self, tenant: Tenant, metadata: dict) -> int:
        """Purge every version of the attachment's main file and sizes; returns prefixes purged."""
        if not self.ensure_credentials():
            return 0
        main_file = (metadata or {}).get("file")
        if not main_file:
            logger.warning("No metadata found for attachment, nothing to purge")
            return 0

        key_base = attachment_key_base(upload_path_prefix(tenant, self.settings.multisite), main_file)
        prefixes = [canonical_key_prefix(key_base, main_file)]
        for info in (metadata.get("sizes") or {}).values():
            if info.get("file"):
                prefixes.append(canonical_key_prefix(key_base, info["file"]))

        purged = sum(1 for prefix in prefixes if self.purge_key_versions(prefix))
        logger.info("Purged all versions for %s + %d thumbnails", main_file, len(prefixes) - 1)
        return purged

    def list_key_versions(self, key_prefix: str) -> list[dict]:
        """Every version and delete marker whose key starts with key_prefix."""
        found: list[dict] = []
        client = self.client
        if client is None:
            return found
        params: dict[str, Any] = {"Bucket": self.bucket, "Prefix": key_prefix}
        while True:
            response = client.list_object_versions(**params)
            for list_key in ("Versions", "DeleteMarkers"):
                for entry in response.get(list_key) or []:
                    found.append({"Key": entry["Key"], "VersionId": entry["VersionId"]})
            if not response.get("IsTruncated"):
                return found
            params["KeyMarker"] = response.get("NextKeyMarker")
            params["VersionIdMarker"] = response.get("NextVersionIdMarker")

    def purge_key_versions(self, key_prefix: str) -> bool:
        if self.client is None:
            return False
        try:
            to_delete = self.list_key_versions(key_prefix)
            for start in range(0, len(to_delete), DELETE_BATCH_LIMIT):
                self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": to_delete[start:start + DELETE_BATCH_LIMIT], "Quiet": True},
                )
        except STORE_ERRORS as exc:
            logger.error("Failed to purge key versions for prefix %s: %s", key_prefix, exc)
            return False
        return True

    def upload_dir(self, info: dict, rewriter: Rewriter) -> dict:
        """Pass the URL entries of an upload-directory description through the rewriter."""
        for key in ("url", "baseurl"):
            if isinstance(info.get(key), str):
                info[key] = rewriter.rewrite(info[key])
        return info
