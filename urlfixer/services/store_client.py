"""
S3-compatible object store client.

Some S3-compatible backends reject the CRC32 checksum header the AWS SDK now
sends by default, and require a Content-MD5 header on DeleteObjects instead.
When STORE_CHECKSUMS is off, `create_s3_client` installs botocore event
handlers that strip the checksum headers and inject the MD5 computed from the
exact XML body about to go on the wire.
"""
from __future__ import annotations

import base64
import hashlib
import logging

import boto3
from botocore.config import Config as BotoConfig

from urlfixer.core.config import Settings

logger = logging.getLogger(__name__)

CHECKSUM_HEADERS = ("x-amz-checksum-crc32", "x-amz-sdk-checksum-algorithm")


def _request_body(request) -> bytes:
    body = request.body
    if body is None:
        return b""
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    if isinstance(body, str):
        return body.encode("utf-8")
    data = body.read()
    body.seek(0)
    return data


def remove_checksum_headers(request, **kwargs) -> None:
    """before-sign handler: drop checksum headers the backend doesn't support."""
    for header in CHECKSUM_HEADERS:
        if header in request.headers:
            del request.headers[header]


def inject_delete_md5(request, **kwargs) -> None:
    """before-sign handler for DeleteObjects: add Content-MD5 of the XML body."""
    digest = hashlib.md5(_request_body(request)).digest()
    if "Content-MD5" in request.headers:
        del request.headers["Content-MD5"]
    request.headers["Content-MD5"] = base64.b64encode(digest).decode("ascii")


def install_checksum_shim(client) -> None:
    events = client.meta.events
    events.register("before-sign.s3", remove_checksum_headers, unique_id="urlfixer-remove-checksum")
    events.register("before-sign.s3.DeleteObjects", inject_delete_md5, unique_id="urlfixer-delete-md5")


def create_s3_client(settings: Settings):
    """Path-style boto3 S3 client for the configured endpoint."""
    options = {
        "signature_version": "s3v4",
        "s3": {"addressing_style": "path"},
    }
    if not settings.store_checksums:
        options["request_checksum_calculation"] = "when_required"
        options["response_checksum_validation"] = "when_required"

    client = boto3.client(
        "s3",
        endpoint_url=settings.store_url,
        aws_access_key_id=settings.store_key,
        aws_secret_access_key=settings.store_secret,
        region_name=settings.store_region,
        config=BotoConfig(**options),
    )
    if not settings.store_checksums:
        install_checksum_shim(client)
        logger.debug("Checksum compatibility shim installed for %s", settings.store_url)
    return client
