"""
services/receipt_service.py — Receipt handling for expenses.

A receipt arrives in one of three forms:
  - blank / whitespace         → no receipt (None)
  - an ordinary URL            → stored as given
  - data:<mime>;base64,<bytes> → uploaded to object storage; the public URL
                                 of the stored object is kept instead

Inline uploads are checked against an image allow-list and a size cap before
anything is sent. Storage failures surface as UpstreamFailure with a generic
message; the storage response text is logged, never returned.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import time

import requests

from splitbook.app.errors import ErrorCode, UpstreamFailure, ValidationFailure

logger = logging.getLogger(__name__)

ALLOWED_RECEIPT_MIME_TYPES: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png":  "png",
    "image/webp": "webp",
}

_DATA_URL_RE = re.compile(r"^data:([^;,]+);base64,(.*)$", re.DOTALL)


class ReceiptStorage:
    """Object storage client for a Supabase-compatible storage REST API."""

    def __init__(self, app=None) -> None:
        self.base_url = ""
        self.api_key = ""
        self.bucket = "receipts"
        self.max_bytes = 8 * 1024 * 1024
        self.timeout = 30
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.base_url = (app.config.get("RECEIPT_STORAGE_URL") or "").rstrip("/")
        self.api_key = app.config.get("RECEIPT_STORAGE_KEY") or ""
        self.bucket = app.config.get("RECEIPT_BUCKET", "receipts")
        self.max_bytes = app.config.get("RECEIPT_MAX_BYTES", self.max_bytes)
        self.timeout = app.config.get("RECEIPT_TIMEOUT_SECONDS", self.timeout)
        app.extensions["receipt_storage"] = self

    def upload_and_get_url(
            self,
            owner_id: str,
            mime: str,
            payload: bytes,
            expense_id: str | None = None,
    ) -> str:
        """Stores one receipt image under the owner's prefix and returns its public URL."""
        if not self.base_url or not self.api_key:
            logger.error("Receipt upload attempted without storage configuration")
            raise UpstreamFailure("Receipt storage is not configured.")

        extension = ALLOWED_RECEIPT_MIME_TYPES[mime]
        folder = f"{owner_id}/expenses/{expense_id}" if expense_id else f"{owner_id}/receipts"
        object_path = f"{folder}/receipt-{int(time.time() * 1000)}.{extension}"
        endpoint = f"{self.base_url}/storage/v1/object/{self.bucket}/{object_path}"
        try:
            response = requests.post(
                endpoint,
                data=payload,
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": mime,
                    "x-upsert": "true",
                },
                timeout=self.timeout,
            )
        except requests.RequestException:
            logger.exception("Receipt upload to %s failed", endpoint)
            raise UpstreamFailure("Receipt storage is unavailable. Please try again later.")

        if not response.ok:
            logger.error(
                "Receipt upload to %s failed: HTTP %s %s",
                endpoint, response.status_code, response.text[:500],
            )
            raise UpstreamFailure("Receipt storage is unavailable. Please try again later.")

        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{object_path}"


def decode_data_url(value: str, max_bytes: int) -> tuple[str, bytes]:
    """
    Splits a base64 data URL into (mime, bytes), enforcing the allow-list and size cap.

    Raises ValidationFailure with INVALID_RECEIPT, UNSUPPORTED_RECEIPT_TYPE or
    RECEIPT_TOO_LARGE.
    """
    match = _DATA_URL_RE.match(value)
    if match is None:
        raise ValidationFailure(
            ErrorCode.INVALID_RECEIPT,
            "Receipt must be a URL or a base64 data URL.",
            field="receipt_url",
        )

    mime = match.group(1).strip().lower()
    if mime not in ALLOWED_RECEIPT_MIME_TYPES:
        raise ValidationFailure(
            ErrorCode.UNSUPPORTED_RECEIPT_TYPE,
            f"Unsupported receipt type: {mime}. Use JPEG, PNG or WebP.",
            field="receipt_url",
        )

    try:
        payload = base64.b64decode(match.group(2), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationFailure(
            ErrorCode.INVALID_RECEIPT,
            "Receipt data is not valid base64.",
            field="receipt_url",
        )

    if len(payload) > max_bytes:
        raise ValidationFailure(
            ErrorCode.RECEIPT_TOO_LARGE,
            f"Receipt is {len(payload)} bytes; the limit is {max_bytes} bytes.",
            field="receipt_url",
        )
    return mime, payload


def resolve_receipt_url(
        value: str | None,
        owner_id: str,
        expense_id: str,
        storage: ReceiptStorage | None,
) -> str | None:
    """Returns the receipt URL to persist for a submitted receipt value."""
    if value is None:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    if not trimmed.startswith("data:"):
        return trimmed

    max_bytes = storage.max_bytes if storage is not None else 8 * 1024 * 1024
    mime, payload = decode_data_url(trimmed, max_bytes)
    if storage is None:
        raise UpstreamFailure("Receipt storage is not configured.")

    return storage.upload_and_get_url(owner_id, mime, payload, expense_id=expense_id)
