"""
Cloudinary storage client for uploaded resource files.

Uploads and deletions go through Cloudinary's signed REST API. A request is
signed with SHA-1 over the sorted parameters followed by the API secret.
"""

import hashlib
import os
import time

import httpx

from virtuclass import config
from virtuclass.errors import DependencyError
from virtuclass.logging_config import get_logger, log_with_context

logger = get_logger("integrations")

API_BASE = "https://api.cloudinary.com/v1_1"


def storage_resource_type(resource_type: str) -> str:
    """Cloudinary bucket for one of our resource types."""
    if resource_type in ("image", "video"):
        return resource_type
    return "raw"


def sign_params(params: dict, api_secret: str) -> str:
    to_sign = "&".join(
        "{}={}".format(key, params[key])
        for key in sorted(params)
        if params[key] not in (None, "")
    )
    return hashlib.sha1((to_sign + api_secret).encode("utf-8")).hexdigest()


class CloudinaryStorage:
    def __init__(self, cloud_name: str = None, api_key: str = None, api_secret: str = None,
                 folder: str = None, timeout: float = None):
        self.cloud_name = cloud_name or config.CLOUDINARY_CLOUD_NAME
        self.api_key = api_key or config.CLOUDINARY_API_KEY
        self.api_secret = api_secret or config.CLOUDINARY_API_SECRET
        self.folder = folder or config.CLOUDINARY_FOLDER
        self.timeout = timeout or config.HTTP_TIMEOUT_SECONDS

    def _require_config(self):
        if not (self.cloud_name and self.api_key and self.api_secret):
            raise DependencyError("File storage is not configured")

    def _signed(self, params: dict) -> dict:
        params = {**params, "timestamp": int(time.time())}
        params["signature"] = sign_params(params, self.api_secret)
        params["api_key"] = self.api_key
        return params

    def upload(self, content: bytes, filename: str, mime_type: str, resource_type: str) -> dict:
        """
        Upload a file and return {"url", "public_id", "bytes"}.

        Documents go to the raw bucket with their extension kept in the
        public id, so the download URL ends with the right suffix.
        """
        self._require_config()
        bucket = storage_resource_type(resource_type)
        base, ext = os.path.splitext(filename or "upload")
        params = {"folder": self.folder}
        if bucket == "raw":
            params["public_id"] = "{}_{}{}".format(base, int(time.time() * 1000), ext.lower())
        else:
            params["use_filename"] = "true"
            params["unique_filename"] = "true"

        url = "{}/{}/{}/upload".format(API_BASE, self.cloud_name, bucket)
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(url, data=self._signed(params),
                                   files={"file": (filename, content, mime_type)})
                resp.raise_for_status()
                result = resp.json()
        except httpx.HTTPError as e:
            log_with_context(logger, "ERROR", "Cloudinary upload failed: {}".format(e),
                             extra_data={"filename": filename, "size": len(content)})
            raise DependencyError("Failed to upload file") from e

        log_with_context(logger, "INFO", "File uploaded to storage",
                         context={"public_id": result.get("public_id")},
                         extra_data={"bytes": result.get("bytes")})
        return {
            "url": result.get("secure_url") or result.get("url"),
            "public_id": result.get("public_id"),
            "bytes": result.get("bytes", len(content)),
        }

    def destroy(self, public_id: str, resource_type: str):
        self._require_config()
        bucket = storage_resource_type(resource_type)
        url = "{}/{}/{}/destroy".format(API_BASE, self.cloud_name, bucket)
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(url, data=self._signed({"public_id": public_id}))
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise DependencyError("Failed to delete file from storage") from e


_default_storage = CloudinaryStorage()


def get_storage() -> CloudinaryStorage:
    return _default_storage
