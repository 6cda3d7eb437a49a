# Overview: Object storage buckets (public branding, private order evidence).

"""
File storage adapter.

Two logical buckets live under STORAGE_ROOT:

- PUBLIC_BUCKET: shop branding; objects are readable by plain URL.
- EVIDENCE_BUCKET: private customer evidence; objects are only readable
  through time-limited signed URLs (SIGNED_URL_TTL_SECONDS, 24h by default).

Signed URLs carry an itsdangerous token binding bucket and path; the
storage blueprint verifies it and its age before serving the bytes.
"""

from __future__ import annotations

import re
import time
from pathlib import Path, PurePosixPath

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .errors import NotFoundError, ValidationError

_SIGNING_SALT = "repairdesk.storage"
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.]")


def clean_filename(name: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", name or "")
    return cleaned or "file"


def build_object_path(*parts: str, filename: str | None = None, timestamped: bool = True) -> str:
    """
    Build '<part>/<part>/<ms-timestamp>-<clean-name>'.

    The final positional part is used as the filename when filename is omitted.
    """
    parts = list(parts)
    if filename is None:
        filename = parts.pop()
    name = clean_filename(filename)
    if timestamped:
        name = f"{int(time.time() * 1000)}-{name}"
    return "/".join([*(str(p) for p in parts), name])


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=_SIGNING_SALT)


class Bucket:
    def __init__(self, name: str, root: Path, *, public: bool):
        self.name = name
        self.root = root
        self.public = public

    def _resolve(self, path: str) -> Path:
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts or not rel.parts:
            raise ValidationError("invalid object path")
        return self.root / self.name / Path(*rel.parts)

    def upload(self, path: str, data: bytes, content_type: str | None = None) -> str:
        target = self._resolve(path)
        if target.exists():
            raise ValidationError("object already exists")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return path

    def remove(self, path: str) -> None:
        self._resolve(path).unlink(missing_ok=True)

    def discard(self, paths: list[str]) -> None:
        """Remove objects written by a unit of work that did not commit."""
        while paths:
            self.remove(paths.pop())

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def local_path(self, path: str) -> Path:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFoundError("Object not found")
        return target

    def public_url(self, path: str) -> str:
        if not self.public:
            raise ValidationError(f"bucket {self.name} is private")
        return f"/api/storage/public/{self.name}/{path}"

    def create_signed_url(self, path: str, expires_in: int | None = None) -> dict:
        """
        Signed, time-limited read URL for one object.

        Returns {"signed_url", "expires_in"}; expiry is checked on read.
        """
        ttl = expires_in or current_app.config["SIGNED_URL_TTL_SECONDS"]
        token = _serializer().dumps({"b": self.name, "p": path, "ttl": ttl})
        return {"signed_url": f"/api/storage/signed/{token}", "expires_in": ttl}


def _root() -> Path:
    root = Path(current_app.config["STORAGE_ROOT"])
    if not root.is_absolute():
        root = Path(current_app.instance_path) / root
    return root


def public_bucket() -> Bucket:
    return Bucket(current_app.config["PUBLIC_BUCKET"], _root(), public=True)


def evidence_bucket() -> Bucket:
    return Bucket(current_app.config["EVIDENCE_BUCKET"], _root(), public=False)


def get_bucket(name: str) -> Bucket:
    for bucket in (public_bucket(), evidence_bucket()):
        if bucket.name == name:
            return bucket
    raise NotFoundError("Bucket not found")


def resolve_signed_token(token: str) -> tuple[Bucket, str]:
    """Verify a signed URL token; expired or tampered tokens read as not found."""
    serializer = _serializer()
    try:
        payload = serializer.loads(token)
        serializer.loads(token, max_age=int(payload["ttl"]))
    except (SignatureExpired, BadSignature, KeyError, TypeError, ValueError):
        raise NotFoundError("Object not found")
    return get_bucket(payload["b"]), payload["p"]
