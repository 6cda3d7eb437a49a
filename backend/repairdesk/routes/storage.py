# Overview: Flask routes serving stored objects (public branding, signed evidence URLs).

from flask import Blueprint, send_file

from ..decorators import action_boundary
from ..errors import NotFoundError
from .. import storage

storage_bp = Blueprint("storage", __name__, url_prefix="/api/storage")


@storage_bp.get("/signed/<token>")
@action_boundary
def read_signed(token: str):
    """Serve a private object; expired or tampered tokens are 404."""
    bucket, path = storage.resolve_signed_token(token)
    return send_file(bucket.local_path(path), download_name=path.rsplit("/", 1)[-1])


@storage_bp.get("/public/<bucket_name>/<path:object_path>")
@action_boundary
def read_public(bucket_name: str, object_path: str):
    bucket = storage.get_bucket(bucket_name)
    if not bucket.public:
        raise NotFoundError("Object not found")
    return send_file(bucket.local_path(object_path))
