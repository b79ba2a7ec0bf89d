from datetime import timedelta
from urllib.parse import quote

from minio import Minio
from .config import MINIO_ENDPOINT, MINIO_ACCESS_KEY, MINIO_SECRET_KEY, MINIO_BUCKET, MINIO_REGION, MINIO_SECURE

UPLOAD_URL_TTL = timedelta(minutes=10)
VIEW_URL_TTL = timedelta(hours=1)

_client = Minio(
    MINIO_ENDPOINT,
    access_key=MINIO_ACCESS_KEY,
    secret_key=MINIO_SECRET_KEY,
    secure=MINIO_SECURE,
    region=MINIO_REGION,
)

def ensure_bucket():
    if not _client.bucket_exists(MINIO_BUCKET):
        _client.make_bucket(MINIO_BUCKET)

def presigned_upload_url(key: str) -> str:
    return _client.presigned_put_object(MINIO_BUCKET, key, expires=UPLOAD_URL_TTL)

def presigned_view_url(key: str, filename: str, attachment: bool = False) -> str:
    disposition = "attachment" if attachment else "inline"
    headers = {
        "response-content-type": "application/pdf",
        "response-content-disposition": f'{disposition}; filename="{quote(filename)}"',
    }
    return _client.presigned_get_object(MINIO_BUCKET, key, expires=VIEW_URL_TTL, response_headers=headers)

def delete_object(key: str):
    _client.remove_object(MINIO_BUCKET, key)
