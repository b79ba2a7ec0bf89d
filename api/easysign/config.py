import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./easysign.db")
MINIO_ENDPOINT = os.getenv("MINIO_ENDPOINT", "minio:9000")
MINIO_ACCESS_KEY = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
MINIO_SECRET_KEY = os.getenv("MINIO_SECRET_KEY", "minioadmin")
MINIO_BUCKET = os.getenv("MINIO_BUCKET", "documents")
MINIO_REGION = os.getenv("MINIO_REGION", "us-east-1")
MINIO_SECURE = os.getenv("MINIO_SECURE", "false").lower() == "true"
ADMIN_ACCESS_TOKEN = os.getenv("ADMIN_ACCESS_TOKEN", "admin-test-token")
APP_URL = os.getenv("APP_URL", "http://localhost:3000")

# client session tunables
EASYSIGN_API_URL = os.getenv("EASYSIGN_API_URL", "http://localhost:8000/api")
FIELD_UPDATE_DEBOUNCE_SECONDS = float(os.getenv("FIELD_UPDATE_DEBOUNCE_SECONDS", "0.3"))
SIGNER_WAIT_TIMEOUT_SECONDS = float(os.getenv("SIGNER_WAIT_TIMEOUT_SECONDS", "5.0"))
