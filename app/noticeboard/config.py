import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    jwt_secret: str
    jwt_expires_hours: int
    jwt_issuer: str
    jwt_audience: str

    storage_backend: str
    upload_dir: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str
    max_file_size: int
    max_image_size: int

    rate_limit_enabled: bool
    rate_limit_window: int
    rate_limit_max: int
    auth_rate_limit_max: int
    rate_limit_storage_uri: str
    trusted_proxy_count: int

    allowed_origins: tuple[str, ...]
    site_name: str
    site_description: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getint(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    secret_key = _getenv("SECRET_KEY", "change-me")
    origins = _getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:3001")
    return Settings(
        secret_key=secret_key,
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///noticeboard.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        jwt_secret=_getenv("JWT_SECRET", secret_key),
        jwt_expires_hours=_getint("JWT_EXPIRES_HOURS", 24 * 7),
        jwt_issuer=_getenv("JWT_ISSUER", "notice-board"),
        jwt_audience=_getenv("JWT_AUDIENCE", "notice-users"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        upload_dir=_getenv("UPLOAD_DIR", "storage"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        max_file_size=_getint("MAX_FILE_SIZE", 10 * 1024 * 1024),
        max_image_size=_getint("MAX_IMAGE_SIZE", 5 * 1024 * 1024),
        rate_limit_enabled=_getenv("RATE_LIMIT_ENABLED", "1") not in ("0", "false", "no"),
        rate_limit_window=_getint("RATE_LIMIT_WINDOW", 15 * 60),
        rate_limit_max=_getint("RATE_LIMIT_MAX", 100),
        auth_rate_limit_max=_getint("AUTH_RATE_LIMIT_MAX", 5),
        rate_limit_storage_uri=_getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
        trusted_proxy_count=max(0, _getint("TRUSTED_PROXY_COUNT", 1)),
        allowed_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        site_name=_getenv("SITE_NAME", "Notice Board"),
        site_description=_getenv("SITE_DESCRIPTION", "Official notice board for announcements and updates"),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "JWT_SECRET": s.jwt_secret,
        "JWT_EXPIRES_HOURS": s.jwt_expires_hours,
        "JWT_ISSUER": s.jwt_issuer,
        "JWT_AUDIENCE": s.jwt_audience,
        "STORAGE_BACKEND": s.storage_backend,
        "UPLOAD_DIR": s.upload_dir,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "MAX_FILE_SIZE": s.max_file_size,
        "MAX_IMAGE_SIZE": s.max_image_size,
        "RATE_LIMIT_ENABLED": s.rate_limit_enabled,
        "RATE_LIMIT_WINDOW": s.rate_limit_window,
        "RATE_LIMIT_MAX": s.rate_limit_max,
        "AUTH_RATE_LIMIT_MAX": s.auth_rate_limit_max,
        "RATE_LIMIT_STORAGE_URI": s.rate_limit_storage_uri,
        "TRUSTED_PROXY_COUNT": s.trusted_proxy_count,
        "ALLOWED_ORIGINS": s.allowed_origins,
        "SITE_NAME": s.site_name,
        "SITE_DESCRIPTION": s.site_description,
        # multipart bodies: 10 files at MAX_FILE_SIZE plus form overhead
        "MAX_CONTENT_LENGTH": 11 * s.max_file_size,
    }
