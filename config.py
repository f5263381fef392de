import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "postgresql+psycopg2://postgres:postgres@db:5432/memory_wall_db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Blob Storage
    STORAGE_ACCOUNT_NAME = os.getenv("STORAGE_ACCOUNT_NAME")
    STORAGE_ACCOUNT_KEY = os.getenv("STORAGE_ACCOUNT_KEY")
    STORAGE_ACCOUNT_URL = os.getenv("STORAGE_ACCOUNT_URL")
    MEDIA_CONTAINER_NAME = os.getenv("MEDIA_CONTAINER_NAME", "media")
    UPLOAD_SAS_MINUTES = int(os.getenv("UPLOAD_SAS_MINUTES", 10))
    READ_SAS_MINUTES = int(os.getenv("READ_SAS_MINUTES", 10))

    # Export
    EXPORT_BLOB_TIMEOUT = int(os.getenv("EXPORT_BLOB_TIMEOUT", 30))
    EXPORT_CONCURRENCY = int(os.getenv("EXPORT_CONCURRENCY", 1))

    # Access
    ADMIN_PASSCODE = os.getenv("ADMIN_PASSCODE", "")
    DEFAULT_HOST_ID = os.getenv("DEFAULT_HOST_ID", "demo-host")
    EVENTGRID_WEBHOOK_KEY = os.getenv("EVENTGRID_WEBHOOK_KEY", "")

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    STORAGE_ACCOUNT_NAME = "memorywalltest"
    # base64("memory-wall-test-key"); SAS signing happens locally
    STORAGE_ACCOUNT_KEY = "bWVtb3J5LXdhbGwtdGVzdC1rZXk="
    STORAGE_ACCOUNT_URL = None
    MEDIA_CONTAINER_NAME = "media"
    ADMIN_PASSCODE = "letmein"
    DEFAULT_HOST_ID = "demo-host"
    EVENTGRID_WEBHOOK_KEY = ""
    EXPORT_CONCURRENCY = 1
    CORS_ORIGINS = "*"
