"""
Configuration module for the lifecycle engine and its Lambda handlers.
Loads all environment variables needed by the platform.
"""
import os


class Config:
    """Centralized configuration from environment variables."""

    # AWS Region
    AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')

    # Persistence backend: 'dynamodb' in deployed stages, 'memory' for local runs
    STORE_BACKEND = os.environ.get('STORE_BACKEND', 'dynamodb')

    # DynamoDB Tables
    TASKS_TABLE = os.environ.get('TASKS_TABLE', 'langcrowd-tasks')
    CONTRIBUTIONS_TABLE = os.environ.get('CONTRIBUTIONS_TABLE', 'langcrowd-contributions')
    VALIDATIONS_TABLE = os.environ.get('VALIDATIONS_TABLE', 'langcrowd-validations')
    PROJECTS_TABLE = os.environ.get('PROJECTS_TABLE', 'langcrowd-projects')
    TASK_HISTORY_TABLE = os.environ.get('TASK_HISTORY_TABLE', 'langcrowd-task-history')

    # S3 Buckets
    MEDIA_BUCKET = os.environ.get('MEDIA_BUCKET', '')
    MEDIA_PUBLIC_BASE_URL = os.environ.get('MEDIA_PUBLIC_BASE_URL', '')

    # Bulk ingestion
    INGEST_CHUNK_SIZE = int(os.environ.get('INGEST_CHUNK_SIZE', '50'))
    MAX_UPLOAD_BYTES = int(os.environ.get('MAX_UPLOAD_BYTES', str(50 * 1024 * 1024)))
    # Uncompressed size of a single archive entry
    MAX_ENTRY_BYTES = int(os.environ.get('MAX_ENTRY_BYTES', str(25 * 1024 * 1024)))


config = Config()
