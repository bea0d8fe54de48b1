"""
Object store transfer settings.
Multipart sizes, worker pool size and streaming buffers for variant uploads.
"""

from variant_storage.core.config import settings

# Multipart
MULTIPART_THRESHOLD = 5 * 1024 * 1024   # 5MB (S3/MinIO minimum for multipart)
MULTIPART_CHUNKSIZE = 10 * 1024 * 1024  # 10MB per part
MAX_CONCURRENCY = 1                      # Serial parts within one upload

# One worker per concurrently running variant upload
MAX_UPLOAD_WORKERS = 8

# Streaming
READ_CHUNK_SIZE = 256 * 1024             # 256KB read buffer

# Chunks buffered per variant upload (env MAX_BUFFERED_CHUNKS)
MAX_BUFFERED_CHUNKS = settings.MAX_BUFFERED_CHUNKS

# Seconds the upload thread waits for the next chunk before giving up
CHUNK_TIMEOUT = 30

# Public base URL used when neither a public URL nor an endpoint is configured
DEFAULT_PUBLIC_URL = "https://s3.amazonaws.com"
