"""Google Cloud Storage backend."""

import asyncio
import logging
from datetime import timedelta
from typing import Iterator, Optional

from google.api_core.exceptions import GoogleAPIError
from google.cloud import storage
from google.cloud.exceptions import NotFound
from google.oauth2 import service_account
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from docvault.core.exceptions import NotFoundError, StorageError
from docvault.storage.base import DEFAULT_READ_CHUNK_SIZE, StorageBackend

logger = logging.getLogger(__name__)

_gcs_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type((NotFound, StorageError)),
    reraise=True,
)

MAX_COMPOSE_SOURCES = 32


class GCSStorageBackend(StorageBackend):
    """Google Cloud Storage backend.

    GCS objects are immutable, so each chunk of a resumable upload is stored
    as its own part object named by its offset (``<key>.parts/<offset>``).
    Re-sending a chunk overwrites the same part, so a failed or repeated
    write never moves the upload past the offset the client knows about.
    ``finalize_object`` composes the parts onto the object key once the
    upload is complete.
    """

    def __init__(self, bucket_name: str, project_id: str | None = None):
        self.bucket_name = bucket_name
        self.project_id = project_id or None
        self._client: Optional[storage.Client] = None
        self._bucket: Optional[storage.Bucket] = None

    def _get_bucket(self) -> storage.Bucket:
        """Lazy-load and cache GCS bucket."""
        if self._bucket is None:
            if not self.bucket_name:
                raise ValueError("GCS_BUCKET_NAME not configured")

            self._client = storage.Client(project=self.project_id)
            self._bucket = self._client.bucket(self.bucket_name)

        return self._bucket

    async def write_chunk(self, key: str, offset: int, data: bytes) -> None:
        try:
            await asyncio.to_thread(self._write_part, key, offset, data)
        except Exception as e:
            logger.error(
                "Failed to write chunk to GCS",
                extra={"bucket": self.bucket_name, "object_key": key, "offset": offset, "error": str(e)},
            )
            raise StorageError(f"Failed to write chunk: {e}") from e

    @staticmethod
    def _parts_prefix(key: str) -> str:
        return f"{key}.parts/"

    def _part_name(self, key: str, offset: int) -> str:
        # Zero-padded so listing order is offset order
        return f"{self._parts_prefix(key)}{offset:020d}"

    @_gcs_retry
    def _write_part(self, key: str, offset: int, data: bytes) -> None:
        part = self._get_bucket().blob(self._part_name(key, offset))
        part.upload_from_string(data, content_type="application/octet-stream")

    async def finalize_object(self, key: str, size: int) -> None:
        try:
            await asyncio.to_thread(self._compose_parts, key, size)
        except StorageError:
            raise
        except Exception as e:
            logger.error(
                "Failed to compose object in GCS",
                extra={"bucket": self.bucket_name, "object_key": key, "size": size, "error": str(e)},
            )
            raise StorageError(f"Failed to finalize object: {e}") from e

    def _chain_parts(self, key: str, size: int) -> list:
        """Pick the parts that cover ``[0, size)`` back to back.

        A part left by a chunk the client later re-sent from an earlier
        offset is not on the chain and is ignored.
        """
        prefix = self._parts_prefix(key)
        parts = {}
        for part in self._get_bucket().list_blobs(prefix=prefix):
            try:
                parts[int(part.name[len(prefix):])] = part
            except ValueError:
                continue

        chain = []
        position = 0
        while position < size:
            part = parts.get(position)
            if part is None or not part.size:
                raise StorageError(
                    f"Object gs://{self.bucket_name}/{key} is missing data at offset {position} of {size}"
                )
            chain.append(part)
            position += part.size

        if position != size:
            raise StorageError(
                f"Object gs://{self.bucket_name}/{key} parts hold {position} bytes, expected {size}"
            )
        return chain

    @_gcs_retry
    def _compose_parts(self, key: str, size: int) -> None:
        bucket = self._get_bucket()
        blob = bucket.blob(key)
        blob.content_type = "application/octet-stream"

        chain = self._chain_parts(key, size)
        if not chain:
            blob.upload_from_string(b"", content_type="application/octet-stream")
            return

        # Compose takes at most 32 sources; fold the rest onto the partial object
        blob.compose(chain[:MAX_COMPOSE_SOURCES])
        remaining = chain[MAX_COMPOSE_SOURCES:]
        while remaining:
            batch = remaining[: MAX_COMPOSE_SOURCES - 1]
            blob.compose([blob] + batch)
            remaining = remaining[MAX_COMPOSE_SOURCES - 1:]

        logger.info(
            "Object composed",
            extra={"bucket": self.bucket_name, "object_key": key, "size": size, "parts": len(chain)},
        )

    async def discard_parts(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._delete_parts, key)
        except Exception as e:
            # The object is already assembled, leftover parts only cost space
            logger.warning(
                "Failed to delete upload parts",
                extra={"bucket": self.bucket_name, "object_key": key, "error": str(e)},
            )

    @_gcs_retry
    def _delete_parts(self, key: str) -> None:
        self._remove_parts(key)

    def _remove_parts(self, key: str) -> None:
        for part in self._get_bucket().list_blobs(prefix=self._parts_prefix(key)):
            try:
                part.delete()
            except NotFound:
                pass

    async def get_object_size(self, key: str) -> int:
        try:
            return await asyncio.to_thread(self._get_object_size, key)
        except NotFound as e:
            raise NotFoundError(f"Object not found: gs://{self.bucket_name}/{key}") from e
        except Exception as e:
            raise StorageError(f"Failed to get object size: {e}") from e

    @_gcs_retry
    def _get_object_size(self, key: str) -> int:
        blob = self._get_bucket().blob(key)
        blob.reload()
        return blob.size

    def iter_object(self, key: str, chunk_size: int = DEFAULT_READ_CHUNK_SIZE) -> Iterator[bytes]:
        blob = self._get_bucket().blob(key)
        try:
            reader = blob.open("rb", chunk_size=chunk_size)
        except NotFound as e:
            raise NotFoundError(f"Object not found: gs://{self.bucket_name}/{key}") from e
        except Exception as e:
            raise StorageError(f"Failed to open object: {e}") from e
        return self._read_chunks(reader, key, chunk_size)

    def _read_chunks(self, reader, key: str, chunk_size: int) -> Iterator[bytes]:
        # BlobReader only fetches on first read, so a missing object surfaces here
        try:
            with reader:
                while chunk := reader.read(chunk_size):
                    yield chunk
        except NotFound as e:
            raise NotFoundError(f"Object not found: gs://{self.bucket_name}/{key}") from e
        except GoogleAPIError as e:
            raise StorageError(f"Failed to read object: {e}") from e

    async def delete_object(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._delete_object, key)
        except Exception as e:
            raise StorageError(f"Failed to delete object: {e}") from e

    @_gcs_retry
    def _delete_object(self, key: str) -> None:
        try:
            self._get_bucket().blob(key).delete()
        except NotFound:
            logger.debug("Object already absent", extra={"object_key": key})
        self._remove_parts(key)

    def generate_signed_url(self, key: str, expiry_seconds: int) -> str:
        """Generate V4 signed GET URL using the IAM signBlob API."""
        from google.auth import compute_engine, iam
        from google.auth.transport import requests as auth_requests

        blob = self._get_bucket().blob(key)

        # Works on Cloud Run / GCE / GKE where the service runs as a service account.
        credentials = compute_engine.Credentials()
        auth_request = auth_requests.Request()
        credentials.refresh(auth_request)
        service_account_email = credentials.service_account_email

        # The service account needs roles/iam.serviceAccountTokenCreator on itself.
        signer = iam.Signer(
            request=auth_request,
            credentials=credentials,
            service_account_email=service_account_email,
        )
        signing_creds = service_account.Credentials(
            signer=signer,
            service_account_email=service_account_email,
            token_uri="https://oauth2.googleapis.com/token",
        )

        return blob.generate_signed_url(
            version="v4",
            expiration=timedelta(seconds=expiry_seconds),
            method="GET",
            credentials=signing_creds,
            service_account_email=service_account_email,
        )

    def get_backend_name(self) -> str:
        return "gcs"
