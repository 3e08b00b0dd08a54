# =============================================================================
# Extraction Strategy — File Reference → Study Text
# =============================================================================
#
# A job's file reference is a tagged location. The tag decides where the
# PDF bytes come from:
#
#   https://example.com/notes.pdf       → HTTP download
#   https://www.dropbox.com/s/...       → HTTP download, Dropbox URL variants
#   r2://bucket/path/to/notes.pdf       → Cloudflare R2 (S3 API, boto3)
#
# Whatever the source, the bytes must carry a %PDF header and are then
# parsed by Docling (parser.py) in a worker thread.
#
# ERRORS:
#   - unknown scheme / malformed reference → InvalidInputError (raised
#     before any network access)
#   - download, storage, parse or empty-text failures → ExtractionError
# =============================================================================

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import urlsplit

import httpx

from study_worker.config import settings
from study_worker.errors import ExtractionError, InvalidInputError

if TYPE_CHECKING:
    from study_worker.services.parser import ParsedDocument

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ("http", "https", "r2")

_PDF_MAGIC = b"%PDF"

# Some hosts (Dropbox in particular) serve an HTML preview page to clients
# that do not look like a browser.
_DOWNLOAD_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    ),
    "Accept": "application/pdf, application/octet-stream, */*",
    "Accept-Language": "en-US,en;q=0.9",
}


class ExtractionStrategy(Protocol):
    """Produces study text from a job's file reference."""

    async def extract_text(self, reference: str) -> str:
        ...


# ---------------------------------------------------------------------------
# Reference Validation
# ---------------------------------------------------------------------------


class ReferenceType(str, enum.Enum):
    HTTP = "http"
    DROPBOX = "dropbox"
    OBJECT_STORAGE = "r2"


@dataclass(frozen=True)
class FileReference:
    raw: str
    type: ReferenceType
    host: str
    key: str | None = None  # object key, OBJECT_STORAGE only

    @property
    def bucket(self) -> str | None:
        return self.host if self.type is ReferenceType.OBJECT_STORAGE else None


def parse_file_reference(reference: str) -> FileReference:
    """
    Classify a file reference, rejecting anything we cannot fetch.

    Raises:
        InvalidInputError: unknown scheme, missing host, or an r2:// URL
            without an object key.
    """
    invalid = InvalidInputError(
        f"Invalid file reference: {reference!r}. "
        "Must be an http, https, or r2://bucket/key location."
    )

    candidate = (reference or "").strip()
    try:
        parts = urlsplit(candidate)
    except ValueError as exc:
        raise invalid from exc

    scheme = parts.scheme.lower()
    if scheme not in SUPPORTED_SCHEMES or not parts.netloc:
        raise invalid

    if scheme == "r2":
        key = parts.path.lstrip("/")
        if not key:
            raise invalid
        return FileReference(
            raw=candidate,
            type=ReferenceType.OBJECT_STORAGE,
            host=parts.netloc,
            key=key,
        )

    host = (parts.hostname or "").lower()
    if not host:
        raise invalid
    if host == "dropbox.com" or host.endswith(".dropbox.com"):
        return FileReference(raw=candidate, type=ReferenceType.DROPBOX, host=host)
    return FileReference(raw=candidate, type=ReferenceType.HTTP, host=host)


def is_valid_reference(reference: str) -> bool:
    """True if `reference` is a location the worker knows how to fetch."""
    try:
        parse_file_reference(reference)
    except InvalidInputError:
        return False
    return True


def dropbox_candidate_urls(url: str) -> list[str]:
    """
    URLs to try, in order, for a Dropbox share link.

    1. the link as given
    2. the link without its query string, plus ?raw=1
    3. the direct-content host (dl.dropboxusercontent.com), plus ?raw=1
    """
    base_url = url.split("?", 1)[0]
    candidates = [
        url,
        f"{base_url}?raw=1",
        base_url.replace("www.dropbox.com", "dl.dropboxusercontent.com", 1) + "?raw=1",
    ]
    return list(dict.fromkeys(candidates))


def looks_like_pdf(data: bytes) -> bool:
    # The header may be preceded by junk bytes, within the first 1 KiB
    return _PDF_MAGIC in data[:1024]


# ---------------------------------------------------------------------------
# Fetchers
# ---------------------------------------------------------------------------


class HttpPdfFetcher:
    """Downloads PDFs over HTTP(S), trying candidate URLs in order."""

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout or settings.http_timeout_seconds
        self._transport = transport

    async def fetch(self, urls: Sequence[str]) -> bytes:
        """
        Return the first response body that is a PDF.

        Raises:
            ExtractionError: every candidate failed; carries the last error.
        """
        last_error: ExtractionError | None = None

        async with httpx.AsyncClient(
            timeout=self._timeout,
            headers=_DOWNLOAD_HEADERS,
            follow_redirects=True,
            max_redirects=5,
            transport=self._transport,
        ) as client:
            for url in urls:
                logger.info("Fetching PDF from URL: %s", url)
                try:
                    response = await client.get(url)
                    response.raise_for_status()
                except httpx.TimeoutException as exc:
                    last_error = ExtractionError(
                        f"File download timeout ({self._timeout:g} seconds)"
                    )
                    last_error.__cause__ = exc
                    logger.warning("URL timed out: %s", url)
                    continue
                except httpx.HTTPError as exc:
                    last_error = ExtractionError(f"Failed to download PDF: {exc}")
                    last_error.__cause__ = exc
                    logger.warning("URL failed: %s - %s", url, exc)
                    continue

                body = response.content
                if not looks_like_pdf(body):
                    last_error = ExtractionError(
                        "Not a valid PDF file content received. "
                        "Got HTML or non-PDF data."
                    )
                    logger.warning(
                        "Not a valid PDF from %s (header: %r)", url, body[:10],
                    )
                    continue

                logger.info("Fetched %d bytes from %s", len(body), url)
                return body

        raise last_error or ExtractionError("No URL to download the PDF from")


class R2PdfFetcher:
    """
    Downloads PDFs from Cloudflare R2 through its S3-compatible API.

    boto3 is synchronous, so the download runs in a worker thread.
    The configured R2_BUCKET_NAME takes precedence over the bucket named in
    the reference, since the credentials are scoped to that bucket.
    """

    def __init__(self, client: Any | None = None, bucket: str | None = None) -> None:
        self._client = client
        self._bucket = bucket or settings.r2_bucket_name

    def _get_client(self) -> Any:
        if self._client is None:
            if not (
                settings.r2_endpoint_url
                and settings.r2_access_key_id
                and settings.r2_secret_access_key
            ):
                raise ExtractionError(
                    "Missing R2 worker credentials in environment variables."
                )

            import boto3

            self._client = boto3.client(
                "s3",
                region_name="auto",
                endpoint_url=settings.r2_endpoint_url,
                aws_access_key_id=settings.r2_access_key_id,
                aws_secret_access_key=settings.r2_secret_access_key,
            )
        return self._client

    def _download(self, bucket: str, key: str) -> bytes:
        response = self._get_client().get_object(Bucket=bucket, Key=key)
        body = response.get("Body")
        if body is None:
            raise ExtractionError("R2 response body was empty.")
        return body.read()

    async def fetch(self, reference: FileReference) -> bytes:
        from botocore.exceptions import BotoCoreError, ClientError

        bucket = self._bucket or reference.bucket
        key = reference.key or ""
        logger.info("Fetching PDF from R2 bucket: %s, key: %s", bucket, key)

        try:
            data = await asyncio.to_thread(self._download, bucket, key)
        except ExtractionError:
            raise
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in ("NoSuchKey", "404", "NotFound"):
                raise ExtractionError(f"R2 file not found or deleted: {key}") from exc
            if code in ("AccessDenied", "Forbidden", "403"):
                raise ExtractionError(
                    "R2 access denied. Check worker credentials and bucket permissions."
                ) from exc
            raise ExtractionError(f"Failed to process PDF from R2: {exc}") from exc
        except BotoCoreError as exc:
            raise ExtractionError(f"Failed to process PDF from R2: {exc}") from exc

        if not looks_like_pdf(data):
            raise ExtractionError(f"R2 object is not a valid PDF: {key}")

        logger.info("Fetched %d bytes from R2", len(data))
        return data


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------


PdfParser = Callable[[bytes, str], "ParsedDocument"]


def _docling_parser() -> PdfParser:
    # Docling loads its ML stack on import; defer until a PDF needs parsing
    from study_worker.services.parser import parse_pdf_bytes

    return parse_pdf_bytes


class PdfTextExtractor:
    """Default ExtractionStrategy: fetch by reference type, parse with Docling."""

    def __init__(
        self,
        http_fetcher: HttpPdfFetcher | None = None,
        r2_fetcher: R2PdfFetcher | None = None,
        parser: PdfParser | None = None,
    ) -> None:
        self._http = http_fetcher or HttpPdfFetcher()
        self._r2 = r2_fetcher or R2PdfFetcher()
        self._parser = parser

    async def fetch_bytes(self, reference: FileReference) -> bytes:
        if reference.type is ReferenceType.OBJECT_STORAGE:
            return await self._r2.fetch(reference)
        if reference.type is ReferenceType.DROPBOX:
            return await self._http.fetch(dropbox_candidate_urls(reference.raw))
        return await self._http.fetch([reference.raw])

    async def extract_text(self, reference: str) -> str:
        parsed_ref = parse_file_reference(reference)
        data = await self.fetch_bytes(parsed_ref)

        filename = parsed_ref.key or urlsplit(parsed_ref.raw).path.rsplit("/", 1)[-1]
        try:
            parse = self._parser or _docling_parser()
            document = await asyncio.to_thread(parse, data, filename or "document.pdf")
        except Exception as exc:
            raise ExtractionError(f"Failed to parse PDF: {exc}") from exc

        text = document.text
        if not text.strip():
            raise ExtractionError("No text content extracted from PDF")
        return text
