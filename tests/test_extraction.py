# =============================================================================
# Unit Tests — Extraction Strategy
# =============================================================================
#
# HTTP downloads run against httpx.MockTransport; the R2 client is a
# MagicMock standing in for boto3's S3 client. Docling is never loaded:
# PdfTextExtractor gets a stub parser.
# =============================================================================

from __future__ import annotations

import asyncio
import io
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError

from study_worker.errors import ExtractionError, InvalidInputError
from study_worker.services.extraction import (
    FileReference,
    HttpPdfFetcher,
    PdfTextExtractor,
    R2PdfFetcher,
    ReferenceType,
    dropbox_candidate_urls,
    is_valid_reference,
    looks_like_pdf,
    parse_file_reference,
)

PDF_BYTES = b"%PDF-1.7\n1 0 obj\n<< /Type /Catalog >>\nendobj\n"
HTML_BYTES = b"<!DOCTYPE html><html><body>Preview</body></html>"


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, "GetObject")


# ---------------------------------------------------------------------------
# Test: Reference Validation
# ---------------------------------------------------------------------------


class TestFileReference:
    def test_accepts_supported_schemes(self):
        assert is_valid_reference("https://example.com/notes.pdf")
        assert is_valid_reference("http://example.com/notes.pdf")
        assert is_valid_reference("r2://study-files/user-1/notes.pdf")

    def test_rejects_unsupported_references(self):
        assert not is_valid_reference("ftp://x")
        assert not is_valid_reference("not-a-url")
        assert not is_valid_reference("")
        assert not is_valid_reference("r2://bucket-only")
        assert not is_valid_reference("https://")

    def test_invalid_reference_message(self):
        with pytest.raises(InvalidInputError, match="Invalid file reference"):
            parse_file_reference("not-a-url")

    def test_r2_reference_has_bucket_and_key(self):
        ref = parse_file_reference("r2://study-files/user-1/notes.pdf")
        assert ref.type is ReferenceType.OBJECT_STORAGE
        assert ref.bucket == "study-files"
        assert ref.key == "user-1/notes.pdf"

    def test_dropbox_is_detected(self):
        ref = parse_file_reference("https://www.dropbox.com/s/abc/notes.pdf?dl=0")
        assert ref.type is ReferenceType.DROPBOX

    def test_plain_http(self):
        ref = parse_file_reference("  https://Example.com/a.pdf ")
        assert ref.type is ReferenceType.HTTP
        assert ref.host == "example.com"
        assert ref.bucket is None


class TestDropboxCandidates:
    def test_candidate_order(self):
        url = "https://www.dropbox.com/s/abc/notes.pdf?dl=0"
        assert dropbox_candidate_urls(url) == [
            url,
            "https://www.dropbox.com/s/abc/notes.pdf?raw=1",
            "https://dl.dropboxusercontent.com/s/abc/notes.pdf?raw=1",
        ]

    def test_duplicates_removed(self):
        url = "https://www.dropbox.com/s/abc/notes.pdf?raw=1"
        assert dropbox_candidate_urls(url).count(url) == 1


class TestLooksLikePdf:
    def test_header_at_start(self):
        assert looks_like_pdf(PDF_BYTES)

    def test_header_after_junk(self):
        assert looks_like_pdf(b"\x00" * 100 + PDF_BYTES)

    def test_html_is_rejected(self):
        assert not looks_like_pdf(HTML_BYTES)


# ---------------------------------------------------------------------------
# Test: HTTP Fetcher
# ---------------------------------------------------------------------------


class TestHttpPdfFetcher:
    def test_returns_pdf_body(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=PDF_BYTES))
        fetcher = HttpPdfFetcher(timeout=5, transport=transport)

        assert _run(fetcher.fetch(["https://example.com/a.pdf"])) == PDF_BYTES

    def test_html_body_is_rejected(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=HTML_BYTES))
        fetcher = HttpPdfFetcher(timeout=5, transport=transport)

        with pytest.raises(ExtractionError, match="Not a valid PDF"):
            _run(fetcher.fetch(["https://example.com/a.pdf"]))

    def test_falls_back_to_next_candidate(self):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            if "raw=1" in str(request.url):
                return httpx.Response(200, content=PDF_BYTES)
            return httpx.Response(200, content=HTML_BYTES)

        fetcher = HttpPdfFetcher(timeout=5, transport=httpx.MockTransport(handler))
        urls = dropbox_candidate_urls("https://www.dropbox.com/s/abc/notes.pdf?dl=0")

        assert _run(fetcher.fetch(urls)) == PDF_BYTES
        assert len(seen) == 2

    def test_http_error_status(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        fetcher = HttpPdfFetcher(timeout=5, transport=transport)

        with pytest.raises(ExtractionError, match="Failed to download PDF"):
            _run(fetcher.fetch(["https://example.com/missing.pdf"]))

    def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        fetcher = HttpPdfFetcher(timeout=60, transport=httpx.MockTransport(handler))

        with pytest.raises(ExtractionError, match=r"timeout \(60 seconds\)"):
            _run(fetcher.fetch(["https://example.com/slow.pdf"]))


# ---------------------------------------------------------------------------
# Test: R2 Fetcher
# ---------------------------------------------------------------------------


class TestR2PdfFetcher:
    _ref = FileReference(
        raw="r2://study-files/user-1/notes.pdf",
        type=ReferenceType.OBJECT_STORAGE,
        host="study-files",
        key="user-1/notes.pdf",
    )

    def test_downloads_object(self):
        client = MagicMock()
        client.get_object.return_value = {"Body": io.BytesIO(PDF_BYTES)}
        fetcher = R2PdfFetcher(client=client, bucket="configured-bucket")

        assert _run(fetcher.fetch(self._ref)) == PDF_BYTES
        client.get_object.assert_called_once_with(
            Bucket="configured-bucket", Key="user-1/notes.pdf",
        )

    def test_missing_object(self):
        client = MagicMock()
        client.get_object.side_effect = _client_error("NoSuchKey")
        fetcher = R2PdfFetcher(client=client, bucket="b")

        with pytest.raises(ExtractionError, match="R2 file not found or deleted: user-1/notes.pdf"):
            _run(fetcher.fetch(self._ref))

    def test_access_denied(self):
        client = MagicMock()
        client.get_object.side_effect = _client_error("AccessDenied")
        fetcher = R2PdfFetcher(client=client, bucket="b")

        with pytest.raises(ExtractionError, match="R2 access denied"):
            _run(fetcher.fetch(self._ref))

    def test_non_pdf_object(self):
        client = MagicMock()
        client.get_object.return_value = {"Body": io.BytesIO(HTML_BYTES)}
        fetcher = R2PdfFetcher(client=client, bucket="b")

        with pytest.raises(ExtractionError, match="not a valid PDF"):
            _run(fetcher.fetch(self._ref))


# ---------------------------------------------------------------------------
# Test: PdfTextExtractor
# ---------------------------------------------------------------------------


def _document(text: str) -> SimpleNamespace:
    # Only `.text` of a ParsedDocument is read by the extractor
    return SimpleNamespace(text=text, page_count=1)


class TestPdfTextExtractor:
    def test_http_reference(self):
        http = MagicMock()
        http.fetch = AsyncMock(return_value=PDF_BYTES)
        parser = MagicMock(return_value=_document("Cells divide by mitosis."))
        extractor = PdfTextExtractor(http_fetcher=http, r2_fetcher=MagicMock(), parser=parser)

        text = _run(extractor.extract_text("https://example.com/notes.pdf"))

        assert text == "Cells divide by mitosis."
        http.fetch.assert_awaited_once_with(["https://example.com/notes.pdf"])
        parser.assert_called_once_with(PDF_BYTES, "notes.pdf")

    def test_r2_reference_uses_r2_fetcher(self):
        r2 = MagicMock()
        r2.fetch = AsyncMock(return_value=PDF_BYTES)
        parser = MagicMock(return_value=_document("Mitochondria make ATP."))
        extractor = PdfTextExtractor(http_fetcher=MagicMock(), r2_fetcher=r2, parser=parser)

        _run(extractor.extract_text("r2://study-files/user-1/notes.pdf"))

        r2.fetch.assert_awaited_once()
        assert parser.call_args.args[1] == "user-1/notes.pdf"

    def test_empty_text_is_an_error(self):
        http = MagicMock()
        http.fetch = AsyncMock(return_value=PDF_BYTES)
        extractor = PdfTextExtractor(
            http_fetcher=http, r2_fetcher=MagicMock(),
            parser=MagicMock(return_value=_document("   ")),
        )

        with pytest.raises(ExtractionError, match="No text content"):
            _run(extractor.extract_text("https://example.com/scan.pdf"))

    def test_parser_failure_is_wrapped(self):
        http = MagicMock()
        http.fetch = AsyncMock(return_value=PDF_BYTES)
        extractor = PdfTextExtractor(
            http_fetcher=http, r2_fetcher=MagicMock(),
            parser=MagicMock(side_effect=RuntimeError("corrupt xref table")),
        )

        with pytest.raises(ExtractionError, match="Failed to parse PDF: corrupt xref"):
            _run(extractor.extract_text("https://example.com/broken.pdf"))

    def test_invalid_reference_never_fetches(self):
        http = MagicMock()
        http.fetch = AsyncMock()
        extractor = PdfTextExtractor(http_fetcher=http, r2_fetcher=MagicMock(), parser=MagicMock())

        with pytest.raises(InvalidInputError):
            _run(extractor.extract_text("ftp://x"))
        http.fetch.assert_not_called()
