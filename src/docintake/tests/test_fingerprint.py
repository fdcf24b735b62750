"""
Tests for Content Fingerprinting
================================
"""

import hashlib

import pytest

from ..fingerprint import compute_fingerprint, fingerprint_file


class TestComputeFingerprint:

    def test_is_sha256_hex(self, sample_pdf_content):
        fingerprint = compute_fingerprint(sample_pdf_content)

        assert fingerprint == hashlib.sha256(sample_pdf_content).hexdigest()
        assert len(fingerprint) == 64
        assert fingerprint == fingerprint.lower()

    def test_stable_across_calls(self, sample_pdf_content):
        assert compute_fingerprint(sample_pdf_content) == compute_fingerprint(bytes(sample_pdf_content))

    def test_single_byte_change_differs(self, sample_pdf_content):
        changed = sample_pdf_content[:-1] + b"X"
        assert compute_fingerprint(changed) != compute_fingerprint(sample_pdf_content)

    def test_empty_input(self):
        assert compute_fingerprint(b"") == hashlib.sha256(b"").hexdigest()


class TestFingerprintFile:

    @pytest.mark.asyncio
    async def test_matches_in_memory_fingerprint(self, tmp_path, sample_pdf_content):
        path = tmp_path / "invoice.pdf"
        path.write_bytes(sample_pdf_content * 100)

        fingerprint = await fingerprint_file(path, chunk_size=64)

        assert fingerprint == compute_fingerprint(sample_pdf_content * 100)
