#!/usr/bin/env python3
"""
Unit tests for the cancellable streaming download.
"""

import sys
import tempfile
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest

import requests

from stemqueue.core.constants import ErrorCode
from stemqueue.core.error_codes import JobError, OperationCancelled
from stemqueue.core.streaming_fetch import StreamingFetcher, build_video_url


class FakeResponse:
    def __init__(self, chunks, status=200, on_chunk=None, fail_with=None):
        self.chunks = chunks
        self.status_code = status
        self.on_chunk = on_chunk
        self.fail_with = fail_with
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")

    def iter_content(self, chunk_size=1):
        for i, chunk in enumerate(self.chunks):
            if self.closed:
                raise requests.ConnectionError("connection closed")
            yield chunk
            if self.on_chunk:
                self.on_chunk(i)
        if self.fail_with:
            raise self.fail_with

    def close(self):
        self.closed = True


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


def fake_resolver(video_id):
    return f"https://media.example/{video_id}", {"User-Agent": "test"}


class TestStreamingFetcher(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.dest = Path(self.tmpdir.name) / "yt-audio"

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_streams_to_file(self):
        session = FakeSession(FakeResponse([b"abc", b"", b"def"]))
        fetcher = StreamingFetcher(session=session, resolver=fake_resolver)

        result = fetcher.fetch("vid00000001", self.dest)

        self.assertEqual(result, self.dest)
        self.assertEqual(self.dest.read_bytes(), b"abcdef")
        url, kwargs = session.requests[0]
        self.assertEqual(url, "https://media.example/vid00000001")
        self.assertTrue(kwargs["stream"])
        self.assertEqual(kwargs["headers"], {"User-Agent": "test"})
        self.assertTrue(session.response.closed)

    def test_cancel_mid_stream(self):
        fetcher = None

        def cancel_after_first(i):
            if i == 0:
                fetcher.cancel()

        response = FakeResponse([b"a", b"b", b"c"], on_chunk=cancel_after_first)
        fetcher = StreamingFetcher(session=FakeSession(response), resolver=fake_resolver)

        with self.assertRaises(OperationCancelled):
            fetcher.fetch("vid00000001", self.dest)
        self.assertTrue(response.closed)

    def test_transport_error_after_cancel_is_cancellation(self):
        fetcher = None

        def cancel(i):
            fetcher.cancel()

        response = FakeResponse([b"a"], on_chunk=cancel,
                                fail_with=requests.ConnectionError("reset"))
        fetcher = StreamingFetcher(session=FakeSession(response), resolver=fake_resolver)
        with self.assertRaises(OperationCancelled):
            fetcher.fetch("vid00000001", self.dest)

    def test_cancel_before_start(self):
        resolved = []

        def resolver(video_id):
            resolved.append(video_id)
            return fake_resolver(video_id)

        fetcher = StreamingFetcher(session=FakeSession(FakeResponse([b"a"])), resolver=resolver)
        fetcher.cancel()
        with self.assertRaises(OperationCancelled):
            fetcher.fetch("vid00000001", self.dest)
        self.assertEqual(resolved, [])

        fetcher.reset()
        fetcher.fetch("vid00000001", self.dest)
        self.assertEqual(self.dest.read_bytes(), b"a")

    def test_http_error(self):
        fetcher = StreamingFetcher(session=FakeSession(FakeResponse([], status=403)),
                                   resolver=fake_resolver)
        with self.assertRaises(JobError) as ctx:
            fetcher.fetch("vid00000001", self.dest)
        self.assertEqual(ctx.exception.code, ErrorCode.DOWNLOAD_FAILED)

    def test_network_error(self):
        fetcher = StreamingFetcher(session=FakeSession(error=requests.ConnectionError("dns")),
                                   resolver=fake_resolver)
        with self.assertRaises(JobError) as ctx:
            fetcher.fetch("vid00000001", self.dest)
        self.assertEqual(ctx.exception.code, ErrorCode.DOWNLOAD_FAILED)
        self.assertNotIsInstance(ctx.exception, OperationCancelled)

    def test_build_video_url(self):
        self.assertEqual(build_video_url("dQw4w9WgXcQ"),
                         "https://www.youtube.com/watch?v=dQw4w9WgXcQ")
        self.assertEqual(build_video_url("https://example.com/x"), "https://example.com/x")


if __name__ == "__main__":
    unittest.main()
