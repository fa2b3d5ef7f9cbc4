"""
Tests for the Gemini REST client and response helpers.

HTTP is served by httpx.MockTransport; nothing leaves the process.
"""

import json
import os
import sys
import unittest

import httpx

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from helpers import PNG_BASE64, PNG_DATA_URI, image_response, text_response
from src.generation.gemini import (
    GeminiClient,
    GeminiConfigError,
    GeminiError,
    GeminiQuotaError,
    GeminiTimeoutError,
    extract_image,
    extract_text,
    image_part,
    parse_retry_delay,
)
from src.types.generation import InputImage

QUOTA_BODY = {
    "error": {
        "code": 429,
        "message": "Resource has been exhausted",
        "status": "RESOURCE_EXHAUSTED",
        "details": [
            {"@type": "type.googleapis.com/google.rpc.QuotaFailure", "violations": []},
            {"@type": "type.googleapis.com/google.rpc.RetryInfo", "retryDelay": "30s"},
        ],
    }
}


def client_for(handler) -> GeminiClient:
    return GeminiClient("test-key", base_url="https://gemini.test/v1beta", transport=httpx.MockTransport(handler))


class TestGeminiClient(unittest.IsolatedAsyncioTestCase):

    async def test_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=image_response())

        client = client_for(handler)
        response = await client.generate_content(
            "gemini-2.5-flash-image-preview",
            [{"text": "a cat"}],
            {"temperature": 0.8},
        )

        self.assertEqual(
            seen["url"],
            "https://gemini.test/v1beta/models/gemini-2.5-flash-image-preview:generateContent",
        )
        self.assertEqual(seen["key"], "test-key")
        self.assertEqual(seen["body"]["contents"], [{"parts": [{"text": "a cat"}]}])
        self.assertEqual(seen["body"]["generationConfig"], {"temperature": 0.8})
        self.assertEqual(extract_image(response), PNG_DATA_URI)

    async def test_api_key_is_not_in_url(self):
        def handler(request: httpx.Request) -> httpx.Response:
            self.assertNotIn("key=", str(request.url))
            return httpx.Response(200, json=text_response("ok"))

        await client_for(handler).generate_content("gemini-2.5-flash", [{"text": "hi"}])

    async def test_quota_error_carries_retry_delay(self):
        client = client_for(lambda request: httpx.Response(429, json=QUOTA_BODY))

        with self.assertRaises(GeminiQuotaError) as ctx:
            await client.generate_content("gemini-2.5-flash", [{"text": "hi"}])

        self.assertEqual(ctx.exception.retry_delay, "30s")
        self.assertEqual(ctx.exception.status_code, 429)

    async def test_quota_error_without_body(self):
        client = client_for(lambda request: httpx.Response(429))
        with self.assertRaises(GeminiQuotaError) as ctx:
            await client.generate_content("gemini-2.5-flash", [{"text": "hi"}])
        self.assertIsNone(ctx.exception.retry_delay)

    async def test_server_error(self):
        body = {"error": {"code": 500, "message": "Internal error"}}
        client = client_for(lambda request: httpx.Response(500, json=body))

        with self.assertRaises(GeminiError) as ctx:
            await client.generate_content("gemini-2.5-flash", [{"text": "hi"}])

        self.assertNotIsInstance(ctx.exception, GeminiQuotaError)
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertIn("Internal error", ctx.exception.message)

    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with self.assertRaises(GeminiTimeoutError):
            await client_for(handler).generate_content("gemini-2.5-flash", [{"text": "hi"}])

    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with self.assertRaises(GeminiError):
            await client_for(handler).generate_content("gemini-2.5-flash", [{"text": "hi"}])

    async def test_non_json_success(self):
        client = client_for(lambda request: httpx.Response(200, text="<html>"))
        with self.assertRaises(GeminiError):
            await client.generate_content("gemini-2.5-flash", [{"text": "hi"}])

    async def test_missing_api_key(self):
        client = GeminiClient(None)
        self.assertFalse(client.is_configured)
        with self.assertRaises(GeminiConfigError):
            await client.generate_content("gemini-2.5-flash", [{"text": "hi"}])


class TestResponseHelpers(unittest.TestCase):

    def test_parse_retry_delay(self):
        self.assertEqual(parse_retry_delay(QUOTA_BODY), "30s")
        self.assertIsNone(parse_retry_delay({"error": {"details": []}}))
        self.assertIsNone(parse_retry_delay(None))

    def test_extract_image_without_image(self):
        self.assertIsNone(extract_image(text_response("sorry")))
        self.assertIsNone(extract_image({}))

    def test_extract_image_keeps_mime_type(self):
        uri = extract_image(image_response(mime_type="image/jpeg"))
        self.assertEqual(uri, f"data:image/jpeg;base64,{PNG_BASE64}")

    def test_extract_text_joins_parts(self):
        response = {"candidates": [{"content": {"parts": [{"text": "a "}, {"text": "cat"}]}}]}
        self.assertEqual(extract_text(response), "a cat")
        self.assertIsNone(extract_text({"candidates": []}))

    def test_extract_image_from_later_candidate(self):
        response = {
            "candidates": [
                "unexpected",
                {"content": None},
                {"content": {"parts": [{"text": "I can't draw that"}]}},
                image_response()["candidates"][0],
            ]
        }
        self.assertEqual(extract_image(response), PNG_DATA_URI)

    def test_extract_text_skips_malformed_candidates(self):
        response = {"candidates": [None, {"content": {"parts": []}}, {"content": {"parts": [{"text": "a dog"}]}}]}
        self.assertEqual(extract_text(response), "a dog")

    def test_image_part_strips_data_uri_header(self):
        part = image_part(InputImage(data=f"data:image/webp;base64,{PNG_BASE64}"))
        self.assertEqual(part, {"inlineData": {"mimeType": "image/webp", "data": PNG_BASE64}})

    def test_image_part_raw_base64(self):
        part = image_part(InputImage(data=PNG_BASE64, mime_type="image/jpeg"))
        self.assertEqual(part["inlineData"]["mimeType"], "image/jpeg")


if __name__ == "__main__":
    unittest.main()
