import os
import sys
import unittest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from vision_clients import (
    ClaudeVisionClient,
    GeminiVisionClient,
    GoogleVisionOCRClient,
    VisionAPIError,
    encode_image,
    strip_data_uri,
)


def _response(status_code=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    response.text = text
    return response


class TestImageEncoding(unittest.TestCase):
    def test_strip_data_uri(self):
        self.assertEqual(strip_data_uri("data:image/png;base64,AAAA"), ("AAAA", "image/png"))
        self.assertEqual(strip_data_uri("AAAA"), ("AAAA", "image/jpeg"))
        self.assertEqual(strip_data_uri("data:image/svg+xml;base64,AAAA"), ("AAAA", "image/svg+xml"))
        self.assertEqual(strip_data_uri("data:image/vnd.microsoft.icon;base64,AAAA"), ("AAAA", "image/vnd.microsoft.icon"))

    def test_bytes_are_base64_encoded(self):
        self.assertEqual(encode_image(b"abc"), ("YWJj", "image/jpeg"))

    def test_unsupported_type(self):
        with self.assertRaises(TypeError):
            encode_image(123)


class TestGeminiVisionClient(unittest.TestCase):
    def setUp(self):
        self.client = GeminiVisionClient("test_key", timeout=5)

    @patch('vision_clients.requests.post')
    def test_returns_reply_text(self, mock_post):
        mock_post.return_value = _response(payload={
            "candidates": [{"content": {"parts": [{"text": '{"amount": 450}'}]}}]
        })

        reply = self.client.extract_receipt_reply("AAAA", "image/png")

        self.assertEqual(reply, '{"amount": 450}')
        args, kwargs = mock_post.call_args
        self.assertTrue(args[0].endswith("/gemini-1.5-flash:generateContent"))
        self.assertEqual(kwargs["params"], {"key": "test_key"})
        self.assertEqual(kwargs["timeout"], 5)
        inline = kwargs["json"]["contents"][0]["parts"][1]["inlineData"]
        self.assertEqual(inline, {"mimeType": "image/png", "data": "AAAA"})

    @patch('vision_clients.requests.post')
    def test_empty_candidates_raise(self, mock_post):
        mock_post.return_value = _response(payload={"candidates": []})
        with self.assertRaises(VisionAPIError):
            self.client.extract_receipt_reply("AAAA")

    @patch('vision_clients.requests.post')
    def test_server_error_raises_with_status(self, mock_post):
        mock_post.return_value = _response(status_code=500, text="internal")
        with self.assertRaises(VisionAPIError) as ctx:
            self.client.extract_receipt_reply("AAAA")
        self.assertEqual(ctx.exception.status_code, 500)


class TestClaudeVisionClient(unittest.TestCase):
    @patch('vision_clients.requests.post')
    def test_returns_text_blocks(self, mock_post):
        mock_post.return_value = _response(payload={
            "content": [{"type": "text", "text": '{"amount": '}, {"type": "text", "text": "980}"}]
        })
        client = ClaudeVisionClient("sk-ant-test")

        reply = client.extract_receipt_reply("AAAA")

        self.assertEqual(reply, '{"amount": 980}')
        kwargs = mock_post.call_args[1]
        self.assertEqual(kwargs["headers"]["x-api-key"], "sk-ant-test")
        image_block = kwargs["json"]["messages"][0]["content"][0]
        self.assertEqual(image_block["source"]["data"], "AAAA")

    @patch('vision_clients.requests.post')
    def test_auth_error(self, mock_post):
        mock_post.return_value = _response(status_code=401)
        with self.assertRaises(VisionAPIError) as ctx:
            ClaudeVisionClient("bad").extract_receipt_reply("AAAA")
        self.assertIn("認証エラー", str(ctx.exception))


class TestGoogleVisionOCRClient(unittest.TestCase):
    def setUp(self):
        self.client = GoogleVisionOCRClient("test_key")

    @patch('vision_clients.requests.post')
    def test_prefers_document_text(self, mock_post):
        mock_post.return_value = _response(payload={"responses": [{
            "fullTextAnnotation": {"text": "ローソン\n合計 ¥300"},
            "textAnnotations": [{"description": "fallback"}],
        }]})

        self.assertEqual(self.client.extract_text("AAAA"), "ローソン\n合計 ¥300")
        request = mock_post.call_args[1]["json"]["requests"][0]
        self.assertEqual(request["imageContext"]["languageHints"], ["ja", "en"])
        self.assertEqual([f["type"] for f in request["features"]], ["DOCUMENT_TEXT_DETECTION", "TEXT_DETECTION"])

    @patch('vision_clients.requests.post')
    def test_falls_back_to_text_annotations(self, mock_post):
        mock_post.return_value = _response(payload={"responses": [{
            "textAnnotations": [{"description": "合計 ¥300"}],
        }]})
        self.assertEqual(self.client.extract_text("AAAA"), "合計 ¥300")

    @patch('vision_clients.requests.post')
    def test_no_text(self, mock_post):
        mock_post.return_value = _response(payload={"responses": [{}]})
        self.assertEqual(self.client.extract_text("AAAA"), "")

    @patch('vision_clients.requests.post')
    def test_forbidden_is_auth_error(self, mock_post):
        mock_post.return_value = _response(status_code=403)
        with self.assertRaises(VisionAPIError) as ctx:
            self.client.extract_text("AAAA")
        self.assertEqual(ctx.exception.status_code, 403)
        self.assertIn("Vision API認証エラー", str(ctx.exception))

    @patch('vision_clients.requests.post')
    def test_embedded_error_raises(self, mock_post):
        mock_post.return_value = _response(payload={"responses": [{"error": {"message": "Bad image data"}}]})
        with self.assertRaises(VisionAPIError):
            self.client.extract_text("AAAA")


if __name__ == "__main__":
    unittest.main()
