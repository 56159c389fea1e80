import os
import random
import sys
import unittest
from datetime import date
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from receipt_ocr import ReceiptOCR, create_receipt_ocr, generate_mock_result
from vision_clients import ClaudeVisionClient, GeminiVisionClient, GoogleVisionOCRClient, VisionAPIError


class TestReceiptOCR(unittest.TestCase):
    def setUp(self):
        self.generative = MagicMock(spec=GeminiVisionClient)
        self.ocr = MagicMock(spec=GoogleVisionOCRClient)

    def test_generative_path(self):
        self.generative.extract_receipt_reply.return_value = '{"amount": 1200, "merchantName": "スターバックス"}'

        result = ReceiptOCR(self.generative, self.ocr).process_receipt("data:image/png;base64,AAAA")

        self.assertEqual(result.source, "generative")
        self.assertEqual(result.recovery_tier, "direct")
        self.assertEqual(result.extracted_data.amount, 1200)
        self.generative.extract_receipt_reply.assert_called_once_with("AAAA", "image/png")
        self.ocr.extract_text.assert_not_called()

    def test_falls_back_to_ocr_when_generative_fails(self):
        self.generative.extract_receipt_reply.side_effect = VisionAPIError("Gemini API error: 500", 500)
        self.ocr.extract_text.return_value = "セブンイレブン\n合計 ¥450\nお釣り ¥50"

        result = ReceiptOCR(self.generative, self.ocr).process_receipt("AAAA")

        self.assertEqual(result.source, "ocr")
        self.assertEqual(result.extracted_data.amount, 450)
        self.assertEqual(result.extracted_data.confidence, 0.85)
        self.assertEqual(len(result.errors), 1)

    def test_unrecoverable_reply_falls_back_to_ocr(self):
        self.generative.extract_receipt_reply.return_value = "画像を読み取れませんでした"
        self.ocr.extract_text.return_value = "ローソン\n合計 ¥300"

        result = ReceiptOCR(self.generative, self.ocr).process_receipt("AAAA")

        self.assertEqual(result.source, "ocr")
        self.assertEqual(result.extracted_data.amount, 300)

    def test_prefer_generative_false_skips_generative(self):
        self.ocr.extract_text.return_value = "ローソン\n合計 ¥300"

        result = ReceiptOCR(self.generative, self.ocr).process_receipt("AAAA", prefer_generative=False)

        self.assertEqual(result.source, "ocr")
        self.generative.extract_receipt_reply.assert_not_called()

    def test_bytes_are_encoded(self):
        self.generative.extract_receipt_reply.return_value = '{"amount": 100}'
        ReceiptOCR(self.generative).process_receipt(b"abc")
        self.generative.extract_receipt_reply.assert_called_once_with("YWJj", "image/jpeg")

    def test_all_paths_fail_returns_degraded_result(self):
        self.generative.extract_receipt_reply.side_effect = RuntimeError("timeout")
        self.ocr.extract_text.side_effect = VisionAPIError("Vision API error: 500", 500)

        result = ReceiptOCR(self.generative, self.ocr).process_receipt("AAAA")

        self.assertEqual(result.source, "none")
        self.assertEqual(result.extracted_data.confidence, 0.0)
        self.assertIsNone(result.extracted_data.amount)
        self.assertEqual(len(result.errors), 2)

    def test_empty_ocr_text_gives_low_confidence_ocr_result(self):
        self.ocr.extract_text.return_value = "   "

        result = ReceiptOCR(ocr_client=self.ocr, allow_mock=True, rng=random.Random(0)).process_receipt("AAAA")

        self.assertEqual(result.source, "ocr")
        self.assertIsNone(result.extracted_data.amount)
        self.assertEqual(result.extracted_data.confidence, 0.3)
        self.assertIsNone(result.multiple_receipts)

    def test_empty_receipt_list_falls_back_to_ocr(self):
        self.generative.extract_receipt_reply.return_value = '{"receipts": [], "totalCount": 0}'
        self.ocr.extract_text.return_value = "ローソン\n合計 ¥300"

        result = ReceiptOCR(self.generative, self.ocr).process_receipt("AAAA")

        self.assertEqual(result.source, "ocr")
        self.assertEqual(result.extracted_data.amount, 300)
        self.ocr.extract_text.assert_called_once_with("AAAA")

    def test_error_reply_falls_back_to_ocr(self):
        self.generative.extract_receipt_reply.return_value = '{"error": "画像が不鮮明です"}'
        self.ocr.extract_text.return_value = "ローソン\n合計 ¥300"

        result = ReceiptOCR(self.generative, self.ocr).process_receipt("AAAA")

        self.assertEqual(result.source, "ocr")
        self.assertEqual(len(result.errors), 1)

    def test_unconfigured_returns_degraded_result(self):
        result = ReceiptOCR().process_receipt("AAAA")
        self.assertEqual(result.source, "none")
        self.assertEqual(result.to_dict(), {"ocrText": "", "extractedData": {"confidence": 0.0}})

    def test_mock_used_only_when_enabled(self):
        self.ocr.extract_text.side_effect = VisionAPIError("Vision API error: 500", 500)

        result = ReceiptOCR(ocr_client=self.ocr, allow_mock=True, rng=random.Random(0)).process_receipt("AAAA")

        self.assertEqual(result.source, "mock")
        self.assertTrue(3 <= result.total_count <= 8)
        self.assertEqual(len(result.multiple_receipts), result.total_count)
        self.assertEqual(result.extracted_data, result.multiple_receipts[0])

    def test_mock_refused_in_production(self):
        with self.assertRaises(ValueError):
            ReceiptOCR(allow_mock=True, environment="production")

    def test_oversized_payload_not_sent(self):
        result = ReceiptOCR(self.generative, self.ocr, allow_mock=True, max_base64_bytes=10).process_receipt("A" * 20)

        self.assertEqual(result.source, "none")
        self.generative.extract_receipt_reply.assert_not_called()
        self.ocr.extract_text.assert_not_called()

    def test_invalid_image_type(self):
        result = ReceiptOCR(self.generative).process_receipt(None)
        self.assertEqual(result.source, "none")
        self.generative.extract_receipt_reply.assert_not_called()


class TestMockGenerator(unittest.TestCase):
    def test_deterministic_with_seed(self):
        first = generate_mock_result(random.Random(42), today=date(2025, 8, 26))
        second = generate_mock_result(random.Random(42), today=date(2025, 8, 26))
        self.assertEqual(first.to_dict(), second.to_dict())

    def test_receipts_are_plausible(self):
        result = generate_mock_result(random.Random(1), today=date(2025, 8, 26))
        for receipt in result.multiple_receipts:
            self.assertTrue(100 <= receipt.amount < 5100)
            self.assertTrue("2025-07-28" <= receipt.date <= "2025-08-26")
            self.assertTrue(0.9 <= receipt.confidence <= 1.0)
        self.assertIn("--- レシート1 ---", result.ocr_text)


class TestFromConfig(unittest.TestCase):
    def _config(self, **keys):
        config = {
            "environment": "development",
            "generative": {
                "provider": "gemini",
                "gemini_model": "gemini-1.5-flash",
                "gemini_endpoint": "https://example.invalid/models",
                "claude_model": "claude-test",
                "claude_endpoint": "https://example.invalid/messages",
                "max_tokens": 100,
            },
            "ocr": {"endpoint": "https://example.invalid/annotate", "language_hints": ["ja"]},
            "http": {"timeout": 3},
            "limits": {"max_base64_bytes": 1000},
            "mock": {"allow": False},
            "api_keys": {"gemini": None, "google_vision": None, "anthropic": None},
        }
        config["api_keys"].update(keys)
        return config

    def test_gemini_and_vision(self):
        ocr = ReceiptOCR.from_config(self._config(gemini="g", google_vision="v"))
        self.assertIsInstance(ocr.generative_client, GeminiVisionClient)
        self.assertIsInstance(ocr.ocr_client, GoogleVisionOCRClient)
        self.assertEqual(ocr.ocr_client.language_hints, ["ja"])
        self.assertEqual(ocr.max_base64_bytes, 1000)

    def test_claude_provider(self):
        config = self._config(anthropic="sk-ant-x")
        config["generative"]["provider"] = "claude"
        ocr = ReceiptOCR.from_config(config)
        self.assertIsInstance(ocr.generative_client, ClaudeVisionClient)
        self.assertIsNone(ocr.ocr_client)

    def test_no_keys(self):
        ocr = ReceiptOCR.from_config(self._config())
        self.assertIsNone(ocr.generative_client)
        self.assertIsNone(ocr.ocr_client)

    @patch.dict(os.environ, {"OCR_ALLOW_MOCK": "false", "APP_ENV": "development", "GEMINI_API_KEY": "g"})
    def test_create_receipt_ocr_without_config_file(self):
        path = os.path.join(os.path.dirname(__file__), "no_such_config.yml")
        ocr = create_receipt_ocr(path)
        self.assertIsInstance(ocr.generative_client, GeminiVisionClient)
        self.assertFalse(ocr.allow_mock)


if __name__ == "__main__":
    unittest.main()
