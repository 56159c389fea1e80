"""
画像解析APIクライアント
- Gemini / Claude: レシート画像を直接解析させ、JSON形式の返答テキストを得る
- Google Vision: 画像からOCRテキストのみを取得する
"""

import base64
import re
from typing import Any, Dict, List, Optional, Tuple, Union

import requests

DATA_URI_PREFIX = re.compile(r"^data:(image/[\w.+-]+);base64,")
DEFAULT_MIME_TYPE = "image/jpeg"

RECEIPT_PROMPT = """この画像のレシートを分析してください。必ず以下のJSON形式で回答してください：

{
  "receipts": [
    {
      "amount": 合計金額（数値のみ）,
      "description": "店舗名での購入",
      "date": "YYYY-MM-DD",
      "merchantName": "店舗名",
      "category": "食費",
      "confidence": 0.9
    }
  ],
  "totalCount": 1,
  "ocrText": "読み取ったテキスト全文"
}

重要な指示：
- 回答は必ずJSON形式のみ
- 説明文や markdown記法は一切使用しない
- 合計金額は税込みの最終価格を使用
- 日付が読み取れない場合は date を省略
- 日本語のレシートです"""


class VisionAPIError(RuntimeError):
    """外部APIの呼び出し失敗"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def strip_data_uri(image: str) -> Tuple[str, str]:
    """data URIの接頭辞を除去し (base64本体, MIMEタイプ) を返す"""
    match = DATA_URI_PREFIX.match(image)
    if match:
        return image[match.end():], match.group(1)
    return image.strip(), DEFAULT_MIME_TYPE


def encode_image(image: Union[str, bytes]) -> Tuple[str, str]:
    if isinstance(image, (bytes, bytearray)):
        return base64.b64encode(bytes(image)).decode("ascii"), DEFAULT_MIME_TYPE
    if isinstance(image, str):
        return strip_data_uri(image)
    raise TypeError(f"unsupported image type: {type(image).__name__}")


def _check_response(response: requests.Response, service: str):
    status = response.status_code
    if status in (401, 403):
        raise VisionAPIError(f"{service}認証エラー: APIキーが無効か、APIが有効化されていません ({status})", status)
    if status >= 400:
        raise VisionAPIError(f"{service} error: {status} - {response.text[:200]}", status)


class GeminiVisionClient:
    """Gemini generateContent クライアント"""

    def __init__(self, api_key: str, model: str = "gemini-1.5-flash",
                 endpoint: str = "https://generativelanguage.googleapis.com/v1beta/models",
                 timeout: float = 30):
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout

    def extract_receipt_reply(self, image_base64: str, mime_type: str = DEFAULT_MIME_TYPE) -> str:
        url = f"{self.endpoint}/{self.model}:generateContent"
        data = {
            "contents": [{
                "parts": [
                    {"text": RECEIPT_PROMPT},
                    {"inlineData": {"mimeType": mime_type, "data": image_base64}},
                ]
            }]
        }
        response = requests.post(url, params={"key": self.api_key}, json=data, timeout=self.timeout)
        _check_response(response, "Gemini API")

        result = response.json()
        try:
            text = result["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            text = None
        if not text:
            raise VisionAPIError("No response from Gemini API")
        return text


class ClaudeVisionClient:
    """Claude Messages API クライアント（画像入力）"""

    def __init__(self, api_key: str, model: str = "claude-3-5-sonnet-20241022",
                 endpoint: str = "https://api.anthropic.com/v1/messages",
                 timeout: float = 30, max_tokens: int = 2000):
        self.base_url = endpoint
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.headers = {
            "x-api-key": api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json"
        }

    def extract_receipt_reply(self, image_base64: str, mime_type: str = DEFAULT_MIME_TYPE) -> str:
        data = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": 0.1,
            "messages": [{
                "role": "user",
                "content": [
                    {"type": "image", "source": {"type": "base64", "media_type": mime_type, "data": image_base64}},
                    {"type": "text", "text": RECEIPT_PROMPT},
                ],
            }],
        }
        response = requests.post(self.base_url, headers=self.headers, json=data, timeout=self.timeout)
        _check_response(response, "Claude API")

        blocks = response.json().get("content") or []
        text = "".join(b.get("text", "") for b in blocks if isinstance(b, dict) and b.get("type") == "text")
        if not text:
            raise VisionAPIError("No response from Claude API")
        return text


class GoogleVisionOCRClient:
    """Google Cloud Vision images:annotate クライアント"""

    def __init__(self, api_key: str, endpoint: str = "https://vision.googleapis.com/v1/images:annotate",
                 timeout: float = 30, language_hints: Optional[List[str]] = None):
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self.language_hints = language_hints or ["ja", "en"]

    def _build_request(self, image_base64: str) -> Dict[str, Any]:
        return {
            "requests": [{
                "image": {"content": image_base64},
                "features": [
                    {"type": "DOCUMENT_TEXT_DETECTION", "maxResults": 1},
                    {"type": "TEXT_DETECTION", "maxResults": 1},
                ],
                "imageContext": {
                    "languageHints": self.language_hints,
                    "textDetectionParams": {"enableTextDetectionConfidenceScore": True},
                },
            }]
        }

    def extract_text(self, image_base64: str) -> str:
        """OCRテキストを返す（文書検出の結果を優先、無ければテキスト検出）"""
        response = requests.post(self.endpoint, params={"key": self.api_key},
                                 json=self._build_request(image_base64), timeout=self.timeout)
        _check_response(response, "Vision API")

        responses = response.json().get("responses") or [{}]
        first = responses[0] or {}
        if first.get("error"):
            raise VisionAPIError(f"Vision API error: {first['error'].get('message', 'unknown')}")

        document_text = (first.get("fullTextAnnotation") or {}).get("text")
        if document_text and document_text.strip():
            return document_text

        annotations = first.get("textAnnotations") or []
        if annotations:
            return annotations[0].get("description") or ""
        return ""
