import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


# 金額の上限（これ以上は誤認識とみなす）
MAX_AMOUNT = 10_000_000
DEFAULT_CATEGORY = "雑費"
DEFAULT_REPLY_CONFIDENCE = 0.9


class ReceiptType(Enum):
    CONVENIENCE = "convenience"
    SUPERMARKET = "supermarket"
    RESTAURANT = "restaurant"
    PHARMACY = "pharmacy"
    GAS_STATION = "gas_station"
    RETAIL = "retail"
    UNKNOWN = "unknown"


class AmountTier(Enum):
    """金額パターンの優先度（定義順 = 優先順）"""
    VENDOR = "vendor"
    FINAL_TOTAL = "finalTotal"
    SPECIFIC = "specific"
    TOTAL = "total"
    SUBTOTAL = "subtotal"
    FALLBACK = "fallback"


TIER_PRIORITY = list(AmountTier)

# この層でマッチしたら即確定
SHORT_CIRCUIT_TIERS = frozenset({AmountTier.VENDOR, AmountTier.FINAL_TOTAL, AmountTier.SPECIFIC})


def is_valid_amount(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and 0 < value < MAX_AMOUNT


def coerce_amount(value: Any) -> Optional[int]:
    """"1,200" / "¥1,200" / 1200.0 などを整数金額に変換。範囲外はNone"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        cleaned = re.sub(r"[¥￥,，円\s]", "", value)
        if not re.fullmatch(r"\d+(?:\.\d+)?", cleaned):
            return None
        value = float(cleaned)
    if not is_valid_amount(value):
        return None
    return int(round(value))


def clamp_confidence(value: Any, default: Optional[float] = None) -> Optional[float]:
    try:
        conf = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(conf):
        return default
    return max(0.0, min(1.0, conf))


@dataclass(frozen=True)
class ExtractedData:
    amount: Optional[int] = None
    description: Optional[str] = None
    date: Optional[str] = None
    merchant_name: Optional[str] = None
    category: Optional[str] = None
    confidence: Optional[float] = None

    def __post_init__(self):
        if self.amount is not None and not is_valid_amount(self.amount):
            raise ValueError(f"amount out of range: {self.amount}")
        if self.confidence is not None and not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence out of range: {self.confidence}")

    def to_dict(self) -> Dict[str, Any]:
        """呼び出し側（アップロード処理）向けのキー名で出力"""
        data = {
            "amount": self.amount,
            "description": self.description,
            "date": self.date,
            "merchantName": self.merchant_name,
            "category": self.category,
            "confidence": self.confidence,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class AmountCandidate:
    amount: int
    source_tier: AmountTier
    matched_line: str
    pattern: str


@dataclass(frozen=True)
class SingleReceiptReply:
    receipt: Dict[str, Any]
    ocr_text: Optional[str] = None


@dataclass(frozen=True)
class MultiReceiptReply:
    receipts: List[Dict[str, Any]]
    total_count: int
    ocr_text: Optional[str] = None


ReceiptReply = Union[SingleReceiptReply, MultiReceiptReply]


def classify_reply(payload: Dict[str, Any]) -> ReceiptReply:
    """receiptsフィールドの有無で単票/複数票を判別"""
    ocr_text = payload.get("ocrText") if isinstance(payload.get("ocrText"), str) else None
    receipts = payload.get("receipts")
    if isinstance(receipts, list):
        entries = [r for r in receipts if isinstance(r, dict)]
        if entries:
            total = payload.get("totalCount")
            if isinstance(total, bool) or not isinstance(total, int) or total <= 0:
                total = len(entries)
            return MultiReceiptReply(receipts=entries, total_count=total, ocr_text=ocr_text)
    return SingleReceiptReply(receipt=payload, ocr_text=ocr_text)


@dataclass
class OCRResult:
    ocr_text: str
    extracted_data: ExtractedData
    multiple_receipts: Optional[List[ExtractedData]] = None
    total_count: Optional[int] = None
    source: str = "none"  # generative|ocr|mock|none
    recovery_tier: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "ocrText": self.ocr_text,
            "extractedData": self.extracted_data.to_dict(),
        }
        if self.multiple_receipts is not None:
            data["multipleReceipts"] = [r.to_dict() for r in self.multiple_receipts]
            data["totalCount"] = self.total_count
        return data
