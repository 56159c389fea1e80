"""
生成AIの返答テキストからレシートJSONを復元する
direct → repaired → emergency の順に試し、最初に成功した結果を採用する
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from emergency_extractor import emergency_extract
from field_extractors import extract_date
from ocr_models import (
    DEFAULT_CATEGORY,
    DEFAULT_REPLY_CONFIDENCE,
    ExtractedData,
    MultiReceiptReply,
    clamp_confidence,
    classify_reply,
    coerce_amount,
)
from receipt_text_parser import build_description


class StructuredReplyError(ValueError):
    """全ての復元手段が失敗した"""


_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")
_CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F]")
_FULLWIDTH_PUNCT = str.maketrans({
    "｛": "{", "｝": "}", "［": "[", "］": "]",
    "：": ":", "，": ",", "＂": '"', "“": '"', "”": '"',
})
_QUOTED_INTEGER = re.compile(r'("(?:amount|totalCount)"\s*:\s*)"([1-9]\d{0,2}(?:,\d{3})+|[1-9]\d*)"')
_JSON_STRING = re.compile(r'("(?:[^"\\]|\\.)*")')


def _first_object_span(text: str) -> Optional[str]:
    """最初のトップレベル {...} を括弧の対応で切り出す"""
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    # 閉じ括弧が無い場合は末尾まで
    return text[start:]


def extract_json_block(text: str) -> str:
    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        return fenced.group(1).strip()
    span = _first_object_span(text.translate(_FULLWIDTH_PUNCT))
    if span:
        return span.strip()
    return text.strip()


def _prepare(text: str) -> str:
    block = extract_json_block(text).translate(_FULLWIDTH_PUNCT)
    block = _CONTROL_CHARS.sub("", block)
    # "amount": "1,200" → "amount": 1200
    return _QUOTED_INTEGER.sub(lambda m: m.group(1) + m.group(2).replace(",", ""), block)


def _load_object(text: str) -> Dict[str, Any]:
    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise ValueError(f"JSON object expected, got {type(payload).__name__}")
    return payload


def parse_direct(text: str) -> Dict[str, Any]:
    return _load_object(_prepare(text))


def _repair_structure(segment: str) -> str:
    segment = re.sub(r",\s*([}\]])", r"\1", segment)           # 末尾カンマ
    segment = re.sub(r"\s+", " ", segment)
    segment = re.sub(r"'([^'\"]+?)'\s*:", r'"\1":', segment)    # 'key':
    segment = re.sub(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:", r'\1"\2":', segment)  # key:
    segment = re.sub(r":\s*'([^'\"]*)'", r': "\1"', segment)    # : 'value'
    return segment


def repair_json_text(text: str) -> str:
    """文字列リテラルの外側だけを修復する（奇数番目が "..." の中身）"""
    parts = _JSON_STRING.split(text)
    return "".join(part if i % 2 else _repair_structure(part) for i, part in enumerate(parts))


def parse_repaired(text: str) -> Dict[str, Any]:
    return _load_object(repair_json_text(_prepare(text)))


JSON_STRATEGIES: Tuple[Tuple[str, Callable[[str], Dict[str, Any]]], ...] = (
    ("direct", parse_direct),
    ("repaired", parse_repaired),
)


@dataclass
class RecoveryOutcome:
    tier: str  # direct|repaired|emergency
    extracted_data: ExtractedData
    ocr_text: str
    multiple_receipts: Optional[List[ExtractedData]] = None
    total_count: Optional[int] = None


def reply_entry_to_data(entry: Dict[str, Any]) -> ExtractedData:
    """返答1件分を検証しつつExtractedDataに変換（範囲外の値は捨てる）"""
    merchant = _as_text(entry.get("merchantName") or entry.get("merchant_name"))
    raw_date = _as_text(entry.get("date"))
    return ExtractedData(
        amount=coerce_amount(entry.get("amount")),
        description=_as_text(entry.get("description")) or build_description(merchant),
        date=extract_date([raw_date]) if raw_date else None,
        merchant_name=merchant,
        category=_as_text(entry.get("category")) or DEFAULT_CATEGORY,
        confidence=clamp_confidence(entry.get("confidence"), DEFAULT_REPLY_CONFIDENCE),
    )


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def has_receipt_fields(data: ExtractedData) -> bool:
    return data.amount is not None or data.merchant_name is not None or data.date is not None


def _outcome_from_payload(tier: str, payload: Dict[str, Any], raw_text: str) -> RecoveryOutcome:
    """
    Raises:
        StructuredReplyError: 金額・店舗名・日付のいずれも含まない返答
    """
    reply = classify_reply(payload)
    ocr_text = reply.ocr_text or raw_text
    if isinstance(reply, MultiReceiptReply):
        parsed = [reply_entry_to_data(r) for r in reply.receipts]
        receipts = [r for r in parsed if has_receipt_fields(r)]
        if not receipts:
            raise StructuredReplyError("返答にレシート情報が含まれていません")
        total_count = reply.total_count if len(receipts) == len(parsed) else len(receipts)
        print(f"  📄 {total_count}枚のレシートを検出")
        return RecoveryOutcome(
            tier=tier,
            extracted_data=receipts[0],
            ocr_text=ocr_text,
            multiple_receipts=receipts,
            total_count=total_count,
        )

    data = reply_entry_to_data(reply.receipt)
    if not has_receipt_fields(data):
        raise StructuredReplyError("返答にレシート情報が含まれていません")
    return RecoveryOutcome(tier=tier, extracted_data=data, ocr_text=ocr_text)


def recover_reply(text: str) -> RecoveryOutcome:
    """返答テキストを構造化データに変換

    Raises:
        StructuredReplyError: JSON解析も緊急抽出も失敗した場合、
            またはJSONは読めたがレシート情報が空の場合
    """
    for tier, strategy in JSON_STRATEGIES:
        try:
            payload = strategy(text)
        except ValueError as e:
            print(f"  ⚠️ JSON解析失敗 ({tier}): {e}")
            continue
        return _outcome_from_payload(tier, payload, text)

    print("  🔁 JSON解析を断念、緊急抽出に切り替え")
    data = emergency_extract(text)
    if data is None:
        raise StructuredReplyError("返答から情報を抽出できませんでした")
    return RecoveryOutcome(tier="emergency", extracted_data=data, ocr_text=text)
