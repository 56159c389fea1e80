#!/usr/bin/env python
"""
緊急抽出システム
JSONとして解釈できなかった返答テキストから、正規表現だけで最低限の情報を拾う
"""

import re
from typing import Optional, Tuple

from field_extractors import extract_date, match_category
from ocr_models import ExtractedData
from receipt_text_parser import build_description

EMERGENCY_MAX_AMOUNT = 100_000
BASE_CONFIDENCE = 0.3
MAX_CONFIDENCE = 0.9


class EmergencyReceiptExtractor:
    """緊急抽出クラス（行分割・正規化なしでテキスト全体を走査）"""

    def __init__(self):
        self.amount_patterns = self._load_amount_patterns()
        self.vendor_patterns = self._load_vendor_patterns()
        self.store_suffix_pattern = re.compile(r"([^\s\"'{}\[\]:,]{2,20}(?:店|ストア|商店|マート))")
        self.json_merchant_pattern = re.compile(r"[\"']?merchantName[\"']?\s*:\s*[\"']([^\"'\n]{1,40})[\"']")
        self.json_date_pattern = re.compile(r"[\"']?date[\"']?\s*:\s*[\"']([^\"'\n]{6,20})[\"']")

    def extract(self, text: str) -> Optional[ExtractedData]:
        """テキストから金額・店舗名・日付を抽出

        Args:
            text: 生の返答テキスト（またはOCRテキスト）

        Returns:
            ExtractedData: 何も見つからなければNone
        """
        if not text or not text.strip():
            return None

        amount = self._extract_amount(text)
        merchant_name = self._extract_merchant(text)
        date = self._extract_date(text)

        if amount is None and merchant_name is None and date is None:
            return None

        return ExtractedData(
            amount=amount,
            description=build_description(merchant_name),
            date=date,
            merchant_name=merchant_name,
            category=match_category(text),
            confidence=self._calculate_confidence(amount, merchant_name, date),
        )

    def _extract_amount(self, text: str) -> Optional[int]:
        for pattern in self.amount_patterns:
            for match in pattern.finditer(text):
                amount_str = match.group(1).replace(",", "").replace(" ", "")
                if not amount_str.isdigit():
                    continue
                amount = int(amount_str)
                # 妥当な金額範囲かチェック（1円～10万円）
                if 0 < amount <= EMERGENCY_MAX_AMOUNT:
                    return amount
        return None

    def _extract_merchant(self, text: str) -> Optional[str]:
        match = self.json_merchant_pattern.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip()

        for pattern, normalized_name in self.vendor_patterns:
            if pattern.search(text):
                return normalized_name

        match = self.store_suffix_pattern.search(text)
        if match:
            return match.group(1)
        return None

    def _extract_date(self, text: str) -> Optional[str]:
        match = self.json_date_pattern.search(text)
        if match:
            date = extract_date([match.group(1)])
            if date:
                return date
        return extract_date(text.splitlines())

    def _calculate_confidence(self, amount: Optional[int], merchant_name: Optional[str], date: Optional[str]) -> float:
        score = BASE_CONFIDENCE
        if amount is not None:
            score += 0.3
        if merchant_name:
            score += 0.2
        if date:
            score += 0.1
        return round(min(MAX_CONFIDENCE, score), 2)

    def _load_amount_patterns(self) -> Tuple[re.Pattern, ...]:
        patterns = [
            r"[\"']?amount[\"']?\s*:\s*[\"']?\s*¥?\s*([0-9,]+)",
            r"(?:税込)?合計[^0-9¥\n]{0,10}¥?\s*([0-9,]+)",
            r"(?:総額|お支払い?|お会計)[^0-9¥\n]{0,10}¥?\s*([0-9,]+)",
            r"(?<![a-z])total(?!count)[^0-9¥\n]{0,10}¥?\s*([0-9,]+)",
            r"[¥￥]\s*([0-9,]+)",
            r"([0-9,]+)\s*円",
            r"([0-9,]+)\s*(?:JPY|yen)",
        ]
        return tuple(re.compile(p, re.IGNORECASE) for p in patterns)

    def _load_vendor_patterns(self) -> Tuple[Tuple[re.Pattern, str], ...]:
        # 一般的な店舗名の正規化
        patterns = {
            r"セブン[イー]*レブン|7[・-]*eleven": "セブン-イレブン",
            r"ファミリー[マー]*ト|familymart": "ファミリーマート",
            r"ローソン|lawson": "ローソン",
            r"ミニストップ|ministop": "ミニストップ",
            r"マクドナルド|McDonald": "マクドナルド",
            r"スターバックス|Starbucks|スタバ": "スターバックス",
            r"ドトール|DOUTOR": "ドトールコーヒー",
            r"コメダ珈琲|Komeda": "コメダ珈琲店",
            r"すき家|sukiya": "すき家",
            r"吉野家|yoshinoya": "吉野家",
            r"イオン|AEON": "イオン",
            r"西友|SEIYU": "西友",
        }
        return tuple((re.compile(p, re.IGNORECASE), name) for p, name in patterns.items())


def emergency_extract(text: str) -> Optional[ExtractedData]:
    return EmergencyReceiptExtractor().extract(text)
