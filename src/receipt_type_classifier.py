import re
from typing import List, Optional, Tuple

from rapidfuzz.distance import JaroWinkler

from ocr_models import ReceiptType

# 判定順に評価する（最初にマッチしたタイプを採用）
RECEIPT_TYPE_KEYWORDS: Tuple[Tuple[ReceiptType, re.Pattern], ...] = (
    (ReceiptType.CONVENIENCE, re.compile(r"セブン|ローソン|ファミリーマート|ファミマ|サークルk|ミニストップ")),
    (ReceiptType.SUPERMARKET, re.compile(r"イオン|西友|ライフ|マックスバリュ|業務スーパー|食品|野菜|肉|魚")),
    (ReceiptType.RESTAURANT, re.compile(
        r"レストラン|カフェ|食事|飲み物|ドリンク|料理|テーブル|スターバックス|starbucks|スタバ|コーヒー|latte|americano"
    )),
    (ReceiptType.PHARMACY, re.compile(r"ドラッグ|薬局|処方箋|医薬品|サプリ|化粧品")),
    (ReceiptType.GAS_STATION, re.compile(r"ガソリン|給油|燃料|\bss\b|エネオス|eneos|出光|コスモ")),
    (ReceiptType.RETAIL, re.compile(r"店|支店|本店|営業所")),
)

# OCRで崩れたチェーン名を拾うための正式名称
KNOWN_CHAINS: Tuple[Tuple[str, ReceiptType], ...] = (
    ("セブンイレブン", ReceiptType.CONVENIENCE),
    ("ファミリーマート", ReceiptType.CONVENIENCE),
    ("ローソン", ReceiptType.CONVENIENCE),
    ("ミニストップ", ReceiptType.CONVENIENCE),
    ("マックスバリュ", ReceiptType.SUPERMARKET),
    ("業務スーパー", ReceiptType.SUPERMARKET),
    ("スターバックス", ReceiptType.RESTAURANT),
    ("マクドナルド", ReceiptType.RESTAURANT),
    ("ドトールコーヒー", ReceiptType.RESTAURANT),
    ("マツモトキヨシ", ReceiptType.PHARMACY),
    ("エネオス", ReceiptType.GAS_STATION),
)

FUZZY_CHAIN_THRESHOLD = 0.9
FUZZY_SCAN_LINES = 5


def _fuzzy_chain_type(lines: List[str]) -> Optional[ReceiptType]:
    for line in lines[:FUZZY_SCAN_LINES]:
        candidate = re.sub(r"\s+", "", line)
        if not candidate:
            continue
        for name, receipt_type in KNOWN_CHAINS:
            if JaroWinkler.normalized_similarity(candidate, name) >= FUZZY_CHAIN_THRESHOLD:
                return receipt_type
    return None


def identify_receipt_type(lines: List[str]) -> ReceiptType:
    """正規化済みの行からレシートの種類を判定"""
    text = " ".join(lines).lower()

    for receipt_type, pattern in RECEIPT_TYPE_KEYWORDS:
        if pattern.search(text):
            return receipt_type

    return _fuzzy_chain_type(lines) or ReceiptType.UNKNOWN
