"""
金額抽出パターン定義
レシートの種類ごとに優先度付きの正規表現セットを提供する
"""

import re
from types import MappingProxyType
from typing import Mapping, Tuple

from ocr_models import AmountTier, ReceiptType
from text_normalizer import CONFUSABLE_CHARS

# 金額の捕捉グループ（誤認識文字を含む数字列。数字を含むかは抽出側で確認）
NUM = r"([0-9" + CONFUSABLE_CHARS + r"][0-9" + CONFUSABLE_CHARS + r",]*)"
LABEL_SEP = r"\s*:?\s*¥?\s*"

_FLAGS = re.IGNORECASE | re.MULTILINE

PatternTierSet = Mapping[AmountTier, Tuple[re.Pattern, ...]]


def _compile(*patterns: str) -> Tuple[re.Pattern, ...]:
    return tuple(re.compile(p, _FLAGS) for p in patterns)


BASE_PATTERNS = {
    # 最優先（税込合計など）
    AmountTier.FINAL_TOTAL: _compile(
        r"税込\s*合計" + LABEL_SEP + NUM,
        r"税込\s*総額" + LABEL_SEP + NUM,
        r"総合計" + LABEL_SEP + NUM,
        r"(?:合計|計)\s*（税込[^）]*）" + LABEL_SEP + NUM,
        r"合計\s*\(\s*税込[^)]*\)" + LABEL_SEP + NUM,
        r"¥\s*" + NUM + r"\s*税込",
    ),
    # 一般的な合計
    AmountTier.TOTAL: _compile(
        r"^\s*合計" + LABEL_SEP + NUM + r"\s*$",
        r"(?<!小)計" + LABEL_SEP + NUM,
        r"(?<!sub)(?<!sub )total" + LABEL_SEP + NUM,
        r"お会計" + LABEL_SEP + NUM,
        r"お支払い?" + LABEL_SEP + NUM,
    ),
    AmountTier.SUBTOTAL: _compile(
        r"小計" + LABEL_SEP + NUM,
        r"sub\s?total" + LABEL_SEP + NUM,
    ),
    # 数値のみ（最終手段）
    AmountTier.FALLBACK: _compile(
        r"¥\s*" + NUM,
        NUM + r"\s*円",
        r"(?<![\d,])(\d[\d,]{2,})(?![\d,])",
    ),
}

SPECIFIC_PATTERNS = {
    ReceiptType.CONVENIENCE: _compile(
        r"お買上金額" + LABEL_SEP + NUM,
        r"代金" + LABEL_SEP + NUM,
    ),
    ReceiptType.SUPERMARKET: _compile(
        r"お買上金額" + LABEL_SEP + NUM,
        r"お買い?物合計" + LABEL_SEP + NUM,
    ),
    ReceiptType.RESTAURANT: _compile(
        r"お会計" + LABEL_SEP + NUM,
        r"料金" + LABEL_SEP + NUM,
        r"飲食代" + LABEL_SEP + NUM,
        r"ご利用金額" + LABEL_SEP + NUM,
        r"お支払い?額" + LABEL_SEP + NUM,
        r"¥\s*" + NUM + r"\s*(?:税込|込)",
        r"^\s*¥\s*" + NUM + r"\s*$",
    ),
    ReceiptType.GAS_STATION: _compile(
        r"給油代" + LABEL_SEP + NUM,
        r"燃料代" + LABEL_SEP + NUM,
    ),
}

# 合計に見えるが支払額ではない行
EXCLUDE_PATTERNS: Tuple[re.Pattern, ...] = _compile(
    r"#\s*\d+",                                   # 伝票番号 #542
    r"(?<![a-z])(?:tel|fax)(?![a-z])|電話",
    r"\d{2,4}-\d{2,4}-\d{3,4}",                   # 電話番号
    r"〒|(?<!\d)\d{3}-\d{4}(?!\d)",               # 郵便番号
    r"釣り|おつり|釣銭|ﾂﾘ|(?<![a-z])change(?![a-z])",
    r"預り|預かり|お預|現金|(?<![a-z])cash(?![a-z])",
    r"単価|価格|@\s*¥?\s*\d",
    r"\d\s*(?:個|点|コ)?\s*[×xX*]\s*¥?\s*\d",      # 数量×価格
    r"¥\s*[\d,]+\s*[×xX*]\s*\d",                  # ¥価格×数量
    r"日.*時|年.*月.*日",
    r"\d{4}[-/.]\d{1,2}[-/.]\d{1,2}|\d{1,2}/\d{1,2}/\d{4}",
    r"(?<!\d)\d{1,2}:\d{2}(?!\d)",                # 時刻
    r"\d+-\d+-\d+-\d+",                           # 伝票番号 250-xx-xx-xx
    r"責.*\d+",                                   # 責任者番号
)

# ベンダー固有レイアウトの判定
STARBUCKS_DETECT = re.compile(r"スターバックス|starbucks", re.IGNORECASE)
GRAND_TOTAL_LABEL = re.compile(r"総合計")
BARE_TOTAL_VALUE = re.compile(r"^(\d{3,4})$")

CONVENIENCE_DETECT = re.compile(r"セブン|ローソン|ファミマ|ファミリーマート", re.IGNORECASE)
BARE_YEN_LINE = re.compile(r"^¥(\d{2,4})$")
CONVENIENCE_BARE_YEN_RANGE = (50, 10_000)


def _build_tier_set(receipt_type: ReceiptType) -> PatternTierSet:
    tiers = {AmountTier.FINAL_TOTAL: BASE_PATTERNS[AmountTier.FINAL_TOTAL]}
    if receipt_type in SPECIFIC_PATTERNS:
        tiers[AmountTier.SPECIFIC] = SPECIFIC_PATTERNS[receipt_type]
    for tier in (AmountTier.TOTAL, AmountTier.SUBTOTAL, AmountTier.FALLBACK):
        tiers[tier] = BASE_PATTERNS[tier]
    return MappingProxyType(tiers)


_TIER_SETS = {receipt_type: _build_tier_set(receipt_type) for receipt_type in ReceiptType}


def get_amount_patterns(receipt_type: ReceiptType) -> PatternTierSet:
    """レシートの種類に応じた金額パターン（優先度順）を返す"""
    return _TIER_SETS[receipt_type]


def is_excluded_line(line: str) -> bool:
    return any(p.search(line) for p in EXCLUDE_PATTERNS)
