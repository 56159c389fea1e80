"""
レシート金額抽出エンジン
除外ルール → ベンダー固有ルール → 優先度付きパターン検索の順で合計金額を決定する
"""

import re
from typing import Callable, List, Optional, Tuple

from amount_patterns import (
    BARE_TOTAL_VALUE,
    BARE_YEN_LINE,
    CONVENIENCE_BARE_YEN_RANGE,
    CONVENIENCE_DETECT,
    GRAND_TOTAL_LABEL,
    STARBUCKS_DETECT,
    PatternTierSet,
    get_amount_patterns,
    is_excluded_line,
)
from ocr_models import (
    SHORT_CIRCUIT_TIERS,
    TIER_PRIORITY,
    AmountCandidate,
    AmountTier,
    ReceiptType,
    is_valid_amount,
)
from text_normalizer import repair_numeral


def parse_amount_token(token: str) -> Optional[int]:
    """捕捉した数字列を金額に変換（区切り除去・誤認識修正・範囲チェック）"""
    if not token or not re.search(r"\d", token):
        return None
    digits = repair_numeral(token.replace(",", ""))
    if not digits.isdigit():
        return None
    value = int(digits)
    return value if is_valid_amount(value) else None


def _starbucks_total(lines: List[str], excluded: List[bool]) -> Optional[AmountCandidate]:
    # 「総合計」の次の行に金額だけが印字されるレイアウト
    for i in range(len(lines) - 1):
        if excluded[i] or excluded[i + 1]:
            continue
        if not GRAND_TOTAL_LABEL.search(lines[i]):
            continue
        match = BARE_TOTAL_VALUE.match(lines[i + 1].strip())
        if match:
            value = parse_amount_token(match.group(1))
            if value is not None:
                return AmountCandidate(value, AmountTier.VENDOR, lines[i + 1], "starbucks:label_next_line")
    return None


def _convenience_bare_yen(lines: List[str], excluded: List[bool]) -> Optional[AmountCandidate]:
    # 「¥230」だけの行を合計とみなす
    low, high = CONVENIENCE_BARE_YEN_RANGE
    for line, skip in zip(lines, excluded):
        if skip:
            continue
        match = BARE_YEN_LINE.match(line.strip())
        if match:
            value = parse_amount_token(match.group(1))
            if value is not None and low <= value <= high:
                return AmountCandidate(value, AmountTier.VENDOR, line, "convenience:bare_yen")
    return None


VendorRule = Tuple[str, re.Pattern, Callable[[List[str], List[bool]], Optional[AmountCandidate]]]

VENDOR_RULES: Tuple[VendorRule, ...] = (
    ("starbucks", STARBUCKS_DETECT, _starbucks_total),
    ("convenience", CONVENIENCE_DETECT, _convenience_bare_yen),
)


def _vendor_candidate(lines: List[str], excluded: List[bool]) -> Optional[AmountCandidate]:
    for _name, detect, rule in VENDOR_RULES:
        if any(detect.search(line) for line in lines):
            candidate = rule(lines, excluded)
            if candidate:
                return candidate
    return None


def collect_amount_candidates(lines: List[str], patterns: PatternTierSet) -> List[AmountCandidate]:
    """優先度順に候補を収集する。短絡層でマッチした場合はその1件のみ返す"""
    excluded = [is_excluded_line(line) for line in lines]

    vendor = _vendor_candidate(lines, excluded)
    if vendor:
        return [vendor]

    candidates: List[AmountCandidate] = []
    for tier in TIER_PRIORITY:
        tier_patterns = patterns.get(tier)
        if not tier_patterns:
            continue
        for line, skip in zip(lines, excluded):
            if skip:
                continue
            for pattern in tier_patterns:
                match = pattern.search(line)
                if not match:
                    continue
                value = parse_amount_token(match.group(1))
                if value is None:
                    continue
                candidate = AmountCandidate(value, tier, line, pattern.pattern)
                if tier in SHORT_CIRCUIT_TIERS:
                    return [candidate]
                candidates.append(candidate)
    return candidates


def select_candidate(candidates: List[AmountCandidate]) -> Optional[AmountCandidate]:
    """最上位の層の中で最初に見つかった候補を採用"""
    if not candidates:
        return None
    return min(candidates, key=lambda c: TIER_PRIORITY.index(c.source_tier))


def extract_amount(lines: List[str], receipt_type: ReceiptType = ReceiptType.UNKNOWN) -> Optional[int]:
    candidates = collect_amount_candidates(lines, get_amount_patterns(receipt_type))
    selected = select_candidate(candidates)
    return selected.amount if selected else None
