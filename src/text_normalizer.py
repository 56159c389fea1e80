import re
from typing import List

# 全角英数記号（！〜～）→ 半角
_FULLWIDTH_TABLE = {code: code - 0xFEE0 for code in range(0xFF01, 0xFF5F)}
_FULLWIDTH_TABLE.update({
    ord("￥"): "¥",
    ord("　"): " ",  # 全角スペース
})

# OCRで数字と取り違えやすい文字
_NUMERAL_CONFUSIONS = str.maketrans({
    "O": "0",
    "o": "0",
    "D": "0",
    "l": "1",
    "I": "1",
    "S": "5",
    "s": "5",
    "G": "6",
    "B": "8",
    "Z": "2",
})

CONFUSABLE_CHARS = "OoDlISsGBZ"

# ¥の直後の数字トークン（誤認識文字を含んでもよい）
_YEN_TOKEN = re.compile(r"¥\s*([0-9" + CONFUSABLE_CHARS + r",]+)(?![A-Za-z])")


def to_halfwidth(text: str) -> str:
    return text.translate(_FULLWIDTH_TABLE)


def repair_numeral(numeral: str) -> str:
    """数字として読むべき文字列の誤認識を修正（例: "S44" → "544"）"""
    return numeral.translate(_NUMERAL_CONFUSIONS)


def _repair_yen_token(match: re.Match) -> str:
    token = match.group(1)
    if not re.search(r"\d", token):
        return match.group(0)
    return "¥" + repair_numeral(token)


def normalize_line(line: str) -> str:
    line = to_halfwidth(line)
    line = re.sub(r"\s+", " ", line)
    line = re.sub(r"[・※]", "", line)
    # 金額トークンのみ誤認識を修正（店舗名などの文字は触らない）
    line = _YEN_TOKEN.sub(_repair_yen_token, line)
    return line.strip()


def normalize_lines(text: str) -> List[str]:
    if not text:
        return []
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = (normalize_line(line) for line in text.split("\n"))
    return [line for line in lines if line]


def normalize_text(text: str) -> str:
    return "\n".join(normalize_lines(text))
