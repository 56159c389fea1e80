import re
from datetime import date
from typing import Callable, List, Optional, Tuple

from ocr_models import DEFAULT_CATEGORY

MERCHANT_SCAN_LINES = 8
MERCHANT_MAX_LENGTH = 30

# 店舗名ではない行
NON_MERCHANT_LINE = re.compile(
    r"^[0-9\-/.:\s]+$"
    r"|電話|(?<![a-z])(?:tel|fax)(?![a-z])|住所|〒|営業時間|レシート|領収書|領収証|お買上|ありがとう"
    r"|\d{2,4}-\d{2,4}-\d{3,4}"
    r"|\d{4}[-/年]\d{1,2}[-/月]\d{1,2}"
    r"|(?:都|道|府|県).{0,6}(?:市|区|町|村).*\d",
    re.IGNORECASE,
)

LEGAL_ENTITY_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"株式会社\s*(.+)"),
    re.compile(r"㈱\s*(.+)"),
    re.compile(r"\(株\)\s*(.+)"),
    re.compile(r"有限会社\s*(.+)"),
    re.compile(r"合同会社\s*(.+)"),
)

STORE_SUFFIX_PATTERN = re.compile(r"^(.+?)\s*(?:支店|本店|営業所|店)$")

CHAIN_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"セブン\s*-?\s*イレブン"),
    re.compile(r"ファミリーマート"),
    re.compile(r"ローソン"),
    re.compile(r"ミニストップ"),
    re.compile(r"イオン"),
    re.compile(r"西友"),
    re.compile(r"ライフ"),
    re.compile(r"マックスバリュ"),
)

JAPANESE_SCRIPT = re.compile(r"[\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF\u3400-\u4DBF]")


def _accept_merchant_line(line: str) -> Optional[str]:
    for pattern in LEGAL_ENTITY_PATTERNS:
        match = pattern.search(line)
        if match:
            name = match.group(1).strip()
            if 0 < len(name) < MERCHANT_MAX_LENGTH:
                return name

    if STORE_SUFFIX_PATTERN.match(line) and len(line) < MERCHANT_MAX_LENGTH:
        return line

    for pattern in CHAIN_PATTERNS:
        match = pattern.search(line)
        if match:
            return line if len(line) < MERCHANT_MAX_LENGTH else match.group(0)

    # 数字を含まない適度な長さの日本語行
    if 3 <= len(line) <= 20 and not re.search(r"\d", line) and JAPANESE_SCRIPT.search(line):
        return line
    return None


def extract_merchant_name(lines: List[str]) -> Optional[str]:
    """レシート上部から店舗名を抽出"""
    for raw in lines[:MERCHANT_SCAN_LINES]:
        line = raw.strip()
        if len(line) < 2 or NON_MERCHANT_LINE.search(line):
            continue
        name = _accept_merchant_line(line)
        if name:
            return name
    return None


# 日付: (パターン, マッチ → (年, 月, 日))
DateGrammar = Tuple[re.Pattern, Callable[[re.Match, date], Tuple[int, int, int]]]


def _era_year(token: str, offset: int) -> int:
    return (1 if token == "元" else int(token)) + offset


DATE_GRAMMARS: Tuple[DateGrammar, ...] = (
    (re.compile(r"(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})"),
     lambda m, today: (int(m.group(1)), int(m.group(2)), int(m.group(3)))),
    (re.compile(r"(\d{4})年\s*(\d{1,2})月\s*(\d{1,2})日"),
     lambda m, today: (int(m.group(1)), int(m.group(2)), int(m.group(3)))),
    (re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})"),
     lambda m, today: (int(m.group(3)), int(m.group(1)), int(m.group(2)))),
    (re.compile(r"(\d{1,2})-(\d{1,2})-(\d{4})"),
     lambda m, today: (int(m.group(3)), int(m.group(1)), int(m.group(2)))),
    # 令和元年 = 2019年
    (re.compile(r"令和\s*(\d{1,2}|元)年\s*(\d{1,2})月\s*(\d{1,2})日"),
     lambda m, today: (_era_year(m.group(1), 2018), int(m.group(2)), int(m.group(3)))),
    # 平成元年 = 1989年
    (re.compile(r"平成\s*(\d{1,2}|元)年\s*(\d{1,2})月\s*(\d{1,2})日"),
     lambda m, today: (_era_year(m.group(1), 1988), int(m.group(2)), int(m.group(3)))),
    (re.compile(r"(?<!\d)(\d{2})\.(\d{1,2})\.(\d{1,2})(?!\d)"),
     lambda m, today: (2000 + int(m.group(1)), int(m.group(2)), int(m.group(3)))),
    # 年なし（今年とみなす）
    (re.compile(r"(\d{1,2})月\s*(\d{1,2})日"),
     lambda m, today: (today.year, int(m.group(1)), int(m.group(2)))),
)


def to_iso_date(year: int, month: int, day: int) -> Optional[str]:
    if not (2000 <= year <= 2030 and 1 <= month <= 12 and 1 <= day <= 31):
        return None
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def extract_date(lines: List[str], today: Optional[date] = None) -> Optional[str]:
    """最初に妥当な日付が得られた行の日付を YYYY-MM-DD で返す"""
    today = today or date.today()
    for line in lines:
        if not line:
            continue
        for pattern, build in DATE_GRAMMARS:
            match = pattern.search(line)
            if not match:
                continue
            iso = to_iso_date(*build(match, today))
            if iso:
                return iso
    return None


CATEGORY_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("食費", ("食", "コンビニ", "スーパー", "レストラン", "弁当", "パン")),
    ("交通費", ("駅", "タクシー", "交通", "バス", "電車")),
    ("通信費", ("電話", "通信", "インターネット", "WiFi")),
    ("消耗品費", ("文房具", "用品", "消耗")),
)


def match_category(text: str) -> str:
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return DEFAULT_CATEGORY
