from datetime import date
from typing import Optional

from amount_extractor import extract_amount
from field_extractors import extract_date, extract_merchant_name, match_category
from ocr_models import ExtractedData
from receipt_type_classifier import identify_receipt_type
from text_normalizer import normalize_lines

AMOUNT_FOUND_CONFIDENCE = 0.85
AMOUNT_MISSING_CONFIDENCE = 0.3


def build_description(merchant_name: Optional[str]) -> str:
    if merchant_name:
        return f"{merchant_name}での購入"
    return "レシートでの購入"


def parse_receipt_text(ocr_text: str, today: Optional[date] = None) -> ExtractedData:
    """OCRテキストから金額・店舗名・日付・カテゴリを抽出

    Args:
        ocr_text: OCRサービスが返した生テキスト
        today: 年なし日付の補完に使う基準日（省略時は今日）

    Returns:
        ExtractedData: 見つからなかった項目はNone
    """
    lines = normalize_lines(ocr_text or "")
    receipt_type = identify_receipt_type(lines)

    amount = extract_amount(lines, receipt_type)
    merchant_name = extract_merchant_name(lines)

    return ExtractedData(
        amount=amount,
        description=build_description(merchant_name),
        date=extract_date(lines, today),
        merchant_name=merchant_name,
        category=match_category("\n".join(lines)),
        confidence=AMOUNT_FOUND_CONFIDENCE if amount else AMOUNT_MISSING_CONFIDENCE,
    )
