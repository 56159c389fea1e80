import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from emergency_extractor import EmergencyReceiptExtractor, emergency_extract


def test_broken_json_fields_recovered():
    data = emergency_extract('結果: {"amount": 1500, "merchantName": "ローソン", "date": "2025-08-26"')
    assert data.amount == 1500
    assert data.merchant_name == "ローソン"
    assert data.date == "2025-08-26"
    assert data.confidence == 0.9


def test_prose_reply_with_total_and_chain():
    data = emergency_extract("セブンイレブンで合計 ¥450 のお買い物でした")
    assert data.amount == 450
    assert data.merchant_name == "セブン-イレブン"
    assert data.date is None
    assert data.confidence == 0.8


def test_total_count_is_not_an_amount():
    data = emergency_extract('"totalCount": 3, "total": 2,400')
    assert data.amount == 2400


def test_amount_over_ceiling_ignored():
    data = emergency_extract("合計 ¥150,000 山田商店")
    assert data.amount is None
    assert data.merchant_name == "山田商店"
    assert data.confidence == 0.5


def test_confidence_bounds():
    data = EmergencyReceiptExtractor().extract("2025年8月26日")
    assert data.date == "2025-08-26"
    assert 0.3 <= data.confidence <= 0.9


def test_nothing_recoverable_returns_none():
    assert emergency_extract("申し訳ありませんが、画像を読み取れませんでした") is None
    assert emergency_extract("") is None
