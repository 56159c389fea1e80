#!/usr/bin/env python
"""
レシート画像を1枚解析して結果をJSONで表示する
"""

import argparse
import json
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from dotenv import load_dotenv

from config_loader import load_ocr_config
from environment_validator import OCREnvironmentValidator, validate_environment_quick
from receipt_ocr import ReceiptOCR
from receipt_text_parser import parse_receipt_text


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="レシートOCR実行スクリプト",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
使用例:
  python scripts/ocr_receipt.py receipt.jpg
  python scripts/ocr_receipt.py receipt.jpg --ocr-only
  python scripts/ocr_receipt.py --text ocr.txt
  python scripts/ocr_receipt.py --check --save-report report.json
        """
    )
    parser.add_argument('image', nargs='?', help='レシート画像ファイル')
    parser.add_argument('--text', type=str, help='OCR済みテキストファイルをパターン抽出のみで解析')
    parser.add_argument('--ocr-only', action='store_true', help='生成AI解析を使わずOCRのみで解析')
    parser.add_argument('--config', type=str, help='設定ファイルのパス (デフォルト: config/receipt_ocr.yml)')
    parser.add_argument('--env-file', type=str, default='.env', help='環境変数ファイルのパス (デフォルト: .env)')
    parser.add_argument('--check', '-c', action='store_true', help='環境変数チェックのみ実行')
    parser.add_argument('--save-report', type=str, metavar='PATH', help='--check の結果をJSONで保存')
    parser.add_argument('--strict', action='store_true', help='APIキーが1つも無ければ解析せずに終了')
    args = parser.parse_args(argv)

    load_dotenv(args.env_file)

    if args.check:
        validator = OCREnvironmentValidator()
        results = validator.validate_all()
        if args.save_report:
            validator.save_report(args.save_report)
        return 0 if results["status"] == "pass" else 1

    if args.text:
        with open(args.text, "r", encoding="utf-8") as f:
            data = parse_receipt_text(f.read())
        print(json.dumps(data.to_dict(), indent=2, ensure_ascii=False))
        return 0

    if not args.image:
        parser.error("画像ファイルまたは --text を指定してください")

    if args.strict:
        try:
            OCREnvironmentValidator().check_basic_requirements()
        except EnvironmentError as e:
            print(f"❌ {e}")
            return 1
    else:
        has_keys, _ = validate_environment_quick()
        if not has_keys:
            print("⚠️ APIキー未設定: 解析はモックまたは空結果になります (詳細は --check)")

    with open(args.image, "rb") as f:
        image = f.read()

    ocr = ReceiptOCR.from_config(load_ocr_config(args.config))
    result = ocr.process_receipt(image, prefer_generative=not args.ocr_only)

    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    print(f"\n📄 source={result.source} tier={result.recovery_tier or '-'}")
    return 0 if result.source != "none" else 1


if __name__ == "__main__":
    sys.exit(main())
