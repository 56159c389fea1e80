"""
環境変数検証システム - レシートOCR用

利用可能なOCRプロバイダ（Gemini / Claude / Google Vision）のAPIキー設定を確認し、
不足している場合は設定方法を表示します。
"""

import json
import os
import re
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Tuple


class OCREnvironmentValidator:
    """OCR関連の環境変数を検証するクラス"""

    # いずれか1つが必要
    PROVIDER_VARS = {
        "GEMINI_API_KEY": {
            "description": "Gemini API Key (生成AIによるレシート解析)",
            "pattern": r"^AIza[0-9A-Za-z_-]{35}$",
            "example": "AIzaSy..."
        },
        "ANTHROPIC_API_KEY": {
            "description": "Anthropic API Key (Claudeによるレシート解析)",
            "pattern": r"^sk-ant-[A-Za-z0-9_-]{20,}$",
            "example": "sk-ant-api03-..."
        },
        "GOOGLE_VISION_API_KEY": {
            "description": "Google Cloud Vision API Key (OCRテキスト抽出)",
            "pattern": r"^AIza[0-9A-Za-z_-]{35}$",
            "example": "AIzaSy..."
        },
    }

    OPTIONAL_VARS = {
        "OCR_GENERATIVE_PROVIDER": {
            "description": "生成AIプロバイダ (gemini/claude)",
            "pattern": r"^(gemini|claude)$"
        },
        "OCR_ALLOW_MOCK": {
            "description": "開発用モックの許可 (true/false)",
            "pattern": r"^(true|false|1|0|yes|no|on|off)$"
        },
        "APP_ENV": {
            "description": "実行環境 (development/production など)",
            "pattern": r"^[a-z]+$"
        },
    }

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = os.environ if environ is None else environ
        self.validation_results = {}
        self.configured_providers = []
        self.invalid_vars = []
        self.warnings = []

    def validate_all(self) -> Dict:
        """全環境変数の検証を実行"""
        print("\n" + "=" * 60)
        print("🔍 OCR環境変数チェック開始")
        print("=" * 60)

        self._validate_provider_vars()
        self._validate_optional_vars()

        results = self._compile_results()
        self._display_report(results)
        return results

    def _validate_provider_vars(self):
        print("\n📋 OCRプロバイダのAPIキー:")
        for var_name, config in self.PROVIDER_VARS.items():
            value = self.environ.get(var_name)
            if not value:
                print(f"  ⚪ {var_name}: 未設定")
                self.validation_results[var_name] = {"status": "missing", "description": config["description"]}
                continue

            self.configured_providers.append(var_name)
            if re.match(config["pattern"], value):
                status = "ok"
                print(f"  ✅ {var_name}: 設定済み・検証OK")
            else:
                status = "invalid"
                self.invalid_vars.append({
                    "name": var_name,
                    "issue": "フォーマット不正",
                    "expected": config["example"]
                })
                print(f"  ⚠️  {var_name}: 設定済み (⚠️フォーマット検証失敗)")

            self.validation_results[var_name] = {
                "status": status,
                "length": len(value),
                "description": config["description"]
            }

    def _validate_optional_vars(self):
        print("\n🔧 オプション環境変数:")
        for var_name, config in self.OPTIONAL_VARS.items():
            value = self.environ.get(var_name)
            if not value:
                print(f"  ⚪ {var_name}: 未設定 (オプション)")
                continue
            if re.match(config["pattern"], value.strip().lower()):
                print(f"  ✅ {var_name}: {value}")
                self.validation_results[var_name] = {"status": "ok", "description": config["description"]}
            else:
                self.warnings.append({"name": var_name, "issue": "フォーマット警告", "description": config["description"]})
                print(f"  ⚠️  {var_name}: {value} (⚠️フォーマット警告)")
                self.validation_results[var_name] = {"status": "warning", "description": config["description"]}

        if self.environ.get("APP_ENV", "").strip().lower() == "production" and \
                self.environ.get("OCR_ALLOW_MOCK", "").strip().lower() in ("1", "true", "yes", "on"):
            self.warnings.append({"name": "OCR_ALLOW_MOCK", "issue": "本番環境ではモックを使用できません"})
            print("  ⚠️  OCR_ALLOW_MOCK: 本番環境では無効です")

    def _compile_results(self) -> Dict:
        return {
            "timestamp": datetime.now().isoformat(),
            "status": "pass" if self.configured_providers and not self.invalid_vars else "fail",
            "configured_providers": self.configured_providers,
            "invalid_format": self.invalid_vars,
            "warnings": self.warnings,
            "details": self.validation_results,
        }

    def _display_report(self, results: Dict):
        print("\n" + "=" * 60)
        print("📊 検証結果サマリー")
        print("=" * 60)
        print(f"✅ 設定済みプロバイダ: {len(self.configured_providers)}/{len(self.PROVIDER_VARS)}")

        if results["status"] == "pass":
            print("\n🎉 環境変数検証: 合格")
            return

        print("\n❌ 環境変数検証: 失敗")
        if not self.configured_providers:
            print("\n  いずれかのAPIキーを設定してください:")
            for var_name, config in self.PROVIDER_VARS.items():
                print(f"    {var_name}: {config['description']}")
                print(f"      設定方法: export {var_name}=\"実際の値\"")
        for var_info in self.invalid_vars:
            print(f"\n  {var_info['name']}: {var_info['issue']} (例: {var_info['expected']})")

    def save_report(self, file_path: str = "ocr_environment_report.json") -> str:
        results = self._compile_results()
        with open(file_path, "w", encoding="utf-8") as f:
            json.dump(results, f, indent=2, ensure_ascii=False)
        print(f"\n💾 検証レポートを {file_path} に保存しました")
        return file_path

    def check_basic_requirements(self) -> bool:
        """APIキーが1つも無ければ EnvironmentError"""
        if not any(self.environ.get(var) for var in self.PROVIDER_VARS):
            raise EnvironmentError(
                f"OCRプロバイダのAPIキーが未設定です: {', '.join(self.PROVIDER_VARS)} のいずれかを設定してください"
            )
        return True


def validate_environment_quick(environ: Optional[Mapping[str, str]] = None) -> Tuple[bool, List[str]]:
    """(1つ以上設定済みか, 設定済みの変数名)"""
    validator = OCREnvironmentValidator(environ)
    configured = [var for var in validator.PROVIDER_VARS if validator.environ.get(var)]
    return len(configured) > 0, configured


if __name__ == "__main__":
    print("🚀 レシートOCR - 環境変数検証ツール")
    results = OCREnvironmentValidator().validate_all()
    exit(0 if results["status"] == "pass" else 1)
