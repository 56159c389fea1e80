import os
from typing import Optional

import yaml


DEFAULTS = {
    "environment": "development",
    "generative": {
        "provider": "gemini",
        "gemini_model": "gemini-1.5-flash",
        "gemini_endpoint": "https://generativelanguage.googleapis.com/v1beta/models",
        "claude_model": "claude-3-5-sonnet-20241022",
        "claude_endpoint": "https://api.anthropic.com/v1/messages",
        "max_tokens": 2000,
    },
    "ocr": {
        "endpoint": "https://vision.googleapis.com/v1/images:annotate",
        "language_hints": ["ja", "en"],
    },
    "http": {"timeout": 30},
    "limits": {"max_base64_bytes": int(4.5 * 1024 * 1024)},
    "mock": {"allow": False},
    "api_keys": {"gemini": None, "google_vision": None, "anthropic": None},
}

# 環境変数 → (セクション, キー)
ENV_OVERRIDES = {
    "GEMINI_API_KEY": ("api_keys", "gemini"),
    "GOOGLE_VISION_API_KEY": ("api_keys", "google_vision"),
    "ANTHROPIC_API_KEY": ("api_keys", "anthropic"),
    "OCR_GENERATIVE_PROVIDER": ("generative", "provider"),
}

TRUTHY = ("1", "true", "yes", "on")


def default_config_path() -> str:
    return os.path.join(os.path.dirname(os.path.dirname(__file__)), "config", "receipt_ocr.yml")


def _merge(cfg: dict) -> dict:
    # shallow merge defaults
    merged = {k: dict(v) if isinstance(v, dict) else v for k, v in DEFAULTS.items()}
    for k, v in (cfg or {}).items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            mv = dict(merged[k])
            mv.update(v)
            merged[k] = mv
        else:
            merged[k] = v
    return merged


def load_ocr_config(path: Optional[str] = None) -> dict:
    """YAML設定を読み込み、環境変数で上書きする（ファイルが無ければデフォルト）"""
    path = path or os.getenv("RECEIPT_OCR_CONFIG") or default_config_path()
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except FileNotFoundError:
        cfg = {}

    merged = _merge(cfg)

    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            merged[section][key] = value.strip()

    allow_mock = os.getenv("OCR_ALLOW_MOCK")
    if allow_mock is not None:
        merged["mock"]["allow"] = allow_mock.strip().lower() in TRUTHY

    app_env = os.getenv("APP_ENV")
    if app_env:
        merged["environment"] = app_env.strip().lower()
    return merged
