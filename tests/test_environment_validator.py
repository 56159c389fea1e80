import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from environment_validator import OCREnvironmentValidator, validate_environment_quick

GEMINI_KEY = "AIza" + "A" * 35


def test_one_provider_is_enough():
    results = OCREnvironmentValidator({"GEMINI_API_KEY": GEMINI_KEY}).validate_all()
    assert results["status"] == "pass"
    assert results["configured_providers"] == ["GEMINI_API_KEY"]


def test_no_provider_fails():
    validator = OCREnvironmentValidator({})
    assert validator.validate_all()["status"] == "fail"
    with pytest.raises(EnvironmentError):
        validator.check_basic_requirements()


def test_malformed_key_fails():
    results = OCREnvironmentValidator({"ANTHROPIC_API_KEY": "not-a-key"}).validate_all()
    assert results["status"] == "fail"
    assert results["invalid_format"][0]["name"] == "ANTHROPIC_API_KEY"


def test_mock_in_production_warns():
    env = {"GEMINI_API_KEY": GEMINI_KEY, "APP_ENV": "production", "OCR_ALLOW_MOCK": "true"}
    results = OCREnvironmentValidator(env).validate_all()
    assert any(w["name"] == "OCR_ALLOW_MOCK" for w in results["warnings"])


def test_quick_validation():
    assert validate_environment_quick({"GOOGLE_VISION_API_KEY": GEMINI_KEY}) == (True, ["GOOGLE_VISION_API_KEY"])
    assert validate_environment_quick({}) == (False, [])


def test_save_report(tmp_path):
    validator = OCREnvironmentValidator({"GEMINI_API_KEY": GEMINI_KEY})
    validator.validate_all()
    path = validator.save_report(str(tmp_path / "report.json"))
    assert os.path.exists(path)
