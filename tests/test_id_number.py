import pytest
from redact_pro.detectors.id_number import IdNumberDetector


@pytest.fixture
def detector():
    return IdNumberDetector()


def test_spaced_my_number(detector):
    findings = detector.detect("マイナンバー: 1234 5678 9012")
    assert [f.text for f in findings] == ["1234 5678 9012"]


def test_plain_twelve_digits(detector):
    assert [f.text for f in detector.detect("番号 123456789012")] == ["123456789012"]


def test_thirteen_digits_rejected(detector):
    assert detector.detect("1234567890123") == []
