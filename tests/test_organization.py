import pytest
from redact_pro.detectors.organization import OrganizationDetector


@pytest.fixture
def detector():
    return OrganizationDetector()


def test_legal_form_prefix(detector):
    findings = detector.detect("株式会社サンプル商事に入社")
    assert [f.text for f in findings] == ["株式会社サンプル商事"]


def test_english_company(detector):
    findings = detector.detect("Worked at Example Inc. as an engineer")
    assert [f.text for f in findings] == ["Example Inc."]


def test_bare_legal_form_rejected(detector):
    assert detector.detect("株式会社") == []
