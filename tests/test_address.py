import pytest
from redact_pro.detectors.address import AddressDetector


@pytest.fixture
def detector():
    return AddressDetector()


def test_basic_address(detector):
    findings = detector.detect("住所: 東京都千代田区丸の内1-2-3")
    assert len(findings) == 1
    assert findings[0].text == "東京都千代田区丸の内1-2-3"


def test_region_segment(detector):
    text = "住所: 東京都千代田区丸の内1-2-3"
    span = detector.detect(text)[0]
    region = span.segment("region")
    assert region is not None
    assert text[region.start:region.end] == "東京都"


def test_building_and_floor(detector):
    findings = detector.detect("大阪府大阪市北区梅田2-4-9 ブリーゼタワー12階")
    assert len(findings) == 1
    assert findings[0].text.startswith("大阪府")
    assert findings[0].text.endswith("12階")


def test_chome_form(detector):
    findings = detector.detect("北海道札幌市中央区北一条西二丁目")
    assert [f.text for f in findings] == ["北海道札幌市中央区北一条西二丁目"]


def test_no_prefecture_no_address(detector):
    assert detector.detect("丸の内1-2-3") == []
