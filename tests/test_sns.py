import pytest
from redact_pro.detectors.sns import SnsDetector
from redact_pro.masking import mask
from redact_pro.models import PiiCategory
from redact_pro.policy import CategoryPolicy


@pytest.fixture
def detector():
    return SnsDetector()


def test_twitter_handle(detector):
    findings = detector.detect("Twitter: @taro_dev")
    assert len(findings) == 1
    assert findings[0].text == "taro_dev"
    assert findings[0].rule_id == "sns_twitter"


def test_github_handle(detector):
    findings = detector.detect("GitHub: taro-yamada")
    assert [f.text for f in findings] == ["taro-yamada"]


def test_label_stays_visible(detector):
    text = "Instagram: @taro.photo"
    span = detector.detect(text)[0]
    assert text[:span.start] == "Instagram: @"


def test_profile_url_is_not_a_handle(detector):
    assert detector.detect("https://github.com/taro") == []


def test_rule_specific_placeholder(detector):
    text = "GitHub: taro-yamada"
    spans = detector.detect(text)
    policy = CategoryPolicy.all_enabled().with_only([PiiCategory.SNS])
    assert mask(text, spans, policy).text == "GitHub: [GitHub非公開]"
