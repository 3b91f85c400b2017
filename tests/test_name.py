import pytest
from redact_pro.detectors.name import NameDetector, is_likely_name


@pytest.fixture(scope="module")
def detector():
    return NameDetector()


def _texts(findings):
    return {f.text for f in findings}


def test_labelled_name(detector):
    findings = detector.detect("氏名: 山田 太郎")
    assert "山田 太郎" in _texts(findings)


def test_labelled_name_full_width_colon(detector):
    findings = detector.detect("氏名：鈴木一郎")
    assert "鈴木一郎" in _texts(findings)


def test_furigana(detector):
    findings = detector.detect("フリガナ: ヤマダ タロウ")
    assert "ヤマダ タロウ" in _texts(findings)


def test_english_name(detector):
    findings = detector.detect("Name: John Smith")
    assert "John Smith" in _texts(findings)


def test_dictionary_name_in_sentence(detector):
    findings = detector.detect("佐藤花子さんが対応しました。")
    assert "佐藤花子" in _texts(findings)


def test_department_is_not_a_name(detector):
    assert detector.detect("担当: 営業部") == []


def test_is_likely_name():
    assert is_likely_name("山田太郎")
    assert not is_likely_name("エンジニア")
    assert not is_likely_name("山")
    assert not is_likely_name("ヤマダタロウ")
