from __future__ import annotations
import logging
import spacy
from .base import MIN_SPAN_LENGTH, BaseDetector
from ..models import DetectionSpan, PiiCategory
from ..wordlists import non_name_words

logger = logging.getLogger(__name__)

_LABELS: dict[str, PiiCategory] = {
    "PER": PiiCategory.NAME,
    "PERSON": PiiCategory.NAME,
    "Person": PiiCategory.NAME,
    "ORG": PiiCategory.ORGANIZATION,
    "Organization": PiiCategory.ORGANIZATION,
    "Company": PiiCategory.ORGANIZATION,
}

_models: dict[str, spacy.language.Language] = {}


def _get_nlp(model: str) -> spacy.language.Language:
    nlp = _models.get(model)
    if nlp is None:
        try:
            # only the entity recognizer is needed
            nlp = spacy.load(
                model,
                disable=["tagger", "morphologizer", "parser", "lemmatizer", "attribute_ruler"],
            )
        except OSError as exc:
            raise OSError(
                f"The spaCy model {model!r} is not installed.\n"
                f"Install it with:  python -m spacy download {model}\n"
                "or unset NER_MODEL to run without entity recognition."
            ) from exc
        logger.info("Loaded spaCy model %s", model)
        _models[model] = nlp
    return nlp


class NerDetector(BaseDetector):
    """Person and organisation names found by a spaCy entity recognizer."""

    categories = (PiiCategory.NAME, PiiCategory.ORGANIZATION)

    def __init__(self, model: str) -> None:
        self.model = model

    def detect(self, text: str) -> list[DetectionSpan]:
        doc = _get_nlp(self.model)(text)
        spans: list[DetectionSpan] = []

        for ent in doc.ents:
            category = _LABELS.get(ent.label_)
            if category is None:
                continue
            value = ent.text.strip()
            if len(value) < MIN_SPAN_LENGTH or value in non_name_words():
                continue
            start = ent.start_char + (len(ent.text) - len(ent.text.lstrip()))
            spans.append(DetectionSpan(
                category=category,
                start=start,
                end=start + len(value),
                text=value,
                confidence=0.85,
                rule_id="ner_person" if category is PiiCategory.NAME else "ner_org",
            ))

        return spans
