import sys
from pathlib import Path

# Ensure repository root is on sys.path so the top-level modules import
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from config import Settings
from moderation_engine import ClassifierCache, ModerationEngine, ProfanityLexicon


# Force pytest-anyio to use asyncio backend (avoid requiring 'trio')
@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeModel:
    """Stands in for ToxicityModel: fixed toxic probability per label."""

    def __init__(self, scores):
        self.scores = scores
        self.calls = []

    def classify(self, texts):
        self.calls.append(list(texts))
        return [{label: (1.0 - p, p) for label, p in self.scores.items()} for _ in texts]


class BrokenModel:
    def classify(self, texts):
        raise RuntimeError("tensor shape mismatch in layer 3")


def make_engine(scores=None, custom_words=(), settings=None, model=None):
    settings = settings or Settings(custom_words=tuple(custom_words))
    if model is None:
        scores = scores if scores is not None else {label: 0.01 for label in settings.labels}
        model = FakeModel(scores)
    engine = ModerationEngine(
        settings,
        lexicon=ProfanityLexicon(settings.custom_words),
        classifier=ClassifierCache(lambda: model),
    )
    return engine, model


@pytest.fixture
def clean_engine():
    engine, _ = make_engine()
    return engine
