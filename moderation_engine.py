import asyncio
import logging
import re
import threading
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import joblib
from better_profanity import Profanity

from config import SETTINGS, Settings

logger = logging.getLogger(__name__)

# Leetspeak / obfuscation normalizer
# Applied in order. "@" is folded to "a" before the character filter runs,
# so the filter's "@" allowance never sees one.
LEET_RULES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"[!¡1|i]"), "i"),
    (re.compile(r"[@4]"), "a"),
    (re.compile(r"[$5]"), "s"),
    (re.compile(r"0"), "o"),
    (re.compile(r"3"), "e"),
    (re.compile(r"7"), "t"),
]
STRIP_RE = re.compile(r"[^a-z0-9\s@]")
WS_RE = re.compile(r"\s{2,}")


def normalize_text(text: str) -> str:
    """
    Lowercase, undo common character substitutions, replace anything
    that is not a letter, digit, whitespace or "@" with a space and
    collapse runs of whitespace.
    """
    t = (text or "").lower()
    for pattern, repl in LEET_RULES:
        t = pattern.sub(repl, t)
    t = STRIP_RE.sub(" ", t)
    t = WS_RE.sub(" ", t).strip()
    return t


def is_self_message(from_user, bot_name) -> bool:
    """True when the sender name contains the bot name (case-insensitive)."""
    if not from_user or not bot_name:
        return False
    return str(bot_name).lower() in str(from_user).lower()


# Lexicon check
# "!" and "1" fold to "i", so "idiot!!!" normalizes to "idiotiii". Such
# tails are dropped from the raw text for a second lookup.
EXCLAMATION_TAIL_RE = re.compile(r"(?<=[^\W\d_])[!¡1|]+(?![\w!¡|])")


class ProfanityLexicon:
    """English base word list plus custom words, fixed at construction."""

    def __init__(self, custom_words: Iterable[str] = ()):
        # the constructor loads the default English list
        self._profanity = Profanity()
        custom_words = [w.lower() for w in custom_words if w]
        if custom_words:
            self._profanity.add_censor_words(custom_words)
            logger.info("Added %d custom lexicon words", len(custom_words))

    def check(self, text: str, raw: Optional[str] = None) -> bool:
        """
        Look up the normalized text. When the raw text is given and ends
        words in "!", "¡", "1" or "|", also look up its normalized form
        with those tails removed.
        """
        t = text or ""
        if self._profanity.contains_profanity(t):
            return True
        if not raw:
            return False
        untailed = normalize_text(EXCLAMATION_TAIL_RE.sub("", raw))
        return untailed != t and self._profanity.contains_profanity(untailed)


# Toxicity classifier (TF-IDF + Logistic Regression, built by train_model.py)
class ToxicityModel:
    def __init__(self, pipeline, trained_labels: Sequence[str],
                 threshold: float, labels: Sequence[str]):
        trained_labels = list(trained_labels)
        self.pipeline = pipeline
        self.threshold = threshold
        # only report configured labels the pipeline was trained on
        self.labels = [label for label in labels if label in trained_labels]
        self._columns = [trained_labels.index(label) for label in self.labels]

    @classmethod
    def load(cls, model_path: str, threshold: float, labels: Sequence[str]) -> "ToxicityModel":
        logger.info("[ToxicityModel] Loading model from: %s", model_path)
        artifact = joblib.load(model_path)
        if not isinstance(artifact, dict) or "pipeline" not in artifact or "labels" not in artifact:
            raise ValueError(f"{model_path} is not a toxicity model artifact; rebuild it with train_model.py")
        model = cls(artifact["pipeline"], artifact["labels"], threshold, labels)
        logger.info("[ToxicityModel] Ready (labels=%s, threshold=%s)", model.labels, threshold)
        return model

    def classify(self, texts: Sequence[str]) -> List[Dict[str, Tuple[float, float]]]:
        """
        For each text return {label: (p_clean, p_toxic)}.
        """
        probs = self.pipeline.predict_proba(list(texts))
        predictions = []
        for row in probs:
            predictions.append({
                label: (1.0 - float(row[col]), float(row[col]))
                for label, col in zip(self.labels, self._columns)
            })
        return predictions


class ClassifierCache:
    """
    Process-wide lazy handle for the toxicity model.

    The loader runs at most once, in a worker thread, under a lock; every
    caller that arrives while it runs waits for and receives the same
    instance. A failed load leaves the cache empty so the next call retries.
    """

    def __init__(self, loader: Callable[[], ToxicityModel]):
        self._loader = loader
        self._lock = threading.Lock()
        self._model: Optional[ToxicityModel] = None

    def _load(self) -> ToxicityModel:
        with self._lock:
            if self._model is None:
                self._model = self._loader()
            return self._model

    async def get(self) -> ToxicityModel:
        if self._model is not None:
            return self._model
        return await asyncio.to_thread(self._load)


def score_predictions(prediction: Dict[str, Sequence[float]],
                      labels: Sequence[str],
                      threshold: float) -> Tuple[Dict[str, float], bool]:
    """
    Extract the toxic-class probability per label, rounded to 4 places.
    A hit needs a configured label whose raw score is >= threshold.
    """
    scores: Dict[str, float] = {}
    toxic_hit = False
    for label, probabilities in prediction.items():
        score = float(probabilities[1]) if len(probabilities) > 1 else 0.0
        scores[label] = round(score, 4)
        if label in labels and score >= threshold:
            toxic_hit = True
    return scores, toxic_hit


# Final Moderation Engine
class ModerationEngine:
    """
    Orchestrates:
      self-message filter -> normalize -> lexicon + classifier -> OR
    and produces the final verdict.
    """

    def __init__(self, settings: Settings = SETTINGS,
                 lexicon: Optional[ProfanityLexicon] = None,
                 classifier: Optional[ClassifierCache] = None):
        self.settings = settings
        self.lexicon = lexicon if lexicon is not None else ProfanityLexicon(settings.custom_words)
        if classifier is None:
            classifier = ClassifierCache(partial(
                ToxicityModel.load, settings.model_path, settings.threshold, settings.labels,
            ))
        self.classifier = classifier

    async def classify(self, norm: str) -> Dict[str, Sequence[float]]:
        model = await self.classifier.get()
        predictions = await asyncio.wait_for(
            asyncio.to_thread(model.classify, [norm]),
            timeout=self.settings.classify_timeout,
        )
        return predictions[0]

    async def moderate(self, text: str, from_user: str = "", bot_name: str = "") -> Dict:
        # Anti-loop: the bot's own messages are never moderated
        if is_self_message(from_user, bot_name):
            return {"foul": False, "skipped": True, "reason": "self_message"}

        norm = normalize_text(text)

        # 1) Lexicon / profanity pass
        lexicon_profane = self.lexicon.check(norm, raw=text)

        # 2) Toxicity model pass
        prediction = await self.classify(norm)
        scores, toxic_hit = score_predictions(
            prediction, self.settings.labels, self.settings.threshold,
        )

        return {
            "foul": bool(lexicon_profane or toxic_hit),
            "input": text,
            "norm": norm,
            "reasons": {
                "lexiconProfanity": lexicon_profane,
                "toxicityScores": scores,
                "threshold": self.settings.threshold,
                "labels": list(self.settings.labels),
            },
        }


# CLI Test (run: python moderation_engine.py)
if __name__ == "__main__":
    logging.basicConfig(level=SETTINGS.log_level)
    engine = ModerationEngine(SETTINGS)
    print("Text Moderation Console (type 'exit' to quit)")
    while True:
        msg = input("\nUser message: ")
        if msg.lower().strip() == "exit":
            break
        if not msg.strip():
            continue
        print(asyncio.run(engine.moderate(msg)))
