"""
train_model.py
--------------
Train the toxicity classifier served by the moderation API on a Jigsaw
"Unintended Bias in Toxicity" style CSV and save it as
`moderation_model.pkl`.

Model:
    - TF-IDF (1-2 grams)
    - One-vs-Rest Logistic Regression (multi-label)

Labels (annotator fractions, binarized at 0.5):
    - identity_attack
    - insult
    - obscene
    - sexual_explicit
    - threat
    - severe_toxicity

The saved artifact is {"pipeline": Pipeline, "labels": [...]} so the
service knows which probability column belongs to which label.
"""

import argparse
from typing import List, Sequence, Tuple

import joblib
import numpy as np
import pandas as pd
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import classification_report
from sklearn.multiclass import OneVsRestClassifier
from sklearn.pipeline import Pipeline

from config import DEFAULT_LABELS, DEFAULT_MODEL_PATH

DATA_DIR = "data"
TEXT_COL = "comment_text"
LABEL_CUTOFF = 0.5


def load_split(path: str, labels: Sequence[str]) -> Tuple[List[str], np.ndarray]:
    """Read one CSV split; returns texts and a binary label matrix."""
    df = pd.read_csv(path).dropna(subset=[TEXT_COL])
    missing = [c for c in labels if c not in df.columns]
    if missing:
        raise ValueError(f"{path} is missing label columns: {missing}")

    X = df[TEXT_COL].astype(str).tolist()
    y = (df[list(labels)].fillna(0.0).values >= LABEL_CUTOFF).astype(int)
    return X, y


def build_pipeline(min_df: int = 3, max_features: int = 100_000) -> Pipeline:
    return Pipeline([
        ("tfidf", TfidfVectorizer(
            max_features=max_features,
            ngram_range=(1, 2),
            min_df=min_df,
            lowercase=True,
            strip_accents="unicode",
        )),
        ("clf", OneVsRestClassifier(
            LogisticRegression(
                solver="liblinear",
                max_iter=1000,
                class_weight="balanced"
            )
        )),
    ])


def save_model(model: Pipeline, labels: Sequence[str], path: str) -> None:
    joblib.dump({"pipeline": model, "labels": list(labels)}, path)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Train the toxicity classifier.")
    parser.add_argument("--train", default=f"{DATA_DIR}/train.csv")
    parser.add_argument("--val", default=f"{DATA_DIR}/val.csv")
    parser.add_argument("--labels", default=",".join(DEFAULT_LABELS),
                        help="comma-separated label columns")
    parser.add_argument("--out", default=DEFAULT_MODEL_PATH)
    args = parser.parse_args(argv)

    labels = [s.strip() for s in args.labels.split(",") if s.strip()]

    print("Loading data...")
    X_train, y_train = load_split(args.train, labels)
    X_val, y_val = load_split(args.val, labels)

    model = build_pipeline()

    print(" Training model...")
    model.fit(X_train, y_train)

    print(" Evaluating on validation set...")
    y_pred = (model.predict_proba(X_val) >= 0.5).astype(int)
    print(classification_report(y_val, y_pred, target_names=labels, zero_division=0))

    print(f"Saving model to {args.out} ...")
    save_model(model, labels, args.out)
    print(f"Done. File: {args.out}")


if __name__ == "__main__":
    main()
