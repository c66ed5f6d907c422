"""Hand-engineered feature embeddings.

Documents are turned into fixed 384-dimensional vectors without any trained
model. The vector concatenates four blocks:

* ``[0, 128)``   TF-IDF weights of stemmed terms
* ``[128, 256)`` hashed bigram frequencies
* ``[256, 320)`` character frequency and ratio features
* ``[320, 384)`` heuristic lexical features

and is L2-normalized. The IDF statistic comes from an explicit
:class:`CorpusStats` value built once per batch, so embedding one text never
affects another.
"""

from __future__ import annotations

import hashlib
import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Sequence

import numpy as np
from nltk.stem import PorterStemmer

from notefinder.utils.text import tokenize

DIMENSION = 384
TERM_SLOTS = 128
BIGRAM_OFFSET = 128
BIGRAM_BUCKETS = 128
CHAR_OFFSET = 256
CHAR_SLOTS = 64
TOP_CHARS = 32
LEXICAL_OFFSET = 320
LEXICAL_SLOTS = 64

logger = logging.getLogger(__name__)

_STEMMER = PorterStemmer(mode=PorterStemmer.ORIGINAL_ALGORITHM)


def stem(token: str) -> str:
    return _STEMMER.stem(token)


@dataclass(frozen=True, slots=True)
class CorpusStats:
    """Document frequencies of stemmed terms over a fixed set of texts."""

    document_count: int = 0
    document_frequency: Mapping[str, int] = field(default_factory=dict)

    @classmethod
    def from_token_lists(cls, token_lists: Iterable[Sequence[str]]) -> "CorpusStats":
        frequency: Counter[str] = Counter()
        count = 0
        for tokens in token_lists:
            if not tokens:
                continue
            count += 1
            frequency.update({stem(token) for token in tokens})
        return cls(document_count=count, document_frequency=dict(frequency))

    @classmethod
    def from_texts(cls, texts: Iterable[str]) -> "CorpusStats":
        return cls.from_token_lists(tokenize(text) for text in texts)

    def idf(self, term: str) -> float:
        """``1 + ln(N / (1 + df))``; 0 for an empty corpus."""
        if self.document_count == 0:
            return 0.0
        df = self.document_frequency.get(term, 0)
        return 1.0 + math.log(self.document_count / (1 + df))


def _hash_bucket(feature: str) -> int:
    digest = hashlib.md5(feature.encode("utf-8")).hexdigest()
    return int(digest[:8], 16)


def term_features(tokens: Sequence[str], corpus: CorpusStats) -> np.ndarray:
    block = np.zeros(TERM_SLOTS, dtype=np.float64)
    term_freq = Counter(stem(token) for token in tokens)
    for slot, (term, freq) in enumerate(term_freq.items()):
        if slot >= TERM_SLOTS:
            break
        block[slot] = freq * corpus.idf(term)
    return block


def bigram_features(tokens: Sequence[str]) -> np.ndarray:
    block = np.zeros(BIGRAM_BUCKETS, dtype=np.float64)
    bigrams = [f"{first} {second}" for first, second in zip(tokens, tokens[1:])]
    if not bigrams:
        return block
    weight = 1.0 / len(bigrams)
    for bigram in bigrams:
        block[_hash_bucket(bigram) % BIGRAM_BUCKETS] += weight
    return block


def char_features(text: str) -> List[float]:
    """Top character frequencies followed by four aggregate ratios.

    The ratios are packed right after however many character frequencies
    exist, so short texts shift them towards the start of the block.
    """
    total = len(text)
    if total == 0:
        return []
    counts = Counter(text)
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    features = [count / total for _, count in ranked[:TOP_CHARS]]
    features.append(total / 1000)
    features.append(sum(1 for ch in text if ch.isupper() and ch.isascii()) / total)
    features.append(sum(1 for ch in text if ch.isdigit() and ch.isascii()) / total)
    features.append(sum(1 for ch in text if ch.isspace()) / total)
    return features


def lexical_features(tokens: Sequence[str]) -> List[float]:
    total = len(tokens)
    noun = verb = adj = other = 0
    for token in tokens:
        if token.endswith(("ing", "ed", "s")):
            verb += 1
        elif token.endswith(("ly", "al", "ful")):
            adj += 1
        elif len(token) > 4:
            noun += 1
        else:
            other += 1

    lengths = np.array([len(token) for token in tokens], dtype=np.float64)
    long_tokens = sum(1 for token in tokens if len(token) > 6)
    return [
        noun / total,
        verb / total,
        adj / total,
        other / total,
        float(lengths.mean()) / 10,
        float(lengths.std()) / 10,
        long_tokens / total,
        len(set(tokens)) / total,
    ]


def normalize(vector: np.ndarray) -> np.ndarray:
    magnitude = float(np.linalg.norm(vector))
    if magnitude == 0.0:
        return vector
    return vector / magnitude


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine similarity, 0 when lengths differ or either norm is zero."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        return 0.0
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def cosine_distance(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    return 1.0 - cosine_similarity(a, b)


class FeatureEmbedder:
    """Stateless generator of 384-dimensional feature vectors."""

    dimension = DIMENSION

    def embed(self, text: str, corpus: CorpusStats | None = None) -> np.ndarray:
        """Embed ``text``.

        Without ``corpus`` the text is weighted against a corpus made of
        itself alone, which is how queries are embedded.
        """
        tokens = tokenize(text)
        if not tokens:
            return np.zeros(DIMENSION, dtype=np.float64)
        if corpus is None:
            corpus = CorpusStats.from_token_lists([tokens])

        vector = np.zeros(DIMENSION, dtype=np.float64)
        vector[:TERM_SLOTS] = term_features(tokens, corpus)
        vector[BIGRAM_OFFSET : BIGRAM_OFFSET + BIGRAM_BUCKETS] = bigram_features(tokens)

        chars = char_features(" ".join(tokens))[:CHAR_SLOTS]
        vector[CHAR_OFFSET : CHAR_OFFSET + len(chars)] = chars

        lexical = lexical_features(tokens)[:LEXICAL_SLOTS]
        vector[LEXICAL_OFFSET : LEXICAL_OFFSET + len(lexical)] = lexical

        return normalize(vector)

    def embed_query(self, text: str) -> np.ndarray:
        return self.embed(text)

    def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        """Embed ``texts`` against one corpus built from the whole batch."""
        token_lists = [tokenize(text) for text in texts]
        corpus = CorpusStats.from_token_lists(token_lists)
        logger.debug(
            "Embedding batch of %d texts (%d terms in corpus)",
            len(texts),
            len(corpus.document_frequency),
        )
        if not texts:
            return np.zeros((0, DIMENSION), dtype=np.float64)
        return np.vstack([self.embed(text, corpus) for text in texts])
