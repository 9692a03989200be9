"""
フィールド種別分類器

ラベル文字列という弱いシグナルから入力種別を推定する。
分類は差し替え可能な戦略（classify メソッド1つ）として定義し、
リゾルバ側を変更せずにより厳格な分類器へ交換できるようにする。

既知の限界: 部分一致による判定のため誤分類があり得る
（例: "Email Newsletter Opt-in" のチェックボックスは email と判定される）。
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from .field_patterns import FieldPatterns
from .text_utils import contains_token_with_boundary, normalize_label

logger = logging.getLogger(__name__)

__all__ = [
    "FieldType",
    "FieldClassifier",
    "KeywordFieldClassifier",
    "StrictFieldClassifier",
    "classify_by_label",
    "normalize_label",
]


class FieldType(str, Enum):
    """フィールドの検証種別"""
    EMAIL = "email"
    PHONE = "phone"
    URL = "url"
    PLAIN = "plain"
    MESSAGE = "message"
    UNSUPPORTED = "unsupported"


class FieldClassifier(ABC):
    """ラベル → FieldType の分類戦略"""

    @abstractmethod
    def classify(self, label: Optional[str]) -> FieldType:
        ...


class KeywordFieldClassifier(FieldClassifier):
    """大文字小文字を無視した部分一致による分類（既定）"""

    def __init__(self, patterns: Optional[FieldPatterns] = None):
        self.patterns = patterns or FieldPatterns()

    def _matches(self, text: str, keyword: str) -> bool:
        return keyword in text

    def classify(self, label: Optional[str]) -> FieldType:
        if not label or not isinstance(label, str):
            return FieldType.UNSUPPORTED
        text = label.lower()
        if not text.strip():
            return FieldType.UNSUPPORTED
        for family, keywords in self.patterns.iter_by_priority():
            for keyword in keywords:
                if keyword and self._matches(text, keyword):
                    field_type = self.patterns.get_patterns()[family]["field_type"]
                    return FieldType(field_type)
        return FieldType.UNSUPPORTED


class StrictFieldClassifier(KeywordFieldClassifier):
    """語境界でのみ一致させる分類器（"hotel" を tel と見なさない等）"""

    def _matches(self, text: str, keyword: str) -> bool:
        return contains_token_with_boundary(text, keyword)


_default_classifier = KeywordFieldClassifier()


def classify_by_label(label: Optional[str]) -> FieldType:
    """既定の分類器でラベルを分類する（純粋関数・例外を投げない）"""
    return _default_classifier.classify(label)
