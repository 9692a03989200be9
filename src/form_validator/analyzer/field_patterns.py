"""
フィールドパターン定義

ラベル文字列から入力種別を推定するためのキーワード辞書。
判定順は email → phone → url → name → message で、先に一致したものを採用する。
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


# 判定順（先勝ち・スコアリングなし）
PATTERN_PRIORITY: Tuple[str, ...] = ("email", "phone", "url", "name", "message")


class FieldPatterns:
    """キーワード辞書の定義・管理クラス"""

    def __init__(self, overrides: Optional[Dict[str, Any]] = None):
        """
        Args:
            overrides: 種別ごとのキーワード追加/置換設定
                例: {"phone": {"keywords": [...], "replace": False}}
        """
        self.patterns = self._init_field_patterns()
        if overrides:
            self._apply_overrides(overrides)
        logger.debug(f"Initialized {len(self.patterns)} field pattern families")

    def get_patterns(self) -> Dict[str, Dict[str, Any]]:
        """全パターンを取得"""
        return self.patterns

    def get_keywords(self, family: str) -> List[str]:
        """指定種別のキーワード一覧（小文字）"""
        return list(self.patterns.get(family, {}).get("keywords", []))

    def iter_by_priority(self):
        """判定順に (種別, キーワード一覧) を返す"""
        for family in PATTERN_PRIORITY:
            yield family, self.get_keywords(family)

    def _apply_overrides(self, overrides: Dict[str, Any]) -> None:
        for family, spec in overrides.items():
            if family not in self.patterns:
                logger.warning(f"Ignoring keyword override for unknown family: {family}")
                continue
            if not isinstance(spec, dict):
                logger.warning(f"Keyword override for {family} must be a dict")
                continue
            words = [str(w).strip().lower() for w in spec.get("keywords", []) if str(w).strip()]
            if spec.get("replace"):
                self.patterns[family]["keywords"] = words
            else:
                existing = self.patterns[family]["keywords"]
                self.patterns[family]["keywords"] = existing + [w for w in words if w not in existing]

    def _init_field_patterns(self) -> Dict[str, Dict[str, Any]]:
        return {
            "email": {
                "keywords": ["email", "e-mail", "mail"],
                "field_type": "email",
            },
            "phone": {
                "keywords": ["phone", "tel", "telephone", "mobile", "cell", "fax"],
                "field_type": "phone",
            },
            "url": {
                "keywords": ["url", "website", "web site", "homepage", "link", "profile"],
                "field_type": "url",
            },
            # 氏名系は専用の型を持たず plain として扱う
            "name": {
                "keywords": ["name"],
                "field_type": "plain",
            },
            "message": {
                "keywords": [
                    "message", "comment", "feedback", "inquiry", "enquiry",
                    "question", "notes",
                ],
                "field_type": "message",
            },
        }
