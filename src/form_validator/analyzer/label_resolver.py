"""
ラベル・必須判定

フィールドの表示ラベルを複数の手掛かりから優先順に解決し、
ホスト側の必須マーカーを判定する。
"""

import logging
import re
from typing import Dict, Optional

from ..rules.annotations import ATTR_FIELD_LABEL, ATTR_TOOL_REQUIRED
from ..tree.node_index import Node, NodeIndex

logger = logging.getLogger(__name__)

LABEL_NODE_TYPE = "Label"
DEFAULT_LABEL = "This field"


def humanize_name(name: str) -> str:
    """'work_email' → 'Work Email'"""
    spaced = re.sub(r"[-_]+", " ", name).strip()
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), spaced)


def is_required(node: Node) -> bool:
    """ホストが必須としているか

    - ネイティブ required 属性（値が "false" 以外）
    - aria-required="true"
    - 本ツールが過去に付けた必須マーカー
    """
    attrs = node.attributes
    if "required" in attrs and str(attrs.get("required", "")).strip().lower() != "false":
        return True
    if str(attrs.get("aria-required", "")).strip().lower() == "true":
        return True
    if str(attrs.get(ATTR_TOOL_REQUIRED, "")).strip().lower() == "true":
        return True
    return False


class LabelResolver:
    """スナップショット単位でラベルを解決する（スキャンごとに作り直す）"""

    def __init__(self, index: NodeIndex):
        self.index = index
        self._labels_for: Optional[Dict[str, str]] = None
        self._by_element_id: Optional[Dict[str, Node]] = None

    def _build_maps(self) -> None:
        labels_for: Dict[str, str] = {}
        by_element_id: Dict[str, Node] = {}
        for node in self.index:
            element_id = node.get("id")
            if element_id:
                by_element_id.setdefault(element_id, node)
            if node.type == LABEL_NODE_TYPE:
                target = node.get("for")
                text = (node.text or "").strip()
                # 同じ for を持つラベルが複数ある場合は先勝ち
                if target and text and target not in labels_for:
                    labels_for[target] = text
        self._labels_for = labels_for
        self._by_element_id = by_element_id

    def _label_for(self, element_id: str) -> Optional[str]:
        if self._labels_for is None:
            self._build_maps()
        return self._labels_for.get(element_id)

    def _text_of(self, ref_id: str) -> Optional[str]:
        if self._by_element_id is None:
            self._build_maps()
        target = self._by_element_id.get(ref_id) or self.index.get(ref_id)
        if target is None:
            return None
        text = (target.text or "").strip()
        return text or None

    def resolve(self, node: Node) -> str:
        """表示ラベルを解決する

        優先順: <label for> → aria-labelledby → aria-label → data-field-label
        → label/placeholder 属性 → name の整形 → "This field"
        """
        element_id = node.get("id") or node.id
        text = self._label_for(element_id)
        if text:
            return text

        labelled_by = (node.get("aria-labelledby") or "").strip()
        if labelled_by:
            # 空白区切りで複数指定された場合は連結する
            parts = [self._text_of(ref) for ref in labelled_by.split()]
            joined = " ".join(p for p in parts if p)
            if joined:
                return joined

        for key in ("aria-label", ATTR_FIELD_LABEL, "label", "placeholder"):
            value = (node.get(key) or "").strip()
            if value:
                return value

        name = (node.get("name") or "").strip()
        if name:
            return humanize_name(name)

        return DEFAULT_LABEL
