"""
静的マークアップ用ドキュメントツリープロバイダ

HTML を BeautifulSoup で読み込み、要素をノード（型タグ・ID・属性）として公開する。
アノテーション適用後は render() で静的マークアップとして書き出せる。
"""

import logging
from typing import Dict, List, Optional

from bs4 import BeautifulSoup, FeatureNotFound, Tag

from .node_index import Node
from .provider import DocumentTreeProvider
from ..utils.error_handler import LookupFailure

logger = logging.getLogger(__name__)

# 要素がフィールドとして扱われない input type
IGNORED_INPUT_TYPES = {"hidden", "submit", "button", "reset", "image", "checkbox", "radio", "file"}

# タグ → ノード型
TAG_NODE_TYPES: Dict[str, str] = {
    "form": "Form",
    "textarea": "TextArea",
    "select": "Select",
    "label": "Label",
    "div": "Block",
    "section": "Container",
    "article": "Container",
    "main": "Container",
    "fieldset": "Container",
    "header": "Container",
    "footer": "Container",
    "aside": "Container",
    "ul": "GenericWrapper",
    "ol": "GenericWrapper",
    "li": "GenericWrapper",
    "p": "GenericWrapper",
    "span": "GenericWrapper",
    "body": "Root",
    "html": "Document",
}

# テキスト内容を保持するタグ（ラベル解決・aria-labelledby 用）
TEXT_TAGS = {"label", "span", "p", "legend", "h1", "h2", "h3", "h4", "h5", "h6", "strong", "em"}

NODE_TYPE_ATTR = "data-node-type"
NODE_ID_ATTR = "data-fv-node-id"


def attr_value(value) -> str:
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value)
    if value is None:
        return ""
    return str(value)


def node_type_for(tag: Tag) -> str:
    """要素のノード型（data-node-type があれば優先）"""
    override = tag.get(NODE_TYPE_ATTR)
    if override:
        return attr_value(override)
    name = (tag.name or "").lower()
    if name == "input":
        input_type = attr_value(tag.get("type")).lower()
        if input_type in IGNORED_INPUT_TYPES:
            return "Input"
        return "TextInput"
    return TAG_NODE_TYPES.get(name, name.capitalize() or "Element")


class MarkupDocumentTree(DocumentTreeProvider):
    """BeautifulSoup で保持した HTML をツリーとして扱うプロバイダ"""

    def __init__(self, html: str, parser: str = "html.parser"):
        try:
            self.soup = BeautifulSoup(html, parser)
        except FeatureNotFound:
            logger.warning(f"Parser {parser} not available, falling back to html.parser")
            self.soup = BeautifulSoup(html, "html.parser")
        self._tags: Dict[str, Tag] = {}
        self._ids: Dict[int, str] = {}
        self._assign_ids()

    @classmethod
    def from_file(cls, path, encoding: str = "utf-8") -> "MarkupDocumentTree":
        with open(path, "r", encoding=encoding) as f:
            return cls(f.read())

    def _assign_ids(self) -> None:
        """文書順にノードIDを割り当てる

        data-fv-node-id → 要素 id → 連番 の順で採用し、重複時は連番にする。
        """
        used = set()
        for i, tag in enumerate(self.soup.find_all(True)):
            candidates = [attr_value(tag.get(NODE_ID_ATTR)), attr_value(tag.get("id"))]
            node_id = next((c for c in candidates if c and c not in used), f"n{i}")
            if node_id in used:
                node_id = f"n{i}-{len(used)}"
            used.add(node_id)
            self._tags[node_id] = tag
            self._ids[id(tag)] = node_id

    def _tag(self, node_id: str, operation: str) -> Tag:
        tag = self._tags.get(node_id)
        if tag is None:
            raise LookupFailure(node_id, operation)
        return tag

    def _to_node(self, node_id: str, tag: Tag) -> Node:
        attributes = {str(k): attr_value(v) for k, v in tag.attrs.items()}
        children = [
            self._ids[id(child)] for child in tag.children
            if isinstance(child, Tag) and id(child) in self._ids
        ]
        text = tag.get_text(" ", strip=True) if (tag.name or "").lower() in TEXT_TAGS else ""
        return Node(id=node_id, type=node_type_for(tag), attributes=attributes, children=children, text=text)

    async def list_all_nodes(self) -> List[Node]:
        return [self._to_node(node_id, tag) for node_id, tag in self._tags.items()]

    async def get_attribute(self, node_id: str, key: str) -> Optional[str]:
        tag = self._tag(node_id, 'get_attribute')
        if key not in tag.attrs:
            return None
        return attr_value(tag.attrs[key])

    async def get_attributes(self, node_id: str) -> Dict[str, str]:
        tag = self._tag(node_id, 'get_attributes')
        return {str(k): attr_value(v) for k, v in tag.attrs.items()}

    async def set_attribute(self, node_id: str, key: str, value: str) -> None:
        tag = self._tag(node_id, 'set_attribute')
        tag[key] = value

    async def remove_attribute(self, node_id: str, key: str) -> None:
        tag = self._tag(node_id, 'remove_attribute')
        if key in tag.attrs:
            del tag[key]

    async def get_children(self, node_id: str) -> List[str]:
        tag = self._tag(node_id, 'get_children')
        return [
            self._ids[id(child)] for child in tag.children
            if isinstance(child, Tag) and id(child) in self._ids
        ]

    def render(self) -> str:
        """現在の属性状態を反映した HTML を返す"""
        return str(self.soup)
