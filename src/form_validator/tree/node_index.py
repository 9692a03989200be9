"""
ドキュメントツリーのスナップショット

1回のスキャンで取得した全ノード（型タグ・ID・属性マップ・子ID列）を
読み取り専用のインデックスとして保持する。
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Set

logger = logging.getLogger(__name__)

FORM_NODE_TYPE = "Form"


@dataclass
class Node:
    """ドキュメントツリーの1要素（フォーム・コンテナ・フィールド）"""
    id: str
    type: str
    attributes: Dict[str, str] = field(default_factory=dict)
    children: List[str] = field(default_factory=list)
    # ラベル等のテキストノード内容（フィールドでは空）
    text: str = ""

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.attributes.get(key, default)

    def has(self, key: str) -> bool:
        return key in self.attributes

    def copy(self) -> "Node":
        """構造は共有せず属性・子リストを複製したノードを返す"""
        return Node(
            id=self.id,
            type=self.type,
            attributes=dict(self.attributes),
            children=list(self.children),
            text=self.text,
        )


class NodeIndex:
    """全ノードの読み取り専用スナップショット

    ノードの並び順はプロバイダが返した順序（文書順）をそのまま保持し、
    位置ベースのフォールバック判定に利用する。
    """

    def __init__(self, nodes: Iterable[Node]):
        self._nodes: Dict[str, Node] = {}
        self._order: List[str] = []
        for node in nodes:
            if node.id in self._nodes:
                raise ValueError(f"Duplicate node id in snapshot: {node.id}")
            self._nodes[node.id] = node
            self._order.append(node.id)
        self._positions: Dict[str, int] = {nid: i for i, nid in enumerate(self._order)}
        self._form_positions: List[int] = [
            i for i, nid in enumerate(self._order)
            if self._nodes[nid].type == FORM_NODE_TYPE
        ]
        logger.debug(
            f"NodeIndex built: {len(self._order)} nodes, {len(self._form_positions)} forms"
        )

    @classmethod
    def from_nodes(cls, nodes: Iterable[Node]) -> "NodeIndex":
        return cls(nodes)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[Node]:
        for nid in self._order:
            yield self._nodes[nid]

    def get(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def position(self, node_id: str) -> int:
        """文書順での位置（存在しない場合は -1）"""
        return self._positions.get(node_id, -1)

    def node_at(self, position: int) -> Node:
        return self._nodes[self._order[position]]

    def children_of(self, node_id: str) -> List[Node]:
        """子ノードを宣言順で返す（スナップショットに無いIDは読み飛ばす）"""
        node = self._nodes.get(node_id)
        if node is None:
            return []
        result = []
        for child_id in node.children:
            child = self._nodes.get(child_id)
            if child is None:
                logger.debug(f"Child {child_id} of {node_id} missing from snapshot")
                continue
            result.append(child)
        return result

    def forms(self) -> List[Node]:
        """フォームノードを文書順で返す"""
        return [self.node_at(p) for p in self._form_positions]

    def next_form_position(self, position: int) -> int:
        """position より後ろにある最初のフォームの位置（無ければ末尾）"""
        for p in self._form_positions:
            if p > position:
                return p
        return len(self._order)

    def descendant_ids(self, node_id: str) -> Set[str]:
        """子グラフをたどった全子孫ID（循環に対しても停止する）"""
        seen: Set[str] = set()
        stack = list(self._nodes[node_id].children) if node_id in self._nodes else []
        while stack:
            nid = stack.pop()
            if nid in seen or nid == node_id:
                continue
            seen.add(nid)
            child = self._nodes.get(nid)
            if child is not None:
                stack.extend(child.children)
        return seen
