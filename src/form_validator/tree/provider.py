"""
ドキュメントツリープロバイダ

ホスト側ドキュメントツリーへの唯一のアダプタインターフェース。
コアはこのインターフェースだけを呼び出し、ホストのメソッド有無を探らない。
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .node_index import Node
from ..utils.error_handler import LookupFailure

logger = logging.getLogger(__name__)


class DocumentTreeProvider(ABC):
    """ホストのドキュメントツリーにアクセスするための非同期インターフェース"""

    @abstractmethod
    async def list_all_nodes(self) -> List[Node]:
        """全ノードのスナップショットを文書順で返す"""

    @abstractmethod
    async def get_attribute(self, node_id: str, key: str) -> Optional[str]:
        """属性値を返す（存在しなければ None）"""

    @abstractmethod
    async def set_attribute(self, node_id: str, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def remove_attribute(self, node_id: str, key: str) -> None:
        ...

    @abstractmethod
    async def get_children(self, node_id: str) -> List[str]:
        ...

    async def get_attributes(self, node_id: str) -> Dict[str, str]:
        """ノードの現在の属性を再取得する

        既定実装はスナップショットを取り直す。個別取得できるプロバイダは上書きする。
        """
        for node in await self.list_all_nodes():
            if node.id == node_id:
                return dict(node.attributes)
        raise LookupFailure(node_id, 'get_attributes')


class InMemoryDocumentTree(DocumentTreeProvider):
    """メモリ上のノード集合を扱うプロバイダ

    テストダブル兼プロセス内実装。fail_on に (操作名, node_id) を登録すると
    その呼び出しで LookupFailure を送出する。
    """

    def __init__(self, nodes: Iterable[Node] = (), latency: float = 0.0):
        self._nodes: Dict[str, Node] = {}
        self._order: List[str] = []
        self.latency = latency
        self.fail_on: Set[Tuple[str, str]] = set()
        self.unavailable = False
        self.calls: List[Tuple[str, str]] = []
        for node in nodes:
            self.add(node)

    def add(self, node: Node) -> Node:
        if node.id in self._nodes:
            raise ValueError(f"Duplicate node id: {node.id}")
        self._nodes[node.id] = node
        self._order.append(node.id)
        return node

    def node(self, node_id: str) -> Node:
        return self._nodes[node_id]

    async def _enter(self, operation: str, node_id: str) -> Node:
        self.calls.append((operation, node_id))
        if self.latency:
            await asyncio.sleep(self.latency)
        if (operation, node_id) in self.fail_on:
            raise LookupFailure(node_id, operation)
        node = self._nodes.get(node_id)
        if node is None:
            raise LookupFailure(node_id, operation)
        return node

    async def list_all_nodes(self) -> List[Node]:
        if self.unavailable:
            raise ConnectionError("document tree unavailable")
        return [self._nodes[nid].copy() for nid in self._order]

    async def get_attribute(self, node_id: str, key: str) -> Optional[str]:
        node = await self._enter('get_attribute', node_id)
        return node.attributes.get(key)

    async def get_attributes(self, node_id: str) -> Dict[str, str]:
        node = await self._enter('get_attributes', node_id)
        return dict(node.attributes)

    async def set_attribute(self, node_id: str, key: str, value: str) -> None:
        node = await self._enter('set_attribute', node_id)
        node.attributes[key] = value

    async def remove_attribute(self, node_id: str, key: str) -> None:
        node = await self._enter('remove_attribute', node_id)
        node.attributes.pop(key, None)

    async def get_children(self, node_id: str) -> List[str]:
        node = await self._enter('get_children', node_id)
        return list(node.children)
