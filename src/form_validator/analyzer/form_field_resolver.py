"""
フォームフィールド解決エンジン

順不同・任意の入れ子を持つ汎用コンテナ/葉ノードの集合から
「どのフィールドがどのフォームに属するか」を復元する。

1. 構造探索: フォームの子孫をコンテナ型だけ再帰的にたどり、フィールド型を収集
   （幅優先・訪問済み管理・深さ上限あり）
2. 位置探索: フォームの後ろ、次の兄弟フォームの前に並ぶフィールドを補完
   （ホストの包含関係APIが不完全な場合の救済）
3. 構造 → 位置の順でマージし、ノードIDで重複排除
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from ..tree.node_index import FORM_NODE_TYPE, Node, NodeIndex
from ..tree.provider import DocumentTreeProvider
from ..utils.error_handler import LookupFailure, ResolutionAmbiguity

logger = logging.getLogger(__name__)

DEFAULT_FIELD_TYPES: FrozenSet[str] = frozenset({"TextInput", "TextArea", "CustomWidget"})
DEFAULT_CONTAINER_TYPES: FrozenSet[str] = frozenset(
    {"Block", "VFlex", "HFlex", "Container", "GenericWrapper"}
)
DEFAULT_MAX_DEPTH = 64

NodePredicate = Callable[[Node], bool]


@dataclass
class ResolutionPlan:
    """スナップショット全体での所属判定結果"""
    structural: Dict[str, List[str]] = field(default_factory=dict)
    positional: Dict[str, List[str]] = field(default_factory=dict)
    ambiguities: List[ResolutionAmbiguity] = field(default_factory=list)
    orphans: List[str] = field(default_factory=list)

    def fields_for(self, form_id: str) -> List[str]:
        merged: List[str] = []
        seen: Set[str] = set()
        for node_id in self.structural.get(form_id, []) + self.positional.get(form_id, []):
            if node_id not in seen:
                seen.add(node_id)
                merged.append(node_id)
        return merged


class FormFieldResolver:
    """フォームに属するフィールドノードを解決する"""

    def __init__(
        self,
        field_types: Iterable[str] = DEFAULT_FIELD_TYPES,
        container_types: Iterable[str] = DEFAULT_CONTAINER_TYPES,
        max_depth: int = DEFAULT_MAX_DEPTH,
        is_field: Optional[NodePredicate] = None,
        is_container: Optional[NodePredicate] = None,
        max_concurrency: int = 8,
    ):
        self.field_types = frozenset(field_types)
        self.container_types = frozenset(container_types)
        self.max_depth = max(1, int(max_depth))
        self.is_field: NodePredicate = is_field or (lambda n: n.type in self.field_types)
        self.is_container: NodePredicate = is_container or (lambda n: n.type in self.container_types)
        self.max_concurrency = max(1, int(max_concurrency))

    @classmethod
    def from_settings(cls, settings: Optional[Dict]) -> "FormFieldResolver":
        settings = settings or {}
        return cls(
            field_types=settings.get("field_types") or DEFAULT_FIELD_TYPES,
            container_types=settings.get("container_types") or DEFAULT_CONTAINER_TYPES,
            max_depth=settings.get("max_depth", DEFAULT_MAX_DEPTH),
            max_concurrency=settings.get("max_concurrency", 8),
        )

    # ------------------------------------------------------------------
    # 構造探索
    # ------------------------------------------------------------------
    def _structural(self, index: NodeIndex, form_node: Node) -> List[str]:
        """スナップショットの子リストを幅優先でたどる"""
        found: List[str] = []
        visited: Set[str] = {form_node.id}
        level: List[Node] = [form_node]
        depth = 0
        while level and depth < self.max_depth:
            next_level: List[Node] = []
            for parent in level:
                for child in index.children_of(parent.id):
                    if child.id in visited:
                        continue
                    visited.add(child.id)
                    if self.is_field(child):
                        found.append(child.id)
                    elif self.is_container(child):
                        next_level.append(child)
            level = next_level
            depth += 1
        if level:
            logger.warning(
                f"Structural search for form {form_node.id} stopped at depth bound {self.max_depth}"
            )
        return found

    async def _structural_async(
        self, provider: DocumentTreeProvider, index: NodeIndex, form_node: Node
    ) -> List[str]:
        """プロバイダから子IDを取り直しながら幅優先でたどる

        同じ階層の子取得は並行に発行し、結果は発見順に並べ直す。
        部分木の取得に失敗した場合はその部分木だけを読み飛ばす。
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _children(node_id: str) -> Tuple[str, Optional[List[str]]]:
            async with semaphore:
                try:
                    return node_id, await provider.get_children(node_id)
                except LookupFailure as e:
                    logger.warning(f"Skipping subtree of {node_id}: {e}")
                except Exception as e:
                    failure = LookupFailure(node_id, 'get_children', cause=e)
                    logger.warning(f"Skipping subtree of {node_id}: {failure}")
                return node_id, None

        found: List[str] = []
        visited: Set[str] = {form_node.id}
        level: List[str] = [form_node.id]
        depth = 0
        while level and depth < self.max_depth:
            results = await asyncio.gather(*[_children(nid) for nid in level])
            next_level: List[str] = []
            for _parent_id, child_ids in results:
                for child_id in child_ids or []:
                    if child_id in visited:
                        continue
                    visited.add(child_id)
                    child = index.get(child_id)
                    if child is None:
                        logger.debug(f"Child {child_id} not present in snapshot; skipped")
                        continue
                    if self.is_field(child):
                        found.append(child_id)
                    elif self.is_container(child):
                        next_level.append(child_id)
            level = next_level
            depth += 1
        if level:
            logger.warning(
                f"Structural search for form {form_node.id} stopped at depth bound {self.max_depth}"
            )
        return found

    # ------------------------------------------------------------------
    # 位置探索
    # ------------------------------------------------------------------
    def _interval_end(self, index: NodeIndex, form_node: Node, descendants: Set[str]) -> int:
        """フォームの後ろで、自身の子孫ではない最初のフォームの位置"""
        position = index.position(form_node.id)
        while True:
            nxt = index.next_form_position(position)
            if nxt >= len(index):
                return nxt
            if index.node_at(nxt).id not in descendants:
                return nxt
            position = nxt

    def _positional(self, index: NodeIndex, structural: Dict[str, List[str]], plan: ResolutionPlan) -> None:
        owned: Set[str] = set()
        for ids in structural.values():
            owned.update(ids)

        intervals: List[Tuple[int, int, str]] = []
        for form in index.forms():
            descendants = index.descendant_ids(form.id)
            start = index.position(form.id)
            intervals.append((start, self._interval_end(index, form, descendants), form.id))

        for position, node in enumerate(index):
            if not self.is_field(node) or node.id in owned:
                continue
            eligible = [form_id for start, end, form_id in intervals if start < position < end]
            if not eligible:
                plan.orphans.append(node.id)
                logger.debug(f"Field {node.id} has no owning form")
                continue
            if len(eligible) > 1:
                ambiguity = ResolutionAmbiguity(node.id, eligible)
                plan.ambiguities.append(ambiguity)
                logger.warning(str(ambiguity))
            plan.positional.setdefault(eligible[0], []).append(node.id)

    # ------------------------------------------------------------------
    # 公開API
    # ------------------------------------------------------------------
    def plan(self, index: NodeIndex) -> ResolutionPlan:
        """スナップショット内の全フォームについて所属を判定する"""
        plan = ResolutionPlan()
        for form in index.forms():
            plan.structural[form.id] = self._structural(index, form)
        self._positional(index, plan.structural, plan)
        return plan

    async def plan_async(self, provider: DocumentTreeProvider, index: NodeIndex) -> ResolutionPlan:
        plan = ResolutionPlan()
        for form in index.forms():
            plan.structural[form.id] = await self._structural_async(provider, index, form)
        self._positional(index, plan.structural, plan)
        return plan

    def resolve_fields(self, index: NodeIndex, form_node: Node) -> List[Node]:
        """form_node に属するフィールドノードを発見順で返す"""
        if form_node.type != FORM_NODE_TYPE:
            logger.debug(f"resolve_fields called on non-form node {form_node.id} ({form_node.type})")
        plan = self.plan(index)
        if form_node.id not in plan.structural:
            plan.structural[form_node.id] = self._structural(index, form_node)
        return [index.get(nid) for nid in plan.fields_for(form_node.id) if index.get(nid) is not None]

    async def resolve_fields_async(
        self, provider: DocumentTreeProvider, index: NodeIndex, form_node: Node
    ) -> List[Node]:
        plan = await self.plan_async(provider, index)
        return [index.get(nid) for nid in plan.fields_for(form_node.id) if index.get(nid) is not None]
