"""
検証ルールエンジン

解決済みフィールド（種別・必須）とルール設定から、ノードのアノテーション状態を
適合させるための最小の属性変更集合を計算し、適用/解除する。

- 変更はすべて計算してから書き込む（plan_* はドライランとしてそのまま使える）
- 適用済みノードへの再適用は、旧状態を完全に取り除いた上で新状態を計算する
- ホストが元々持っていた値は退避しておき、解除時に復元する
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from ..analyzer.field_classifier import FieldType
from ..analyzer.text_utils import normalize_label
from ..models import ResolvedField
from ..tree.node_index import Node
from ..tree.provider import DocumentTreeProvider
from ..utils.datetime_utils import format_iso, utc_now
from .annotations import (
    ANNOTATED_MARKERS,
    ANNOTATION_KEYS,
    FIELD_ANNOTATION_KEYS,
    FIELD_MARKERS,
    FORM_ANNOTATION_KEYS,
    ATTR_APPLIED_AT,
    ATTR_ARIA_REQUIRED,
    ATTR_AUTO_ERROR,
    ATTR_ERROR_ID,
    ATTR_FIELD_LABEL,
    ATTR_MAXLENGTH,
    ATTR_MINLENGTH,
    ATTR_ORIGINAL,
    ATTR_PATTERN,
    ATTR_REQUIRED,
    ATTR_SENTINEL,
    ATTR_TYPE,
    EMAIL_PATTERN,
    ERROR_ID_SUFFIX,
    PHONE_PATTERN,
    SENTINEL_ENABLED,
)

logger = logging.getLogger(__name__)

_KEY_ORDER = {key: i for i, key in enumerate(ANNOTATION_KEYS)}


def _key_sort(key: str):
    return (_KEY_ORDER.get(key, len(_KEY_ORDER)), key)


@dataclass(frozen=True)
class AttributeMutation:
    """単一属性への変更（value が None なら削除）"""
    node_id: str
    key: str
    value: Optional[str] = None

    @property
    def is_removal(self) -> bool:
        return self.value is None


@dataclass
class AttributeMutationSet:
    """1回の計算で得られた変更の順序付き集合"""
    mutations: List[AttributeMutation] = field(default_factory=list)

    def __iter__(self):
        return iter(self.mutations)

    def __len__(self) -> int:
        return len(self.mutations)

    @property
    def is_empty(self) -> bool:
        return not self.mutations

    @property
    def sets(self) -> Dict[str, str]:
        return {m.key: m.value for m in self.mutations if not m.is_removal}

    @property
    def removals(self) -> List[str]:
        return [m.key for m in self.mutations if m.is_removal]

    def extend(self, other: "AttributeMutationSet") -> None:
        self.mutations.extend(other.mutations)

    def apply_to(self, attributes: Dict[str, str]) -> Dict[str, str]:
        """属性マップに変更を反映した新しいマップを返す（元は変更しない）"""
        result = dict(attributes)
        for m in self.mutations:
            if m.is_removal:
                result.pop(m.key, None)
            else:
                result[m.key] = m.value
        return result

    def inverse(self, before: Dict[str, str]) -> "AttributeMutationSet":
        """before の状態へ戻すための変更集合（ロールバック用）"""
        after = self.apply_to(before)
        node_ids = {m.node_id for m in self.mutations}
        if len(node_ids) != 1:
            raise ValueError("inverse() requires mutations for exactly one node")
        return diff_attributes(node_ids.pop(), after, before)

    def to_list(self) -> List[Dict[str, Any]]:
        return [{'node_id': m.node_id, 'key': m.key, 'value': m.value} for m in self.mutations]


def diff_attributes(node_id: str, current: Dict[str, str], target: Dict[str, str]) -> AttributeMutationSet:
    """current → target に必要な最小変更を決定的な順序で返す"""
    mutations: List[AttributeMutation] = []
    for key in sorted(current.keys() - target.keys(), key=_key_sort):
        mutations.append(AttributeMutation(node_id, key, None))
    for key in sorted(target.keys(), key=_key_sort):
        if current.get(key) != target[key]:
            mutations.append(AttributeMutation(node_id, key, target[key]))
    return AttributeMutationSet(mutations)


@dataclass
class RuleConfig:
    """ルール設定"""
    email_pattern: str = EMAIL_PATTERN
    phone_pattern: str = PHONE_PATTERN
    # ネイティブ required を持たないカスタムウィジェットのノード型
    custom_widget_types: FrozenSet[str] = frozenset({"CustomWidget", "RichSelect"})
    # 要素IDにこの文字列を含むノードもカスタムウィジェットとして扱う
    custom_widget_id_marker: str = "custom-widget"
    auto_error_messaging: bool = True
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    enabled_types: FrozenSet[FieldType] = frozenset(
        {FieldType.EMAIL, FieldType.PHONE, FieldType.URL, FieldType.PLAIN, FieldType.MESSAGE}
    )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RuleConfig":
        """設定ファイルの rules セクションから生成（不正値は既定値にフォールバック）"""
        data = data or {}
        kwargs: Dict[str, Any] = {}
        for key in ("email_pattern", "phone_pattern", "custom_widget_id_marker"):
            value = data.get(key)
            if isinstance(value, str) and value:
                kwargs[key] = value
        if isinstance(data.get("custom_widget_types"), list):
            kwargs["custom_widget_types"] = frozenset(str(t) for t in data["custom_widget_types"])
        if "auto_error_messaging" in data:
            kwargs["auto_error_messaging"] = bool(data["auto_error_messaging"])
        for key in ("min_length", "max_length"):
            value = data.get(key)
            if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
                kwargs[key] = value
        if isinstance(data.get("enabled_types"), list):
            types = set()
            for raw in data["enabled_types"]:
                try:
                    types.add(FieldType(raw))
                except ValueError:
                    logger.warning(f"Ignoring unknown field type in rule config: {raw}")
            kwargs["enabled_types"] = frozenset(types)
        return cls(**kwargs)


class RuleEngine:
    """アノテーションの計算・適用・解除"""

    def __init__(self, rule_config: Optional[RuleConfig] = None):
        self.rule_config = rule_config or RuleConfig()

    # ------------------------------------------------------------------
    # 判定
    # ------------------------------------------------------------------
    @staticmethod
    def is_annotated(attributes: Dict[str, str]) -> bool:
        return any(key in attributes for key in ANNOTATED_MARKERS)

    def is_custom_widget(self, node: Node, rule_config: Optional[RuleConfig] = None) -> bool:
        cfg = rule_config or self.rule_config
        if node.type in cfg.custom_widget_types:
            return True
        marker = cfg.custom_widget_id_marker
        element_id = node.get("id") or node.id
        return bool(marker) and marker in element_id

    @staticmethod
    def error_id_for(field: ResolvedField) -> str:
        base = field.canonical_label or normalize_label(field.node_id) or "field"
        return f"{base}{ERROR_ID_SUFFIX}"

    # ------------------------------------------------------------------
    # 計算（ドライラン）
    # ------------------------------------------------------------------
    def _host_state(self, node_id: str, attributes: Dict[str, str]) -> Dict[str, str]:
        """アノテーションを取り除き、退避していたホスト値を戻した状態"""
        if not self.is_annotated(attributes):
            return dict(attributes)
        strip = set(FORM_ANNOTATION_KEYS)
        if any(key in attributes for key in FIELD_MARKERS):
            strip.update(FIELD_ANNOTATION_KEYS)
        host = {k: v for k, v in attributes.items() if k not in strip}
        raw = attributes.get(ATTR_ORIGINAL)
        if raw:
            try:
                original = json.loads(raw)
            except ValueError:
                logger.warning(f"Discarding unreadable original-value stash on node {node_id}")
                original = {}
            if isinstance(original, dict):
                for key, value in original.items():
                    if key in ANNOTATION_KEYS and isinstance(value, str):
                        host[key] = value
        return host

    def _desired_field_attributes(self, field: ResolvedField, node: Node, cfg: RuleConfig) -> Dict[str, str]:
        desired: Dict[str, str] = {}
        if field.required:
            if self.is_custom_widget(node, cfg):
                desired[ATTR_ARIA_REQUIRED] = "true"
            else:
                desired[ATTR_REQUIRED] = "required"

        if field.field_type in cfg.enabled_types:
            if field.field_type == FieldType.EMAIL:
                desired[ATTR_TYPE] = "email"
                desired[ATTR_PATTERN] = cfg.email_pattern
            elif field.field_type == FieldType.PHONE:
                desired[ATTR_TYPE] = "tel"
                desired[ATTR_PATTERN] = cfg.phone_pattern
            elif field.field_type == FieldType.URL:
                desired[ATTR_TYPE] = "url"

        if cfg.min_length is not None:
            desired[ATTR_MINLENGTH] = str(cfg.min_length)
        if cfg.max_length is not None:
            desired[ATTR_MAXLENGTH] = str(cfg.max_length)

        desired[ATTR_ERROR_ID] = self.error_id_for(field)
        desired[ATTR_FIELD_LABEL] = field.canonical_label
        desired[ATTR_AUTO_ERROR] = "true" if cfg.auto_error_messaging else "false"
        return desired

    def plan(self, field: ResolvedField, node: Node, rule_config: Optional[RuleConfig] = None) -> AttributeMutationSet:
        """フィールドへの適用で必要な変更を計算する（書き込みはしない）"""
        cfg = rule_config or self.rule_config
        current = dict(node.attributes)
        # 旧アノテーションを完全に取り除いた状態から計算し直す
        host = self._host_state(node.id, current)
        desired = self._desired_field_attributes(field, node, cfg)

        # ネイティブ/カスタムのどちらか一方だけを残す
        conflicting = []
        if ATTR_REQUIRED in desired:
            conflicting.append(ATTR_ARIA_REQUIRED)
        elif ATTR_ARIA_REQUIRED in desired:
            conflicting.append(ATTR_REQUIRED)

        # 解除時に戻せるよう、ホストが持っていたアノテーション名の値はすべて退避する
        original: Dict[str, str] = {
            key: host[key] for key in FIELD_ANNOTATION_KEYS
            if key in host and key != ATTR_ORIGINAL
        }
        target = dict(host)
        for key in conflicting:
            target.pop(key, None)
        target.update(desired)
        if original:
            target[ATTR_ORIGINAL] = json.dumps(original, sort_keys=True, separators=(",", ":"))

        return diff_attributes(node.id, current, target)

    def plan_form_sentinel(self, form_node: Node, timestamp: Optional[datetime] = None) -> AttributeMutationSet:
        """フォームノードへのセンチネル付与（フォーム単位で1回）"""
        applied_at = format_iso(timestamp or utc_now())
        target = dict(form_node.attributes)
        target[ATTR_SENTINEL] = SENTINEL_ENABLED
        target[ATTR_APPLIED_AT] = applied_at
        return diff_attributes(form_node.id, form_node.attributes, target)

    def remove(self, node: Node) -> AttributeMutationSet:
        """エンジンが書き得る全キーを取り除く変更を計算する

        未適用ノードでは空集合を返す（エラーにしない）。
        """
        current = dict(node.attributes)
        if not self.is_annotated(current):
            return AttributeMutationSet()
        return diff_attributes(node.id, current, self._host_state(node.id, current))

    # ------------------------------------------------------------------
    # 書き込み
    # ------------------------------------------------------------------
    @staticmethod
    async def execute(provider: DocumentTreeProvider, mutations: Iterable[AttributeMutation]) -> None:
        """変更を順に書き込む（同一ノードの属性名前空間を共有するため逐次）"""
        for m in mutations:
            if m.is_removal:
                await provider.remove_attribute(m.node_id, m.key)
            else:
                await provider.set_attribute(m.node_id, m.key, m.value)

    async def apply(
        self,
        provider: DocumentTreeProvider,
        field: ResolvedField,
        node: Node,
        rule_config: Optional[RuleConfig] = None,
        dry_run: bool = False,
    ) -> AttributeMutationSet:
        mutation_set = self.plan(field, node, rule_config)
        if not dry_run:
            await self.execute(provider, mutation_set)
        logger.debug(
            f"{'Planned' if dry_run else 'Applied'} {len(mutation_set)} mutations on field {node.id}"
        )
        return mutation_set

    async def apply_form(
        self,
        provider: DocumentTreeProvider,
        form_node: Node,
        timestamp: Optional[datetime] = None,
        dry_run: bool = False,
    ) -> AttributeMutationSet:
        mutation_set = self.plan_form_sentinel(form_node, timestamp)
        if not dry_run:
            await self.execute(provider, mutation_set)
        return mutation_set

    async def remove_node(self, provider: DocumentTreeProvider, node: Node, dry_run: bool = False) -> AttributeMutationSet:
        mutation_set = self.remove(node)
        if not dry_run and not mutation_set.is_empty:
            await self.execute(provider, mutation_set)
        return mutation_set
