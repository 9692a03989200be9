"""
フォーム検証サービス

scan / apply_validation / remove_validation の3操作を提供する。

- scan: ツリーを読み直してフォームとフィールドを解決する（副作用なし）
- apply_validation: フィールドへアノテーションを書き込み、状態を保存する
  （状態保存に失敗した場合は直前の書き込みを補償ロールバックする）
- remove_validation: アノテーションを取り除き、状態を removed に遷移させる

単一フィールド/ノードの失敗は記録して継続し、ツリー自体が読めない場合のみ
DocumentTreeUnavailable を送出する。
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .analyzer.field_classifier import FieldClassifier, FieldType, KeywordFieldClassifier
from .analyzer.form_field_resolver import FormFieldResolver
from .analyzer.label_resolver import LabelResolver, is_required
from .models import (
    ApplyResult,
    ResolvedField,
    ResolvedForm,
    ScanResult,
    ValidationStateRecord,
    ValidationStatus,
)
from .rules.annotations import ATTR_SENTINEL, SENTINEL_ENABLED
from .rules.rule_engine import AttributeMutationSet, RuleConfig, RuleEngine
from .services.config_service import LimitsContext, PlanLimits, RemoteConfigService
from .services.persistence import ValidationStatePersistence
from .tree.node_index import Node, NodeIndex
from .tree.provider import DocumentTreeProvider
from .utils.datetime_utils import utc_now
from .utils.error_handler import (
    DocumentTreeUnavailable,
    LimitExceeded,
    LookupFailure,
    PersistenceFailure,
    StandardErrorHandler,
)

logger = logging.getLogger(__name__)


@dataclass
class _AppliedChange:
    node_id: str
    before: Dict[str, str]
    mutations: AttributeMutationSet


class FormValidationService:
    """スキャン・適用・解除の窓口"""

    def __init__(
        self,
        provider: DocumentTreeProvider,
        persistence: Optional[ValidationStatePersistence] = None,
        config_service: Optional[RemoteConfigService] = None,
        classifier: Optional[FieldClassifier] = None,
        resolver: Optional[FormFieldResolver] = None,
        rule_engine: Optional[RuleEngine] = None,
        plan_tier: str = "free",
        limits_context: Optional[LimitsContext] = None,
        scope_key: str = "",
    ):
        self.provider = provider
        self.persistence = persistence
        self.config_service = config_service
        self.classifier = classifier or KeywordFieldClassifier()
        self.resolver = resolver or FormFieldResolver()
        self.rule_engine = rule_engine or RuleEngine()
        self.plan_tier = plan_tier
        self.limits_context = limits_context or LimitsContext()
        self.scope_key = scope_key

    # ------------------------------------------------------------------
    # 内部ヘルパ
    # ------------------------------------------------------------------
    async def _snapshot(self) -> NodeIndex:
        """ツリー全体を読み直す（失敗は操作全体として致命的）"""
        try:
            nodes = await self.provider.list_all_nodes()
        except Exception as e:
            raise DocumentTreeUnavailable(
                f"Unable to read document tree: {StandardErrorHandler.describe(e)}"
            ) from e
        try:
            return NodeIndex.from_nodes(nodes)
        except ValueError as e:
            raise DocumentTreeUnavailable(f"Invalid document tree snapshot: {e}") from e

    async def _load_records(self, scope_key: str) -> Dict[str, ValidationStateRecord]:
        if self.persistence is None:
            return {}
        try:
            records = await self.persistence.get_validation_states(scope_key)
        except Exception as e:
            logger.warning(f"Could not load validation states: {StandardErrorHandler.describe(e)}")
            return {}
        return {r.form_id: r for r in records}

    @staticmethod
    def _form_name(form: Node) -> str:
        for key in ("name", "data-name", "aria-label", "id"):
            value = (form.get(key) or "").strip()
            if value:
                return value
        return form.id

    def _resolve_form(self, index: NodeIndex, form: Node, field_ids: List[str], labels: LabelResolver) -> Tuple[List[ResolvedField], bool]:
        """フィールドを分類し、(残すフィールド, 有効なフォームか) を返す"""
        retained: List[ResolvedField] = []
        any_supported = False
        for node_id in field_ids:
            node = index.get(node_id)
            if node is None:
                continue
            label = labels.resolve(node)
            field_type = self.classifier.classify(label)
            if field_type != FieldType.UNSUPPORTED:
                any_supported = True
            required = is_required(node)
            if field_type == FieldType.UNSUPPORTED or not required:
                logger.debug(
                    f"Field {node_id} excluded from form {form.id} "
                    f"(type={field_type.value}, required={required})"
                )
                continue
            retained.append(ResolvedField(
                node_id=node_id,
                label=label,
                name=node.get("name") or "",
                required=required,
                field_type=field_type,
            ))
        return retained, any_supported

    # ------------------------------------------------------------------
    # scan
    # ------------------------------------------------------------------
    async def scan(self, scope_key: Optional[str] = None) -> ScanResult:
        """フォームと必須フィールドを解決する（読み取りのみ）"""
        scope = self.scope_key if scope_key is None else scope_key
        index = await self._snapshot()
        plan = await self.resolver.plan_async(self.provider, index)
        labels = LabelResolver(index)
        records = await self._load_records(scope)

        result = ScanResult()
        for form in index.forms():
            fields, valid = self._resolve_form(index, form, plan.fields_for(form.id), labels)
            if not valid:
                logger.debug(f"Discarding form {form.id}: no supported fields")
                result.discarded_form_ids.append(form.id)
                continue
            record = records.get(form.id)
            has_existing = form.get(ATTR_SENTINEL) == SENTINEL_ENABLED or (
                record is not None and record.status == ValidationStatus.APPLIED
            )
            result.forms.append(ResolvedForm(
                node_id=form.id,
                name=self._form_name(form),
                fields=fields,
                has_existing_validation=has_existing,
            ))
        logger.info(
            f"Scan completed: {len(result.forms)} forms, {len(result.discarded_form_ids)} discarded, "
            f"{len(plan.ambiguities)} ambiguous placements"
        )
        return result

    # ------------------------------------------------------------------
    # apply
    # ------------------------------------------------------------------
    async def _check_form_quota(self, form: ResolvedForm, limits: PlanLimits) -> Optional[LimitExceeded]:
        records = await self._load_records(self.scope_key)
        applied_elsewhere = [
            r for r in records.values()
            if r.status == ValidationStatus.APPLIED and r.form_id != form.node_id
        ]
        if len(applied_elsewhere) >= limits.max_forms:
            return LimitExceeded('maxForms', limits.max_forms, len(applied_elsewhere) + 1)
        return None

    def _select_fields(self, form: ResolvedForm, limits: PlanLimits, result: ApplyResult) -> List[ResolvedField]:
        """対応種別と件数上限の範囲内のフィールドを選ぶ"""
        supported = [f for f in form.fields if f.field_type.value in limits.supported_field_types]
        unsupported_count = len(form.fields) - len(supported)
        if unsupported_count:
            result.skipped += unsupported_count
            logger.info(f"Skipping {unsupported_count} fields with types outside the plan")
        if len(supported) > limits.max_required_fields_per_form:
            exceeded = LimitExceeded(
                'maxRequiredFieldsPerForm', limits.max_required_fields_per_form, len(supported)
            )
            logger.warning(str(exceeded))
            result.limit_exceeded.append(exceeded.to_dict())
            result.skipped += len(supported) - limits.max_required_fields_per_form
            supported = supported[:limits.max_required_fields_per_form]
        return supported

    async def plan_validation(self, form: ResolvedForm, rule_config: Optional[RuleConfig] = None) -> Dict[str, AttributeMutationSet]:
        """書き込みを行わずに各ノードへの変更を計算する（ドライラン）"""
        index = await self._snapshot()
        planned: Dict[str, AttributeMutationSet] = {}
        for field in form.fields:
            node = index.get(field.node_id)
            if node is None:
                continue
            planned[field.node_id] = self.rule_engine.plan(field, node, rule_config)
        form_node = index.get(form.node_id)
        if form_node is not None:
            planned[form.node_id] = self.rule_engine.plan_form_sentinel(form_node)
        return planned

    async def _rollback(self, changes: List[_AppliedChange]) -> bool:
        """直前に適用した変更を逆順に戻す（失敗してもリトライしない）"""
        ok = True
        for change in reversed(changes):
            try:
                await RuleEngine.execute(self.provider, change.mutations.inverse(change.before))
            except Exception as e:
                ok = False
                logger.error(
                    f"Rollback failed for node {change.node_id}: {StandardErrorHandler.describe(e)}"
                )
        return ok

    async def apply_validation(self, form: ResolvedForm, rule_config: Optional[RuleConfig] = None) -> ApplyResult:
        """フォームのフィールドにアノテーションを適用する

        単一フィールドの失敗では例外を送出せず、成功/失敗数として返す。
        """
        result = ApplyResult()
        limits = await self.limits_context.get_limits(self.config_service, self.plan_tier)

        exceeded = await self._check_form_quota(form, limits)
        if exceeded is not None:
            logger.warning(f"Form {form.node_id} not applied: {exceeded}")
            result.limit_exceeded.append(exceeded.to_dict())
            result.skipped += len(form.fields)
            return result

        fields = self._select_fields(form, limits, result)
        # scan からの時間経過があり得るため、適用直前にツリーを読み直す
        index = await self._snapshot()
        changes: List[_AppliedChange] = []

        for field in fields:
            node = index.get(field.node_id)
            if node is None:
                logger.warning(str(LookupFailure(field.node_id, 'apply')))
                result.failed += 1
                result.failed_field_ids.append(field.node_id)
                continue
            change: Optional[_AppliedChange] = None
            try:
                before = await self.provider.get_attributes(field.node_id)
                current = Node(id=node.id, type=node.type, attributes=before, children=node.children, text=node.text)
                mutations = self.rule_engine.plan(field, current, rule_config)
                change = _AppliedChange(field.node_id, before, mutations)
                await RuleEngine.execute(self.provider, mutations)
            except Exception as e:
                logger.warning(
                    f"Failed to annotate field {field.node_id}: {StandardErrorHandler.describe(e)}"
                )
                result.failed += 1
                result.failed_field_ids.append(field.node_id)
                # 途中まで書き込まれたキーを残さない
                if change is not None:
                    await self._rollback([change])
                continue
            changes.append(change)
            result.succeeded += 1

        if result.succeeded == 0:
            logger.info(f"No fields annotated for form {form.node_id}")
            # 部分的に書き込まれた変更が残らないよう戻す
            if changes:
                await self._rollback(changes)
            return result

        applied_at = utc_now()
        form_node = index.get(form.node_id)
        if form_node is not None:
            try:
                before = await self.provider.get_attributes(form.node_id)
                current = Node(id=form_node.id, type=form_node.type, attributes=before)
                mutations = self.rule_engine.plan_form_sentinel(current, applied_at)
                changes.append(_AppliedChange(form.node_id, before, mutations))
                await RuleEngine.execute(self.provider, mutations)
            except Exception as e:
                logger.warning(
                    f"Failed to mark form {form.node_id}: {StandardErrorHandler.describe(e)}"
                )
        else:
            logger.warning(str(LookupFailure(form.node_id, 'apply_form')))

        try:
            await self._persist(form.node_id, True, applied_at, ValidationStatus.APPLIED)
        except PersistenceFailure as e:
            logger.warning(f"{e}; rolling back applied annotations")
            rollback_ok = await self._rollback(changes)
            result.rolled_back = True
            result.failed += result.succeeded
            result.succeeded = 0
            if not rollback_ok:
                logger.error(f"Form {form.node_id} left partially annotated after failed rollback")
            return result

        logger.info(
            f"Applied validation to form {form.node_id}: "
            f"{result.succeeded} succeeded, {result.failed} failed, {result.skipped} skipped"
        )
        return result

    async def _persist(self, form_id: str, has_validation: bool, applied_at: Optional[datetime], status: ValidationStatus) -> None:
        if self.persistence is None:
            return
        record = ValidationStateRecord(
            form_id=form_id,
            has_validation=has_validation,
            applied_at=applied_at,
            status=status,
            scope_key=self.scope_key,
        )
        try:
            await self.persistence.put_validation_state(record)
        except Exception as e:
            raise PersistenceFailure(form_id, cause=e) from e

    # ------------------------------------------------------------------
    # remove
    # ------------------------------------------------------------------
    async def remove_validation(self, form: ResolvedForm) -> None:
        """アノテーションを取り除く（ベストエフォート・冪等）"""
        index = await self._snapshot()
        plan = await self.resolver.plan_async(self.provider, index)
        node_ids: List[str] = []
        for node_id in [f.node_id for f in form.fields] + plan.fields_for(form.node_id):
            if node_id not in node_ids:
                node_ids.append(node_id)
        node_ids.append(form.node_id)

        removed = 0
        for node_id in node_ids:
            try:
                attributes = await self.provider.get_attributes(node_id)
            except Exception as e:
                logger.warning(f"Skipping removal on node {node_id}: {StandardErrorHandler.describe(e)}")
                continue
            node = index.get(node_id)
            current = Node(id=node_id, type=node.type if node else "", attributes=attributes)
            try:
                mutations = await self.rule_engine.remove_node(self.provider, current)
            except Exception as e:
                logger.warning(f"Failed to remove annotations from {node_id}: {StandardErrorHandler.describe(e)}")
                continue
            if not mutations.is_empty:
                removed += 1

        try:
            await self._persist(form.node_id, False, None, ValidationStatus.REMOVED)
        except PersistenceFailure as e:
            logger.warning(str(e))
        logger.info(f"Removed validation from form {form.node_id} ({removed} nodes cleaned)")
