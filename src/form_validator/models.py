"""
スキャン・適用結果のデータ構造

ResolvedField / ResolvedForm はスキャンごとに再導出され、
スキャンをまたいだ同一性は持たない（ラベル/nameからの再導出のみ）。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .analyzer.field_classifier import FieldType
from .analyzer.text_utils import normalize_label
from .utils.datetime_utils import format_iso, parse_iso_or_none


@dataclass(frozen=True)
class ResolvedField:
    """フォームに属すると判定された入力フィールド"""
    node_id: str
    label: str
    name: str
    required: bool
    field_type: FieldType

    @property
    def canonical_label(self) -> str:
        return normalize_label(self.label)


@dataclass
class ResolvedForm:
    """検証適用の単位となるフォーム"""
    node_id: str
    name: str
    fields: List[ResolvedField] = field(default_factory=list)
    has_existing_validation: bool = False


class ValidationStatus(str, Enum):
    NONE = "none"
    APPLIED = "applied"
    REMOVED = "removed"


@dataclass
class ValidationStateRecord:
    """フォーム単位の検証状態（外部永続化）

    削除は行わず、解除は status=removed への状態遷移として表す。
    """
    form_id: str
    has_validation: bool = False
    applied_at: Optional[datetime] = None
    status: ValidationStatus = ValidationStatus.NONE
    scope_key: str = ""

    def to_row(self) -> Dict[str, Any]:
        return {
            'form_id': self.form_id,
            'scope_key': self.scope_key,
            'has_validation': self.has_validation,
            'applied_at': format_iso(self.applied_at) if self.applied_at else None,
            'status': self.status.value,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ValidationStateRecord":
        raw_status = row.get('status') or ValidationStatus.NONE.value
        try:
            status = ValidationStatus(raw_status)
        except ValueError:
            status = ValidationStatus.NONE
        applied_at = row.get('applied_at')
        return cls(
            form_id=str(row.get('form_id', '')),
            scope_key=str(row.get('scope_key') or ''),
            has_validation=bool(row.get('has_validation')),
            applied_at=parse_iso_or_none(applied_at),
            status=status,
        )


@dataclass
class ScanResult:
    """scan() の戻り値"""
    forms: List[ResolvedForm] = field(default_factory=list)
    discarded_form_ids: List[str] = field(default_factory=list)

    @property
    def has_existing_validations(self) -> Dict[str, bool]:
        return {f.node_id: f.has_existing_validation for f in self.forms}

    def form(self, node_id: str) -> Optional[ResolvedForm]:
        for f in self.forms:
            if f.node_id == node_id:
                return f
        return None


@dataclass
class ApplyResult:
    """applyValidation() の戻り値（フィールド単位の部分失敗を集計）"""
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    limit_exceeded: List[Dict[str, Any]] = field(default_factory=list)
    rolled_back: bool = False
    failed_field_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'succeeded': self.succeeded,
            'failed': self.failed,
            'skipped': self.skipped,
            'limit_exceeded': list(self.limit_exceeded),
            'rolled_back': self.rolled_back,
            'failed_field_ids': list(self.failed_field_ids),
        }
