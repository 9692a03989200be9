"""
検証状態の永続化サービス

フォームごとの ValidationStateRecord を保存・取得する。
解除は status=removed への状態遷移として記録し、暗黙の削除は行わない。
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List

from ..models import ValidationStateRecord

logger = logging.getLogger(__name__)


class ValidationStatePersistence(ABC):

    @abstractmethod
    async def get_validation_states(self, scope_key: str) -> List[ValidationStateRecord]:
        ...

    @abstractmethod
    async def put_validation_state(self, record: ValidationStateRecord) -> None:
        ...

    @abstractmethod
    async def delete_validation_state(self, form_id: str) -> None:
        """明示的な削除（通常の解除フローでは使わない）"""


class InMemoryStatePersistence(ValidationStatePersistence):
    """プロセス内の辞書に保持する実装（CLI・テスト用）"""

    def __init__(self):
        self.records: Dict[str, ValidationStateRecord] = {}
        self.fail_puts = False

    async def get_validation_states(self, scope_key: str) -> List[ValidationStateRecord]:
        return [r for r in self.records.values() if not scope_key or r.scope_key == scope_key]

    async def put_validation_state(self, record: ValidationStateRecord) -> None:
        if self.fail_puts:
            raise ConnectionError("validation state store unavailable")
        self.records[record.form_id] = record

    async def delete_validation_state(self, form_id: str) -> None:
        self.records.pop(form_id, None)


class SupabaseStatePersistence(ValidationStatePersistence):
    """Supabase の validation_states テーブルに保存する実装"""

    def __init__(self, supabase, table: str = 'validation_states'):
        self.supabase = supabase
        self.table = table

    async def get_validation_states(self, scope_key: str) -> List[ValidationStateRecord]:
        query = self.supabase.table(self.table).select('*')
        if scope_key:
            query = query.eq('scope_key', scope_key)
        resp = query.execute()
        rows = getattr(resp, 'data', None) or []
        records = []
        for row in rows:
            if isinstance(row, dict):
                records.append(ValidationStateRecord.from_row(row))
        return records

    async def put_validation_state(self, record: ValidationStateRecord) -> None:
        self.supabase.table(self.table).upsert(record.to_row(), on_conflict='form_id').execute()
        logger.debug(f"Persisted validation state for form {record.form_id}: {record.status.value}")

    async def delete_validation_state(self, form_id: str) -> None:
        self.supabase.table(self.table).delete().eq('form_id', form_id).execute()
