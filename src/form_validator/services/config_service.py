"""
リモート設定サービス

プラン別の上限（フォーム数・フォームあたり必須フィールド数・対応種別）を取得する。
取得結果は呼び出し側が所有する LimitsContext に TTL 付きで保持し、
サービスが利用できない場合は固定の既定値にフォールバックする。
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_LIMITS_TTL_SEC = 300


@dataclass(frozen=True)
class PlanLimits:
    max_forms: int
    max_required_fields_per_form: int
    supported_field_types: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], fallback: Optional["PlanLimits"] = None) -> "PlanLimits":
        """設定/テーブル行から生成（欠損・不正値は fallback の値を採用）"""
        base = fallback or DEFAULT_PLAN_LIMITS

        def _int(key: str, default: int) -> int:
            try:
                value = int(data.get(key, default))
            except (TypeError, ValueError):
                return default
            return value if value >= 0 else default

        types = data.get('supported_field_types')
        if isinstance(types, (list, tuple, set, frozenset)):
            supported = frozenset(str(t) for t in types)
        else:
            supported = base.supported_field_types
        return cls(
            max_forms=_int('max_forms', base.max_forms),
            max_required_fields_per_form=_int('max_required_fields_per_form', base.max_required_fields_per_form),
            supported_field_types=supported,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'max_forms': self.max_forms,
            'max_required_fields_per_form': self.max_required_fields_per_form,
            'supported_field_types': sorted(self.supported_field_types),
        }


DEFAULT_PLAN_LIMITS = PlanLimits(
    max_forms=1,
    max_required_fields_per_form=5,
    supported_field_types=frozenset({"email", "phone", "url", "plain", "message"}),
)


class RemoteConfigService(ABC):
    """プラン上限を返す外部サービス（不透明な参照関数として扱う）"""

    @abstractmethod
    async def get_limits(self, plan_tier: str) -> PlanLimits:
        ...


class StaticConfigService(RemoteConfigService):
    """設定ファイル等の固定テーブルから返す実装"""

    def __init__(self, limits_by_tier: Optional[Dict[str, Any]] = None, default: Optional[PlanLimits] = None):
        self.default = default or DEFAULT_PLAN_LIMITS
        self.limits_by_tier: Dict[str, PlanLimits] = {}
        for tier, data in (limits_by_tier or {}).items():
            if isinstance(data, PlanLimits):
                self.limits_by_tier[tier] = data
            elif isinstance(data, dict):
                self.limits_by_tier[tier] = PlanLimits.from_dict(data, self.default)

    async def get_limits(self, plan_tier: str) -> PlanLimits:
        return self.limits_by_tier.get(plan_tier, self.default)


class SupabaseConfigService(RemoteConfigService):
    """Supabase の plan_limits テーブルから取得する実装"""

    def __init__(self, supabase, table: str = 'plan_limits', default: Optional[PlanLimits] = None):
        self.supabase = supabase
        self.table = table
        self.default = default or DEFAULT_PLAN_LIMITS

    async def get_limits(self, plan_tier: str) -> PlanLimits:
        resp = (
            self.supabase.table(self.table)
            .select('*')
            .eq('plan_tier', plan_tier)
            .limit(1)
            .execute()
        )
        rows = getattr(resp, 'data', None) or []
        if not rows:
            logger.info(f"No plan_limits row for tier {plan_tier}; using defaults")
            return self.default
        return PlanLimits.from_dict(rows[0], self.default)


class LimitsContext:
    """プラン上限の短命キャッシュ（呼び出し側が生成・破棄する）"""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_LIMITS_TTL_SEC,
        fallback: Optional[PlanLimits] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = max(0.0, float(ttl_seconds))
        self.fallback = fallback or DEFAULT_PLAN_LIMITS
        self._clock = clock
        self._entries: Dict[str, Tuple[float, PlanLimits]] = {}

    def invalidate(self, plan_tier: Optional[str] = None) -> None:
        if plan_tier is None:
            self._entries.clear()
        else:
            self._entries.pop(plan_tier, None)

    async def get_limits(self, service: Optional[RemoteConfigService], plan_tier: str) -> PlanLimits:
        """キャッシュ有効なら再利用し、失敗時は既定値にフォールバック（キャッシュしない）"""
        now = self._clock()
        entry = self._entries.get(plan_tier)
        if entry and now - entry[0] < self.ttl_seconds:
            return entry[1]
        if service is None:
            return self.fallback
        try:
            limits = await service.get_limits(plan_tier)
        except Exception as e:
            logger.warning(f"Plan limits unavailable for tier {plan_tier}, using defaults: {type(e).__name__}: {e}")
            return self.fallback
        self._entries[plan_tier] = (now, limits)
        return limits
