"""設定ファイル読み込みと管理を行うユーティリティモジュール"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from form_validator.utils.error_handler import StandardErrorHandler

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "FORM_VALIDATOR_CONFIG_DIR"
VALIDATOR_CONFIG_FILE = "validator_config.json"

# ファイルが無い・壊れている場合の最小構成
DEFAULT_VALIDATOR_CONFIG: Dict[str, Any] = {
    "resolver": {
        "field_types": ["TextInput", "TextArea", "CustomWidget"],
        "container_types": ["Block", "VFlex", "HFlex", "Container", "GenericWrapper"],
        "max_depth": 64,
        "max_concurrency": 8,
    },
    "rules": {
        "custom_widget_types": ["CustomWidget", "RichSelect"],
        "custom_widget_id_marker": "custom-widget",
        "auto_error_messaging": True,
    },
    "keyword_overrides": {},
    "default_limits": {
        "max_forms": 1,
        "max_required_fields_per_form": 5,
        "supported_field_types": ["email", "phone", "url", "plain", "message"],
    },
    "plan_limits": {},
    "limits_cache_ttl_sec": 300,
    "supabase": {
        "plan_limits_table": "plan_limits",
        "validation_states_table": "validation_states",
    },
}


class ConfigManager:
    """設定ファイルの読み込みと管理を行うクラス"""

    def __init__(self, config_dir: Optional[Path] = None):
        env_dir = os.environ.get(CONFIG_DIR_ENV)
        if config_dir is not None:
            self.config_dir = Path(config_dir)
        elif env_dir:
            self.config_dir = Path(env_dir)
        else:
            self.config_dir = Path(__file__).parent.parent.parent / "config"
        self._validator_config: Optional[Dict[str, Any]] = None

    def get_validator_config(self) -> Dict[str, Any]:
        """検証ツール設定を取得（欠損セクションは既定値で補完）"""
        if self._validator_config is None:
            loaded = StandardErrorHandler.load_config_with_fallback(
                lambda: self._load_config(VALIDATOR_CONFIG_FILE),
                {},
                VALIDATOR_CONFIG_FILE,
            )
            if not isinstance(loaded, dict):
                logger.warning(f"{VALIDATOR_CONFIG_FILE} must be a dict, using defaults")
                loaded = {}
            cfg: Dict[str, Any] = {}
            for section, default in DEFAULT_VALIDATOR_CONFIG.items():
                value = loaded.get(section, default)
                if isinstance(default, dict):
                    merged = dict(default)
                    if isinstance(value, dict):
                        merged.update(value)
                    else:
                        logger.warning(f"Config section '{section}' must be a dict, using defaults")
                    cfg[section] = merged
                else:
                    cfg[section] = value
            cfg["limits_cache_ttl_sec"] = self._clamp_ttl(cfg.get("limits_cache_ttl_sec"))
            cfg["resolver"]["max_depth"] = self._clamp_int(cfg["resolver"].get("max_depth"), 64, 1, 1024)
            cfg["resolver"]["max_concurrency"] = self._clamp_int(cfg["resolver"].get("max_concurrency"), 8, 1, 64)
            self._validator_config = cfg
        return self._validator_config

    @staticmethod
    def _clamp_int(raw: Any, default: int, low: int, high: int) -> int:
        try:
            v = int(raw)
        except (TypeError, ValueError):
            return default
        return min(max(v, low), high)

    def _clamp_ttl(self, raw: Any) -> int:
        # 0〜3600 秒にクランプ
        return self._clamp_int(raw, 300, 0, 3600)

    def get_resolver_settings(self) -> Dict[str, Any]:
        return self.get_validator_config()["resolver"]

    def get_rule_defaults(self) -> Dict[str, Any]:
        return self.get_validator_config()["rules"]

    def get_keyword_overrides(self) -> Dict[str, Any]:
        return self.get_validator_config()["keyword_overrides"]

    def get_default_limits(self) -> Dict[str, Any]:
        return self.get_validator_config()["default_limits"]

    def get_plan_limits(self) -> Dict[str, Any]:
        """プラン別の上限テーブル（Supabase を使わない場合の静的設定）"""
        return self.get_validator_config()["plan_limits"]

    def get_limits_cache_ttl(self) -> int:
        return self.get_validator_config()["limits_cache_ttl_sec"]

    def get_supabase_tables(self) -> Dict[str, Any]:
        return self.get_validator_config()["supabase"]

    def _load_config(self, filename: str) -> Dict[str, Any]:
        """設定ファイルを読み込み"""
        config_path = self.config_dir / filename

        if not config_path.exists():
            raise FileNotFoundError(f"設定ファイルが見つかりません: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"設定ファイルの形式が不正です ({filename}): {e}")


# グローバルな設定マネージャーインスタンス
config_manager = ConfigManager()


def get_validator_config() -> Dict[str, Any]:
    """検証ツール設定を取得する便利関数"""
    return config_manager.get_validator_config()


def get_rule_defaults() -> Dict[str, Any]:
    """ルール既定値を取得する便利関数"""
    return config_manager.get_rule_defaults()


def get_resolver_settings() -> Dict[str, Any]:
    """フィールド解決設定を取得する便利関数"""
    return config_manager.get_resolver_settings()


def get_default_limits() -> Dict[str, Any]:
    """既定のプラン上限を取得する便利関数"""
    return config_manager.get_default_limits()
