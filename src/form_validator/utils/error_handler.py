"""
標準化されたエラーハンドリングユーティリティ

スキャン/適用/解除パイプラインで使う例外分類と、
設定読み込み時のフォールバック処理を提供する。
"""

import logging
from typing import Callable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class FormValidatorError(Exception):
    """パッケージ共通の基底例外"""
    pass


class ConfigLoadError(FormValidatorError):
    """設定読み込みエラー"""
    pass


class LookupFailure(FormValidatorError):
    """単一ノードの属性読み書き・子要素取得の失敗（局所的に回復する）"""

    def __init__(self, node_id: str, operation: str, key: Optional[str] = None, cause: Optional[BaseException] = None):
        self.node_id = node_id
        self.operation = operation
        self.key = key
        self.cause = cause
        detail = f"{operation} failed for node {node_id}"
        if key:
            detail += f" (key={key})"
        if cause is not None:
            detail += f": {type(cause).__name__}: {cause}"
        super().__init__(detail)


class ResolutionAmbiguity(FormValidatorError):
    """位置ベースの判定で所属フォームを一意に決められなかった（先勝ちで解決）"""

    def __init__(self, field_id: str, form_ids: Sequence[str]):
        self.field_id = field_id
        self.form_ids: List[str] = list(form_ids)
        super().__init__(
            f"Field {field_id} is positionally eligible for forms {self.form_ids}; "
            f"assigned to {self.form_ids[0] if self.form_ids else None}"
        )


class LimitExceeded(FormValidatorError):
    """プラン上限超過（呼び出し元へは構造化結果として返す）"""

    def __init__(self, limit: str, allowed: int, requested: int):
        self.limit = limit
        self.allowed = allowed
        self.requested = requested
        super().__init__(f"{limit} exceeded: allowed={allowed}, requested={requested}")

    def to_dict(self) -> dict:
        return {'limit': self.limit, 'allowed': self.allowed, 'requested': self.requested}


class PersistenceFailure(FormValidatorError):
    """属性変更後の状態保存に失敗した（補償ロールバックの契機）"""

    def __init__(self, form_id: str, cause: Optional[BaseException] = None):
        self.form_id = form_id
        self.cause = cause
        msg = f"Failed to persist validation state for form {form_id}"
        if cause is not None:
            msg += f": {type(cause).__name__}: {cause}"
        super().__init__(msg)


class DocumentTreeUnavailable(FormValidatorError):
    """ドキュメントツリー自体が読めない（操作全体として致命的）"""
    pass


class StandardErrorHandler:
    """標準化されたエラーハンドリング"""

    @staticmethod
    def load_config_with_fallback(
        loader_func: Callable[[], T],
        fallback_value: T,
        config_name: str,
        critical: bool = False
    ) -> T:
        """
        設定読み込みを標準化されたエラーハンドリングで実行

        Args:
            loader_func: 設定読み込み関数
            fallback_value: フォールバック値
            config_name: 設定名（ログ用）
            critical: 重要な設定か（Trueの場合は例外を伝播）

        Returns:
            T: 読み込まれた設定またはフォールバック値

        Raises:
            ConfigLoadError: critical=Trueで読み込み失敗時
        """
        try:
            result = loader_func()
            logger.info(f"Successfully loaded config: {config_name}")
            return result

        except FileNotFoundError as e:
            msg = f"Config file not found for {config_name}: {e}"
            if critical:
                logger.error(msg)
                raise ConfigLoadError(msg) from e
            logger.warning(f"{msg}, using fallback value")
            return fallback_value

        except ValueError as e:
            msg = f"Invalid config format for {config_name}: {e}"
            if critical:
                logger.error(msg)
                raise ConfigLoadError(msg) from e
            logger.warning(f"{msg}, using fallback value")
            return fallback_value

    @staticmethod
    def describe(exc: BaseException) -> str:
        """ログ出力用に例外種別とメッセージを短く整形"""
        message = str(exc)
        if len(message) > 200:
            message = message[:200] + '...'
        return f"{type(exc).__name__}: {message}" if message else type(exc).__name__
