"""
ログサニタイゼーション

実行時検証やサービス層のログに、利用者がフィールドへ入力した値
（メールアドレス・電話番号）や Supabase のキーが残らないようにする。
マスク対象は「テキスト中のパターン」と「辞書のキー名」の2系統。
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

REDACTED = "***REDACTED***"

# (名前, パターン, 置換) 適用順に並べる。メールは電話より先に潰す
TEXT_RULES: Tuple[Tuple[str, str, str], ...] = (
    ("credential", r'(?i)(api[_-]?key|token|secret|password)\s*[=:]\s*["\']?([a-zA-Z0-9_.-]{8,})["\']?', r"\1=" + REDACTED),
    ("jwt", r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+", "***JWT_REDACTED***"),
    ("url_credential", r"(https?://)[^:/\s]+:[^@/\s]+@", r"\1***:" + REDACTED + "@"),
    ("email", r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}", "***EMAIL_REDACTED***"),
    ("phone_nanp", r"(?<![\w-])\(?\d{3}\)?[\s.\-]?\d{3}[\s.\-]\d{4}\b", "***PHONE_REDACTED***"),
    ("phone_intl", r"(?<!\w)\+\d{10,15}\b", "***PHONE_REDACTED***"),
    ("json_field", r'(?i)("(?:password|secret|token|key|value)"\s*:\s*")([^"]+)(")', r"\1" + REDACTED + r"\3"),
)

# 値を丸ごと伏せる辞書キー（大文字化して部分一致）
MASKED_KEYS: Tuple[str, ...] = (
    "SUPABASE_SERVICE_ROLE_KEY", "SERVICE_ROLE", "API_KEY", "APIKEY",
    "TOKEN", "SECRET", "PASSWORD",
    "VALUE",
)

MASKED_URL_PARAMS: Tuple[str, ...] = ("token", "key", "secret", "password", "auth")


def _compile_rules(rules: Iterable[Tuple[str, str, str]]) -> List[Tuple[str, re.Pattern, str]]:
    compiled = []
    for name, pattern, replacement in rules:
        try:
            compiled.append((name, re.compile(pattern), replacement))
        except re.error as e:
            logger.warning(f"Skipping sanitizer rule '{name}': {e}")
    return compiled


class LogSanitizer:
    """テキスト・辞書・リスト・URL の機密値をマスクする"""

    def __init__(self, extra_masked_keys: Optional[Iterable[str]] = None):
        self._rules = _compile_rules(TEXT_RULES)
        self.masked_keys = MASKED_KEYS + tuple(k.upper() for k in (extra_masked_keys or ()))

    def is_masked_key(self, key: Any) -> bool:
        upper = str(key).upper()
        return any(marker in upper for marker in self.masked_keys)

    def sanitize_string(self, text: str) -> str:
        if not isinstance(text, str):
            return str(text)
        for _, pattern, replacement in self._rules:
            text = pattern.sub(replacement, text)
        return text

    def sanitize(self, data: Any) -> Any:
        """型に応じて再帰的にマスクする（str / dict / list 以外はそのまま）"""
        if isinstance(data, str):
            return self.sanitize_string(data)
        if isinstance(data, dict):
            return {
                key: REDACTED if self.is_masked_key(key) else self.sanitize(value)
                for key, value in data.items()
            }
        if isinstance(data, list):
            return [self.sanitize(item) for item in data]
        return data

    def sanitize_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.sanitize(data) if isinstance(data, dict) else data

    def sanitize_list(self, data: List[Any]) -> List[Any]:
        return self.sanitize(data) if isinstance(data, list) else data

    def sanitize_url(self, url: str) -> str:
        """
        クエリパラメータ名で機密値を伏せ、残りをテキストルールに通す

        Args:
            url: ライブページの URL など

        Returns:
            str: マスク済み URL（パラメータ順は維持）
        """
        if not isinstance(url, str) or "?" not in url:
            return self.sanitize_string(url)

        base, query = url.split("?", 1)
        parts = []
        for param in query.split("&"):
            name, sep, _ = param.partition("=")
            if sep and any(marker in name.lower() for marker in MASKED_URL_PARAMS):
                parts.append(f"{name}={REDACTED}")
            else:
                parts.append(param)
        return self.sanitize_string(f"{base}?{'&'.join(parts)}")

    def sanitize_log_record(self, record: logging.LogRecord) -> None:
        """メッセージを展開済みの形でマスクし、args を空にする"""
        try:
            record.msg = self.sanitize_string(record.getMessage())
            record.args = ()
        except (TypeError, ValueError) as e:
            logger.warning(f"Error sanitizing log record: {e}")


class SanitizingHandler(logging.Handler):
    """既存ハンドラーを包み、マスク済みのレコード複製だけを渡す"""

    def __init__(self, handler: logging.Handler, sanitizer: Optional[LogSanitizer] = None):
        super().__init__(handler.level)
        self.handler = handler
        self.sanitizer = sanitizer or LogSanitizer()
        if handler.formatter:
            self.setFormatter(handler.formatter)

    def emit(self, record: logging.LogRecord):
        clone = logging.makeLogRecord(record.__dict__)
        self.sanitizer.sanitize_log_record(clone)
        self.handler.emit(clone)


global_sanitizer = LogSanitizer()


def sanitize_for_log(data: Union[str, Dict, List, Any]) -> Union[str, Dict, List, Any]:
    return global_sanitizer.sanitize(data)


def setup_sanitized_logging(logger_name: Optional[str] = None) -> logging.Logger:
    """
    指定ロガーのハンドラーを SanitizingHandler で包む（二重には包まない）

    Args:
        logger_name: ロガー名（None ならルートロガー）

    Returns:
        logging.Logger: 設定済みロガー
    """
    target = logging.getLogger(logger_name)
    target.handlers[:] = [
        h if isinstance(h, SanitizingHandler) else SanitizingHandler(h)
        for h in target.handlers
    ]
    return target
