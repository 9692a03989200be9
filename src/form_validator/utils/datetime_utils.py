"""
DateTime Utilities

センチネル属性 data-a11y-validator-applied-at と検証状態レコードの
applied_at を、秒精度・Z 終端の UTC ISO 文字列で統一する。
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso(value: Union[datetime, str]) -> datetime:
    """
    ISO 文字列または datetime を aware な UTC datetime にする

    タイムゾーンなしの入力は UTC とみなす。

    Raises:
        ValueError: 空文字列・解釈できない文字列
        TypeError: str / datetime 以外
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("Empty datetime string")
        if text.endswith(('Z', 'z')):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValueError(f"Invalid ISO datetime: {value}") from e
    else:
        raise TypeError(f"Unsupported type for datetime conversion: {type(value)}")

    if parsed.tzinfo is None:
        logger.debug(f"Treating naive datetime as UTC: {value}")
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_iso(value: Union[datetime, str]) -> str:
    """例: 2024-05-01T09:00:00Z"""
    return parse_iso(value).replace(microsecond=0).isoformat().replace('+00:00', 'Z')


def parse_iso_or_none(value: Optional[Union[datetime, str]]) -> Optional[datetime]:
    """永続化レコード用: 欠損・不正値は None"""
    if value in (None, ''):
        return None
    try:
        return parse_iso(value)
    except (ValueError, TypeError):
        logger.warning(f"Ignoring unparseable timestamp: {value!r}")
        return None
