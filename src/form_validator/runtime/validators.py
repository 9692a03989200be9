"""
実行時の検証述語とエラーメッセージ

フィールドの宣言的属性（required / type / pattern / minlength / maxlength）から
規則列を導出し、現在値に対して先頭から評価する。最初に失敗した規則のメッセージを返す。
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# 電話番号の正規ルール（区切り文字を除去した後に 10〜15 桁）
PHONE_SEPARATORS = re.compile(r"[\s\-().]")
PHONE_CANONICAL = re.compile(r"\+?[1-9]\d{9,14}")
EMAIL_CANONICAL = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
URL_SCHEME = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*")

MESSAGE_TEMPLATES: Dict[str, str] = {
    'required': '{label} is required',
    'email': '{label} must be a valid email address (name@company.com)',
    'phone': '{label} must be a valid phone number (US & CA: (555) 123-4567)',
    'url': '{label} must be a valid URL (https://www.example.com)',
    'minlength': '{label} must be at least {min} characters long',
    'maxlength': '{label} must be no more than {max} characters long',
    'pattern': '{label} has an invalid format',
}
FALLBACK_TEMPLATE = 'Please check {label}'

# 型属性 → 規則名
TYPE_RULES: Dict[str, str] = {
    'email': 'email',
    'tel': 'phone',
    'url': 'url',
}


def is_valid_email(value: str) -> bool:
    return EMAIL_CANONICAL.fullmatch(value) is not None


def is_valid_phone(value: str) -> bool:
    return PHONE_CANONICAL.fullmatch(PHONE_SEPARATORS.sub('', value)) is not None


def is_valid_url(value: str) -> bool:
    """スキームを持つ絶対 URL か（http 以外や mailto: / urn: 等の不透明形式も可）"""
    text = value.strip()
    if not text or any(ch.isspace() for ch in text):
        return False
    try:
        parsed = urlparse(text)
    except ValueError:
        return False
    if not URL_SCHEME.fullmatch(parsed.scheme):
        return False
    # "scheme://" 形式ならホスト部が必須
    if text[len(parsed.scheme) + 1:].startswith('//'):
        return bool(parsed.netloc)
    return bool(parsed.path)


def matches_pattern(value: str, pattern: str) -> bool:
    """HTML の pattern 属性と同様に全体一致で判定（不正な正規表現は通す）"""
    try:
        return re.fullmatch(f"(?:{pattern})", value) is not None
    except re.error:
        logger.warning(f"Ignoring invalid pattern attribute: {pattern!r}")
        return True


def format_message(rule: str, label: str, **context) -> str:
    template = MESSAGE_TEMPLATES.get(rule, FALLBACK_TEMPLATE)
    return template.format(label=label, min=context.get('min', ''), max=context.get('max', ''))


@dataclass
class Rule:
    """属性から導出した1つの検証規則"""
    name: str
    message: str
    limit: Optional[int] = None
    pattern: Optional[str] = None

    def check(self, value: str) -> bool:
        if self.name == 'required':
            return bool(value.strip())
        # 任意項目の空値には書式規則を適用しない
        if not value:
            return True
        if self.name == 'email':
            return is_valid_email(value)
        if self.name == 'phone':
            return is_valid_phone(value)
        if self.name == 'url':
            return is_valid_url(value)
        if self.name == 'minlength':
            return len(value) >= (self.limit or 0)
        if self.name == 'maxlength':
            return self.limit is None or len(value) <= self.limit
        if self.name == 'pattern':
            return matches_pattern(value, self.pattern or '')
        return True


def _int_attr(attributes: Dict[str, str], *keys: str) -> Optional[int]:
    for key in keys:
        raw = attributes.get(key)
        if raw is None or raw == '':
            continue
        try:
            return int(raw)
        except ValueError:
            logger.debug(f"Ignoring non-numeric {key}={raw!r}")
    return None


def rules_from_attributes(attributes: Dict[str, str], label: str) -> List[Rule]:
    """フィールド属性から評価順の規則列を作る

    data-error-* 属性があれば既定のメッセージより優先する。
    """
    rules: List[Rule] = []

    def _message(rule: str, **context) -> str:
        return attributes.get(f'data-error-{rule}') or format_message(rule, label, **context)

    required = attributes.get('required')
    if (required is not None and required != 'false') or attributes.get('aria-required') == 'true':
        rules.append(Rule('required', _message('required')))

    type_rule = TYPE_RULES.get((attributes.get('type') or '').lower())
    if type_rule:
        rules.append(Rule(type_rule, _message(type_rule)))

    min_length = _int_attr(attributes, 'minlength', 'data-min-length')
    if min_length is not None:
        rules.append(Rule('minlength', _message('minlength', min=min_length), limit=min_length))

    max_length = _int_attr(attributes, 'maxlength', 'data-max-length')
    if max_length is not None:
        rules.append(Rule('maxlength', _message('maxlength', max=max_length), limit=max_length))

    pattern = attributes.get('pattern') or attributes.get('data-pattern')
    if pattern:
        rules.append(Rule('pattern', _message('pattern'), pattern=pattern))
    return rules


def first_failure(rules: List[Rule], value: str) -> Optional[Rule]:
    for rule in rules:
        if not rule.check(value):
            return rule
    return None
