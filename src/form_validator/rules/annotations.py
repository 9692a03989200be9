"""
アノテーション属性定義

RuleEngine が書き込み、ClientValidationRuntime が別プロセス・別時点で読み取る
属性名の一覧。静的マークアップとして永続化されるため公開インターフェースとして扱い、
名前と意味を変更しないこと。
"""

from typing import Tuple

# フォームノードに付けるセンチネル
ATTR_SENTINEL = "data-a11y-validator"
SENTINEL_ENABLED = "enabled"
ATTR_APPLIED_AT = "data-a11y-validator-applied-at"

# 必須マーキング（ネイティブ/カスタムウィジェットのどちらか一方）
ATTR_REQUIRED = "required"
ATTR_ARIA_REQUIRED = "aria-required"

# 型マーキング
ATTR_TYPE = "type"
ATTR_PATTERN = "pattern"
ATTR_MINLENGTH = "minlength"
ATTR_MAXLENGTH = "maxlength"

# エラー表示の紐付け
ATTR_ERROR_ID = "data-error-id"
ATTR_FIELD_LABEL = "data-field-label"
ATTR_AUTO_ERROR = "data-auto-error-messaging"

# 適用前にホストが持っていた値の退避先（JSON）
ATTR_ORIGINAL = "data-a11y-validator-original"

# ホスト/管理画面が付ける必須マーカー（本エンジンは書き込まない）
ATTR_TOOL_REQUIRED = "data-a11y-required"

# 実行時に参照するホスト属性
ATTR_ARIA_INVALID = "aria-invalid"
ATTR_ARIA_DESCRIBEDBY = "aria-describedby"

FIELD_ANNOTATION_KEYS: Tuple[str, ...] = (
    ATTR_REQUIRED,
    ATTR_ARIA_REQUIRED,
    ATTR_TYPE,
    ATTR_PATTERN,
    ATTR_MINLENGTH,
    ATTR_MAXLENGTH,
    ATTR_ERROR_ID,
    ATTR_FIELD_LABEL,
    ATTR_AUTO_ERROR,
    ATTR_ORIGINAL,
)

FORM_ANNOTATION_KEYS: Tuple[str, ...] = (
    ATTR_SENTINEL,
    ATTR_APPLIED_AT,
)

# エンジンが書き込み得る全キー（固定・列挙可能）
ANNOTATION_KEYS: Tuple[str, ...] = FIELD_ANNOTATION_KEYS + FORM_ANNOTATION_KEYS

# フィールドが適用済みかどうかの判定に使うマーカー
FIELD_MARKERS: Tuple[str, ...] = (
    ATTR_AUTO_ERROR,
    ATTR_ORIGINAL,
)

ANNOTATED_MARKERS: Tuple[str, ...] = (ATTR_SENTINEL,) + FIELD_MARKERS

# 実行時の検証規則と同じ判定になる HTML pattern 値（暗黙に全体一致）
EMAIL_PATTERN = r"[^\s@]+@[^\s@]+\.[^\s@]+"
# 区切り文字 [\s\-().] を任意位置に許し、除去後は +?[1-9] に続く 9〜14 桁
_PHONE_SEP = r"[\s\-\(\)\.]*"
PHONE_PATTERN = rf"{_PHONE_SEP}\+?{_PHONE_SEP}[1-9](?:{_PHONE_SEP}\d){{9,14}}{_PHONE_SEP}"

ERROR_ID_SUFFIX = "-error"
