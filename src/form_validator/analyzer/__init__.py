"""
フィールド解決・分類

ラベル文字列からの種別判定と、フォームに属するフィールドノードの解決を行う。
"""

# 遅延インポートにより、必要時に __getattr__ で解決
__all__ = [
    'FieldPatterns',
    'FieldType',
    'KeywordFieldClassifier',
    'FormFieldResolver',
    'LabelResolver',
]

def __getattr__(name):
    if name == 'FieldPatterns':
        from .field_patterns import FieldPatterns  # type: ignore
        return FieldPatterns
    if name == 'FieldType':
        from .field_classifier import FieldType  # type: ignore
        return FieldType
    if name == 'KeywordFieldClassifier':
        from .field_classifier import KeywordFieldClassifier  # type: ignore
        return KeywordFieldClassifier
    if name == 'FormFieldResolver':
        from .form_field_resolver import FormFieldResolver  # type: ignore
        return FormFieldResolver
    if name == 'LabelResolver':
        from .label_resolver import LabelResolver  # type: ignore
        return LabelResolver
    raise AttributeError(name)
