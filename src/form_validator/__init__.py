"""
アクセシブルなフォーム検証ツール

フォームと必須フィールドの解決、検証アノテーションの適用/解除、
アノテーションを読むクライアント検証ランタイムを提供する。

注意: Playwright 等の重い依存を持つモジュールは遅延インポートとし、
静的マークアップのみを扱う利用時に不要な依存を読み込まない。
"""

__all__ = [
    'FormValidationService',
    'ClientValidationRuntime',
    'RuntimeDom',
    'MarkupDocumentTree',
    'InMemoryDocumentTree',
]


def __getattr__(name):
    if name == 'FormValidationService':
        from .service import FormValidationService  # type: ignore
        return FormValidationService
    if name == 'ClientValidationRuntime':
        from .runtime.client_runtime import ClientValidationRuntime  # type: ignore
        return ClientValidationRuntime
    if name == 'RuntimeDom':
        from .runtime.dom import RuntimeDom  # type: ignore
        return RuntimeDom
    if name == 'MarkupDocumentTree':
        from .tree.markup_provider import MarkupDocumentTree  # type: ignore
        return MarkupDocumentTree
    if name == 'InMemoryDocumentTree':
        from .tree.provider import InMemoryDocumentTree  # type: ignore
        return InMemoryDocumentTree
    raise AttributeError(name)
