"""文字列ユーティリティ（分類器共有関数）

ラベル正規化と語境界付きトークン判定を独立モジュールとして切り出したもの。
"""

from __future__ import annotations

import re
from typing import Optional

_CJK_RE: re.Pattern[str] = re.compile(r"[\u3040-\u30ff\u3400-\u9fff\uff66-\uff9f]")

_SEPARATOR_RUN_RE = re.compile(r"[\s_\-]+")
_DISALLOWED_RE = re.compile(r"[^a-z0-9-]")
_HYPHEN_RUN_RE = re.compile(r"-{2,}")


def has_cjk(s: str) -> bool:
    """日本語(CJK)文字を含むかの軽量判定。"""
    if not s:
        return False
    return _CJK_RE.search(s) is not None


def normalize_label(label: Optional[str]) -> str:
    """ラベルを小文字・ハイフン区切りの正規形に変換する。

    - 空白/ハイフン/アンダースコアの連続は単一ハイフンに置換
    - [a-z0-9-] 以外は除去し、除去で生じたハイフン連続も1つに畳む
    - 先頭/末尾のハイフンを除去

    冪等: normalize_label(normalize_label(x)) == normalize_label(x)。
    正規化後に同一となる2つのラベルはこの識別子では区別できない。
    """
    if not label:
        return ""
    text = _SEPARATOR_RUN_RE.sub("-", str(label).lower())
    text = _DISALLOWED_RE.sub("", text)
    text = _HYPHEN_RUN_RE.sub("-", text)
    return text.strip("-")


def contains_token_with_boundary(text: str, token: str) -> bool:
    """語境界を考慮した包含判定。

    - 半角/全角スペース、括弧・句読点・スラッシュ等を境界として扱う。
    - トークンが CJK を含む場合は空白で区切られない前提から部分一致を許容。
    """
    if not text or not token:
        return False

    boundary_chars = (
        r"_\-\./\\\s:;,!?()\[\]"
        + r"　（）［］｛｝「」『』【】。、・：；！？／＼＜＞"
    )
    left_boundary = rf"(^|[{boundary_chars}])"
    right_boundary = rf"($|[{boundary_chars}])"
    pattern = left_boundary + re.escape(token) + right_boundary
    if re.search(pattern, text, flags=re.IGNORECASE):
        return True

    if has_cjk(token):
        return token in text
    return False
