"""
クライアント検証ランタイム用 DOM

注釈済みの静的マークアップを BeautifulSoup で保持し、ランタイムが必要とする
最小限の操作（フォーム/フィールド列挙・値の読み書き・エラー表示要素の生成）を提供する。
"""

import logging
from typing import Dict, List, Optional, Union

from bs4 import BeautifulSoup, Tag

from ..analyzer.label_resolver import DEFAULT_LABEL, humanize_name
from ..rules.annotations import ATTR_ERROR_ID
from ..tree.markup_provider import IGNORED_INPUT_TYPES, NODE_TYPE_ATTR, attr_value

logger = logging.getLogger(__name__)

ERROR_CLASS = "a11y-error-message"
FIELD_TAGS = ("input", "textarea", "select")


class RuntimeDom:
    """BeautifulSoup 上の DOM ラッパ"""

    def __init__(self, soup: Union[BeautifulSoup, str], parser: str = "html.parser"):
        self.soup = soup if isinstance(soup, BeautifulSoup) else BeautifulSoup(soup, parser)

    @classmethod
    def from_html(cls, html: str, parser: str = "html.parser") -> "RuntimeDom":
        return cls(BeautifulSoup(html, parser))

    # ------------------------------------------------------------------
    # 列挙
    # ------------------------------------------------------------------
    def forms(self) -> List[Tag]:
        """<form> 要素と data-node-type="Form" の要素を文書順で返す"""
        return [
            tag for tag in self.soup.find_all(True)
            if tag.name == "form" or tag.get(NODE_TYPE_ATTR) == "Form"
        ]

    @staticmethod
    def is_field(tag: Tag) -> bool:
        if tag.name == "input":
            return (tag.get("type") or "text").lower() not in IGNORED_INPUT_TYPES
        if tag.name in FIELD_TAGS:
            return True
        return tag.has_attr(ATTR_ERROR_ID)

    def fields(self, form: Tag) -> List[Tag]:
        return [tag for tag in form.find_all(True) if self.is_field(tag)]

    def get_element_by_id(self, element_id: str) -> Optional[Tag]:
        if not element_id:
            return None
        return self.soup.find(id=element_id)

    @staticmethod
    def attributes(tag: Tag) -> Dict[str, str]:
        return {key: attr_value(value) for key, value in tag.attrs.items()}

    # ------------------------------------------------------------------
    # 値
    # ------------------------------------------------------------------
    @staticmethod
    def get_value(tag: Tag) -> str:
        if tag.name == "textarea":
            return tag.get_text()
        if tag.name == "select":
            option = tag.find("option", selected=True) or tag.find("option")
            if option is None:
                return ""
            value = option.get("value")
            return value if value is not None else option.get_text().strip()
        return attr_value(tag.get("value"))

    def set_value(self, tag: Tag, value: str) -> None:
        if tag.name == "textarea":
            tag.string = value
        elif tag.name == "select":
            for option in tag.find_all("option"):
                if option.get("value", option.get_text().strip()) == value:
                    option["selected"] = "selected"
                elif option.has_attr("selected"):
                    del option["selected"]
        else:
            tag["value"] = value

    def label_for(self, tag: Tag) -> str:
        """エラーメッセージに使う表示ラベル"""
        element_id = tag.get("id")
        if element_id:
            label = self.soup.find("label", attrs={"for": element_id})
            if label is not None and label.get_text().strip():
                return label.get_text().strip()
        labelled_by = tag.get("aria-labelledby")
        if labelled_by:
            target = self.get_element_by_id(attr_value(labelled_by).split()[0])
            if target is not None and target.get_text().strip():
                return target.get_text().strip()
        for key in ("aria-label", "data-field-label"):
            value = attr_value(tag.get(key)).strip()
            if value:
                return value
        name = attr_value(tag.get("name")).strip()
        if name:
            return humanize_name(name)
        return DEFAULT_LABEL

    # ------------------------------------------------------------------
    # エラー表示要素
    # ------------------------------------------------------------------
    def ensure_error_element(self, field: Tag, error_id: str) -> Tag:
        """既存のエラー要素を再利用し、無ければフィールド直後に生成する"""
        element = self.get_element_by_id(error_id)
        if element is None:
            element = self.soup.new_tag("div", attrs={"id": error_id, "class": ERROR_CLASS, "role": "alert"})
            field.insert_after(element)
            logger.debug(f"Created error element {error_id}")
        return element

    def render(self) -> str:
        return str(self.soup)
