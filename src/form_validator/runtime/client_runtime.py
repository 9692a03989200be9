"""
クライアント検証ランタイム

注釈済み DOM の宣言的属性だけを読み、フォーカス/入力/ブラー/送信イベントに応じて
フィールドを検証する。RuleEngine とは属性名のみを共有し、それ以外の状態は持ち込まない。

フィールドの状態遷移:
    pristine → touched   : フォーカスまたは入力
    touched  → invalid   : ブラー/送信時に規則を満たさない
    touched  → valid     : ブラー/送信時に規則を満たす
    invalid  → touched   : 入力でエラー表示を即時に解除
    valid    → invalid   : 再検証で規則を満たさなくなった場合
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from bs4 import Tag

from ..rules.annotations import (
    ATTR_ARIA_DESCRIBEDBY,
    ATTR_ARIA_INVALID,
    ATTR_AUTO_ERROR,
    ATTR_ERROR_ID,
)
from .dom import RuntimeDom
from .validators import first_failure, rules_from_attributes

logger = logging.getLogger(__name__)


class FieldState(str, Enum):
    PRISTINE = "pristine"
    TOUCHED = "touched"
    INVALID = "invalid"
    VALID = "valid"


class SubmitOutcome(str, Enum):
    PREVENTED = "prevented"
    SUBMITTED = "submitted"
    # 送信処理中に再度呼ばれた（プログラムによる再送信）
    IGNORED = "ignored"


@dataclass
class FieldRuntime:
    key: str
    element: Tag
    form_key: str
    state: FieldState = FieldState.PRISTINE
    error: Optional[str] = None


class ClientValidationRuntime:
    """宣言的属性に基づくイベント駆動の検証"""

    def __init__(self, dom: RuntimeDom, on_submit: Optional[Callable[[Tag], None]] = None):
        self.dom = dom
        self.on_submit = on_submit
        self.fields: Dict[str, FieldRuntime] = {}
        self.forms: Dict[str, Tag] = {}
        self.form_fields: Dict[str, List[str]] = {}
        self.focused: Optional[str] = None
        self.submissions: Dict[str, int] = {}
        self._submitting = False

    # ------------------------------------------------------------------
    # 初期化
    # ------------------------------------------------------------------
    @staticmethod
    def _key_of(tag: Tag, fallback: str) -> str:
        for attr in ("id", "name"):
            value = tag.get(attr)
            if value:
                return str(value)
        return fallback

    def initialize(self) -> int:
        """全フォームを列挙し、自動エラー表示対象のフィールドを登録する

        Returns:
            登録したフィールド数
        """
        count = 0
        for i, form in enumerate(self.dom.forms()):
            form_key = self._key_of(form, f"form-{i}")
            self.forms[form_key] = form
            keys = self.form_fields.setdefault(form_key, [])
            for j, element in enumerate(self.dom.fields(form)):
                flag = element.get(ATTR_AUTO_ERROR)
                if flag is None or str(flag).lower() == "false":
                    continue
                key = self._key_of(element, f"{form_key}-field-{j}")
                if key in self.fields:
                    continue
                self.fields[key] = FieldRuntime(key=key, element=element, form_key=form_key)
                keys.append(key)
                count += 1
        logger.info(f"Validation runtime initialized: {len(self.forms)} forms, {count} fields")
        return count

    def _field(self, key: str) -> FieldRuntime:
        try:
            return self.fields[key]
        except KeyError:
            raise KeyError(f"Unknown field: {key}") from None

    def state_of(self, key: str) -> FieldState:
        return self._field(key).state

    # ------------------------------------------------------------------
    # 検証とエラー表示
    # ------------------------------------------------------------------
    def validate_field(self, key: str) -> bool:
        """現在の属性と値で検証し、状態とエラー表示を更新する"""
        field = self._field(key)
        element = field.element
        label = self.dom.label_for(element)
        rules = rules_from_attributes(self.dom.attributes(element), label)
        failed = first_failure(rules, self.dom.get_value(element))
        if failed is not None:
            field.state = FieldState.INVALID
            field.error = failed.message
            self.show_error(element, failed.message)
            logger.debug(f"Field {key} invalid: {failed.name}")
            return False
        field.state = FieldState.VALID
        field.error = None
        self.hide_error(element)
        return True

    def validate_form(self, form_key: str) -> List[str]:
        """フォーム内の全フィールドを検証し、不正なフィールドのキーを文書順で返す"""
        invalid = []
        for key in self.form_fields.get(form_key, []):
            if not self.validate_field(key):
                invalid.append(key)
        return invalid

    def show_error(self, element: Tag, message: str) -> None:
        element[ATTR_ARIA_INVALID] = "true"
        error_id = element.get(ATTR_ERROR_ID)
        if not error_id:
            return
        error_element = self.dom.ensure_error_element(element, error_id)
        error_element.string = message
        error_element["style"] = "display: block"
        element[ATTR_ARIA_DESCRIBEDBY] = error_id

    def hide_error(self, element: Tag) -> None:
        if element.has_attr(ATTR_ARIA_INVALID):
            del element[ATTR_ARIA_INVALID]
        error_id = element.get(ATTR_ERROR_ID)
        if not error_id:
            return
        if element.get(ATTR_ARIA_DESCRIBEDBY) == error_id:
            del element[ATTR_ARIA_DESCRIBEDBY]
        error_element = self.dom.get_element_by_id(error_id)
        if error_element is not None:
            error_element.string = ""
            error_element["style"] = "display: none"

    # ------------------------------------------------------------------
    # イベント
    # ------------------------------------------------------------------
    def handle_focus(self, key: str) -> FieldState:
        field = self._field(key)
        self.focused = key
        if field.state == FieldState.PRISTINE:
            field.state = FieldState.TOUCHED
        return field.state

    def handle_input(self, key: str, value: str) -> FieldState:
        field = self._field(key)
        self.dom.set_value(field.element, value)
        if field.state == FieldState.INVALID:
            # 入力を始めたらエラー表示を即時に消す（再検証はブラー時）
            self.hide_error(field.element)
            field.error = None
            field.state = FieldState.TOUCHED
        elif field.state == FieldState.PRISTINE:
            field.state = FieldState.TOUCHED
        return field.state

    def handle_blur(self, key: str) -> FieldState:
        field = self._field(key)
        if self.focused == key:
            self.focused = None
        if field.state != FieldState.PRISTINE:
            self.validate_field(key)
        return field.state

    def handle_submit(self, form: Union[str, Tag]) -> SubmitOutcome:
        """送信イベント

        いずれかのフィールドが不正なら送信を止め、最初の不正フィールドにフォーカスを移す。
        送信処理中の再呼び出しは無視し、1回の送信につき on_submit は1回だけ呼ばれる。
        """
        form_key = form if isinstance(form, str) else self._form_key_of(form)
        if self._submitting:
            logger.debug(f"Ignoring re-entrant submit for form {form_key}")
            return SubmitOutcome.IGNORED
        if form_key not in self.forms:
            raise KeyError(f"Unknown form: {form_key}")

        invalid = self.validate_form(form_key)
        if invalid:
            self.focused = invalid[0]
            logger.info(f"Submit prevented for form {form_key}: {len(invalid)} invalid fields")
            return SubmitOutcome.PREVENTED

        self._submitting = True
        try:
            if self.on_submit is not None:
                self.on_submit(self.forms[form_key])
            self.submissions[form_key] = self.submissions.get(form_key, 0) + 1
        finally:
            self._submitting = False
        return SubmitOutcome.SUBMITTED

    def _form_key_of(self, form: Tag) -> str:
        for key, tag in self.forms.items():
            if tag is form:
                return key
        raise KeyError("Form is not registered with the runtime")
