"""
ライブページ用ドキュメントツリープロバイダ

Playwright の Page 上の DOM をノードとして公開する。
ノードIDは要素の JS プロパティとして保持し、DOM 属性には痕跡を残さない。
"""

import logging
from typing import Any, Dict, List, Optional

from playwright.async_api import Page

from ..tree.markup_provider import IGNORED_INPUT_TYPES, NODE_TYPE_ATTR, TAG_NODE_TYPES, TEXT_TAGS
from ..tree.node_index import Node
from ..tree.provider import DocumentTreeProvider
from ..utils.error_handler import LookupFailure

logger = logging.getLogger(__name__)

_SNAPSHOT_JS = """
(cfg) => {
  const registry = window.__fvNodes = window.__fvNodes || {};
  let counter = window.__fvCounter || 0;
  const all = Array.from(document.querySelectorAll('*'));
  for (const el of all) {
    if (!el.__fvNodeId) {
      el.__fvNodeId = 'p' + (counter++);
      registry[el.__fvNodeId] = el;
    }
  }
  window.__fvCounter = counter;
  return all.map((el) => {
    const tag = el.tagName.toLowerCase();
    let type = el.getAttribute(cfg.typeAttr);
    if (!type) {
      if (tag === 'input') {
        const t = (el.getAttribute('type') || '').toLowerCase();
        type = cfg.ignored.includes(t) ? 'Input' : 'TextInput';
      } else {
        type = cfg.tagTypes[tag] || (tag.charAt(0).toUpperCase() + tag.slice(1));
      }
    }
    const attributes = {};
    for (const a of Array.from(el.attributes)) attributes[a.name] = a.value;
    return {
      id: el.__fvNodeId,
      type: type,
      attributes: attributes,
      children: Array.from(el.children).map((c) => c.__fvNodeId).filter(Boolean),
      text: cfg.textTags.includes(tag) ? (el.textContent || '').trim() : '',
    };
  });
}
"""

_ATTRIBUTE_JS = """
([id, op, key, value]) => {
  const el = (window.__fvNodes || {})[id];
  if (!el || !el.isConnected) return {missing: true};
  if (op === 'get') return {value: el.hasAttribute(key) ? el.getAttribute(key) : null};
  if (op === 'all') {
    const attrs = {};
    for (const a of Array.from(el.attributes)) attrs[a.name] = a.value;
    return {value: attrs};
  }
  if (op === 'set') { el.setAttribute(key, value); return {}; }
  if (op === 'remove') { el.removeAttribute(key); return {}; }
  if (op === 'children') return {value: Array.from(el.children).map((c) => c.__fvNodeId).filter(Boolean)};
  return {missing: true};
}
"""


class PlaywrightDocumentTree(DocumentTreeProvider):
    """Playwright の Page を対象とするプロバイダ"""

    def __init__(self, page: Page):
        self.page = page

    async def _call(self, node_id: str, op: str, key: Optional[str] = None, value: Optional[str] = None) -> Any:
        try:
            result = await self.page.evaluate(_ATTRIBUTE_JS, [node_id, op, key, value])
        except Exception as e:
            raise LookupFailure(node_id, op, key, cause=e) from e
        if not isinstance(result, dict) or result.get('missing'):
            raise LookupFailure(node_id, op, key)
        return result.get('value')

    async def list_all_nodes(self) -> List[Node]:
        cfg = {
            'typeAttr': NODE_TYPE_ATTR,
            'ignored': sorted(IGNORED_INPUT_TYPES),
            'tagTypes': TAG_NODE_TYPES,
            'textTags': sorted(TEXT_TAGS),
        }
        raw = await self.page.evaluate(_SNAPSHOT_JS, cfg)
        nodes = []
        for item in raw or []:
            nodes.append(Node(
                id=str(item.get('id')),
                type=str(item.get('type') or 'Element'),
                attributes={str(k): str(v) for k, v in (item.get('attributes') or {}).items()},
                children=[str(c) for c in item.get('children') or []],
                text=str(item.get('text') or ''),
            ))
        logger.debug(f"Captured {len(nodes)} nodes from live page")
        return nodes

    async def get_attribute(self, node_id: str, key: str) -> Optional[str]:
        return await self._call(node_id, 'get', key)

    async def get_attributes(self, node_id: str) -> Dict[str, str]:
        return dict(await self._call(node_id, 'all') or {})

    async def set_attribute(self, node_id: str, key: str, value: str) -> None:
        await self._call(node_id, 'set', key, value)

    async def remove_attribute(self, node_id: str, key: str) -> None:
        await self._call(node_id, 'remove', key)

    async def get_children(self, node_id: str) -> List[str]:
        return list(await self._call(node_id, 'children') or [])

    async def render(self) -> str:
        """現在の DOM を HTML として取得"""
        return await self.page.content()
