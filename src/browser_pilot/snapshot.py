"""
Snapshot Builder

Produces the compact Observation the planner reasons over. A script walks the
live DOM in document order, skips invisible and non-semantic nodes, tags every
interactive element with a stable ``data-eid`` id (e0, e1, ...), including
controls nested inside clickable containers, and reports each visible text
run outside a control for context. The Python side prunes, truncates and caps the
result so the prompt stays small.

Identical page state always yields an identical Observation: ids are cleared
and reassigned in document order on every capture.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .browser.backend import BrowserBackend
from .config import env_int
from .errors import ActionError, SnapshotError
from .models import ElementNode, Observation

logger = logging.getLogger(__name__)

# Read-only apart from the data-eid markers it (re)assigns.
SNAPSHOT_SCRIPT = """(opts) => {
    if (!document.body) return null;

    const SKIP = new Set(['SCRIPT', 'STYLE', 'NOSCRIPT', 'SVG', 'TEMPLATE',
                          'LINK', 'META', 'HEAD', 'IFRAME', 'CANVAS']);
    const INTERACTIVE_TAGS = new Set(['A', 'BUTTON', 'INPUT', 'TEXTAREA', 'SELECT', 'SUMMARY']);
    const INTERACTIVE_ROLES = new Set(['button', 'link', 'textbox', 'searchbox', 'combobox',
                                       'checkbox', 'radio', 'menuitem', 'tab', 'option', 'switch']);
    // Controls whose children are never separate targets
    const LEAF_CONTROLS = new Set(['INPUT', 'SELECT', 'TEXTAREA']);
    const ELEMENT_NODE = 1;
    const TEXT_NODE = 3;

    document.querySelectorAll('[data-eid]').forEach(el => el.removeAttribute('data-eid'));

    const clip = (s, n) => (s || '').replace(/\\s+/g, ' ').trim().slice(0, n);
    const nodes = [];
    let counter = 0;

    function isVisible(el) {
        const style = getComputedStyle(el);
        if (style.display === 'none' || style.visibility === 'hidden' || style.opacity === '0') {
            return false;
        }
        // display: contents boxes have no rects of their own, only their children do
        return style.display === 'contents' || el.getClientRects().length > 0;
    }

    function isInteractive(el) {
        if (INTERACTIVE_TAGS.has(el.tagName)) {
            return !(el.tagName === 'INPUT' && el.type === 'hidden') && !el.disabled;
        }
        const role = el.getAttribute('role');
        if (role && INTERACTIVE_ROLES.has(role)) return true;
        const editable = el.getAttribute('contenteditable');
        if (editable === '' || editable === 'true') return true;
        return el.hasAttribute('onclick');
    }

    function roleOf(el) {
        const role = el.getAttribute('role');
        if (role) return role;
        switch (el.tagName) {
            case 'A': return 'link';
            case 'BUTTON': case 'SUMMARY': return 'button';
            case 'SELECT': return 'select';
            case 'TEXTAREA': return 'textarea';
            case 'INPUT':
                if (['submit', 'button', 'reset'].includes(el.type)) return 'button';
                if (['checkbox', 'radio'].includes(el.type)) return el.type;
                return 'input';
            default: return el.isContentEditable ? 'textbox' : 'button';
        }
    }

    function attrsOf(el) {
        const attrs = {};
        if (el.tagName === 'INPUT' || el.tagName === 'TEXTAREA') {
            attrs.type = el.type || 'text';
            if (el.name) attrs.name = el.name;
            if (el.placeholder) attrs.placeholder = el.placeholder;
            if (el.value && el.type !== 'password') attrs.value = el.value;
        } else if (el.tagName === 'A' && el.getAttribute('href')) {
            attrs.href = el.getAttribute('href');
        } else if (el.tagName === 'SELECT') {
            attrs.options = [...el.options].slice(0, 10).map(o => clip(o.text, 20)).join('|');
        }
        for (const key of Object.keys(attrs)) attrs[key] = clip(attrs[key], opts.maxText);
        return attrs;
    }

    function walk(parent, depth, inControl) {
        if (depth > opts.maxDepth) return;
        for (const child of parent.childNodes) {
            if (nodes.length >= opts.maxNodes) return;
            if (child.nodeType === TEXT_NODE) {
                // Text inside a control is already part of its label
                if (inControl) continue;
                const text = clip(child.textContent, opts.maxText);
                if (text) {
                    nodes.push({eid: null, tag: parent.tagName.toLowerCase(), role: 'text', text, attrs: {}});
                }
                continue;
            }
            if (child.nodeType !== ELEMENT_NODE) continue;
            const tagName = child.tagName.toUpperCase();
            if (SKIP.has(tagName) || !isVisible(child)) continue;
            if (isInteractive(child)) {
                const eid = 'e' + (counter++);
                child.setAttribute('data-eid', eid);
                const label = child.getAttribute('aria-label') || child.innerText || child.title || '';
                nodes.push({eid, tag: tagName.toLowerCase(), role: roleOf(child),
                            text: clip(label, opts.maxText), attrs: attrsOf(child)});
                if (!LEAF_CONTROLS.has(tagName)) walk(child, depth + 1, true);
                continue;
            }
            walk(child, depth + 1, inControl);
        }
    }

    walk(document.body, 0, false);
    return {nodes, complete: nodes.length < opts.maxNodes};
}"""


@dataclass
class SnapshotConfig:
    """
    Bounds on the size of an Observation.

    Attributes:
        max_elements: Maximum retained nodes (interactive + text)
        max_text_length: Maximum characters of text per node / attribute
        max_chars: Maximum rendered element-list size in characters
        max_depth: Maximum DOM depth walked by the script
        max_raw_nodes: Maximum nodes the script reports before pruning
    """

    max_elements: int = 150
    max_text_length: int = 80
    max_chars: int = 4000
    max_depth: int = 25
    max_raw_nodes: int = 1000

    @classmethod
    def from_env(cls) -> "SnapshotConfig":
        return cls(
            max_elements=env_int("SNAPSHOT_MAX_ELEMENTS", 150),
            max_text_length=env_int("SNAPSHOT_MAX_TEXT", 80),
            max_chars=env_int("SNAPSHOT_MAX_CHARS", 4000),
        )


def _clean(value: Any, limit: int) -> str:
    text = " ".join(str(value or "").split()).replace('"', "'")
    if len(text) > limit:
        return text[: max(limit - 3, 0)] + "..."
    return text


class SnapshotBuilder:
    """Turns a live page into a bounded, deterministic Observation."""

    def __init__(self, config: Optional[SnapshotConfig] = None):
        self.config = config or SnapshotConfig()

    async def capture(self, backend: BrowserBackend) -> Observation:
        """
        Snapshot the page behind ``backend``.

        Raises:
            SnapshotError: Page detached, mid-navigation, or the script failed
        """
        if not await backend.is_ready():
            raise SnapshotError("Page is not ready (detached or navigation in flight)")

        try:
            raw = await backend.evaluate(
                SNAPSHOT_SCRIPT,
                {
                    "maxDepth": self.config.max_depth,
                    "maxNodes": self.config.max_raw_nodes,
                    # The script keeps a little slack so truncation happens here
                    "maxText": self.config.max_text_length * 2,
                },
            )
            url = await backend.url()
            title = await backend.title()
        except ActionError as e:
            raise SnapshotError(f"Snapshot failed: {e}") from e

        if raw is None:
            raise SnapshotError("Document has no body yet")

        observation = self.build(url, title, raw)
        logger.debug(
            "Snapshot of %s: %d elements%s",
            url,
            len(observation.elements),
            " (truncated)" if observation.truncated else "",
        )
        return observation

    def build(self, url: str, title: str, raw: dict[str, Any]) -> Observation:
        """Prune the raw node list reported by the page script."""
        limit = self.config.max_text_length
        truncated = not raw.get("complete", True)
        elements: list[ElementNode] = []
        seen_text: set[str] = set()
        used = 0

        for item in raw.get("nodes", []):
            node = self._to_node(item, limit)
            if node is None:
                continue
            if not node.interactive:
                if node.text in seen_text:
                    continue
                seen_text.add(node.text)

            line_length = len(node.render()) + 1
            if len(elements) >= self.config.max_elements or used + line_length > self.config.max_chars:
                truncated = True
                break
            elements.append(node)
            used += line_length

        return Observation(
            url=url,
            title=_clean(title, limit * 2),
            elements=tuple(elements),
            truncated=truncated,
        )

    @staticmethod
    def _to_node(item: dict[str, Any], limit: int) -> Optional[ElementNode]:
        eid = item.get("eid")
        text = _clean(item.get("text"), limit)
        if eid is None and len(text) <= 2:
            # Stray punctuation and icons carry no meaning for the planner
            return None
        attrs = {
            str(key): _clean(value, limit)
            for key, value in (item.get("attrs") or {}).items()
            if value not in (None, "")
        }
        return ElementNode(
            eid=eid,
            tag=str(item.get("tag") or "div"),
            role=str(item.get("role") or ("text" if eid is None else "element")),
            text=text,
            attrs=attrs,
        )


def create_snapshot_builder(config: Optional[SnapshotConfig] = None) -> SnapshotBuilder:
    """Factory function to create a snapshot builder (config from env if None)."""
    return SnapshotBuilder(config or SnapshotConfig.from_env())
