"""Accessibility snapshots with frame-scoped element refs.

Playwright renders a frame's accessibility tree as indented YAML text in
which each interactable element carries a ``[ref=eN]`` marker.  The builder
walks the page and every nested iframe, assigns each frame an index (the root
document is always ``0``) and rewrites refs found below the root to
``f<index>eN`` so the combined document stays unambiguous.  ``Snapshot.resolve``
turns such a ref back into a locator scoped to the right frame.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

import yaml
from yaml.nodes import MappingNode, Node, ScalarNode, SequenceNode

from ..errors import RefValidationError

logger = logging.getLogger(__name__)

STR_TAG = "tag:yaml.org,2002:str"
MAP_TAG = "tag:yaml.org,2002:map"
NULL_TAG = "tag:yaml.org,2002:null"

IFRAME_PLACEHOLDER = "<could not take iframe snapshot>"

_REF_PATTERN = re.compile(r"^f(\d+)(.*)$")
_IFRAME_REF = re.compile(r"\[ref=([^\]]+)\]")
_EMIT_WIDTH = 1_000_000


@dataclass(frozen=True)
class FrameScope:
    """One frame captured by a snapshot.

    ``scope`` is the page (index 0) or frame locator the refs of this frame
    resolve against; it is never closed through the snapshot.
    """

    index: int
    raw_text: str
    tree: Optional[Node]
    scope: Any = field(repr=False, compare=False)


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time capture of a page and its nested frames."""

    frames: Tuple[FrameScope, ...]
    document: str
    generation: int = 0

    def text(self) -> str:
        return f"- Page Snapshot\n```yaml\n{self.document}\n```"

    def resolve(self, ref: str) -> Any:
        """Return a locator for ``ref`` scoped to the frame it names."""
        index, local_ref = parse_ref(ref)
        if not local_ref:
            raise RefValidationError(f"Validation Error: Ref '{ref}' has no element id.")
        if index >= len(self.frames):
            raise RefValidationError(
                f"Validation Error: Frame index {index} derived from ref '{ref}' "
                f"is out of bounds (found {len(self.frames)} frames)."
            )
        return self.frames[index].scope.locator(f"aria-ref={local_ref}")


def parse_ref(ref: str) -> Tuple[int, str]:
    """Split ``ref`` into ``(frame_index, local_ref)``; no prefix means frame 0."""
    match = _REF_PATTERN.match(ref)
    if match:
        return int(match.group(1)), match.group(2)
    return 0, ref


async def build_snapshot(page: Any, *, generation: int = 0) -> Snapshot:
    """Capture ``page`` and all nested iframes into a ``Snapshot``."""
    node, frames = await _walk(page, 0)
    document = _emit(node)
    logger.debug(
        "Snapshot generation %s captured %d frame(s)", generation, len(frames)
    )
    return Snapshot(frames=tuple(frames), document=document, generation=generation)


# ---------------------------------------------------------------------- #
# Internal helpers
# ---------------------------------------------------------------------- #


async def _walk(scope: Any, index: int) -> Tuple[Node, List[FrameScope]]:
    """Snapshot one frame and its descendants.

    Returns the rewritten tree for the frame and the frame list rooted at it,
    with descendant frames numbered from ``index + 1`` in document order.
    """
    raw = await _aria_text(scope)
    tree = _parse(raw)
    frames = [FrameScope(index=index, raw_text=raw, tree=tree, scope=scope)]
    if tree is None:
        if raw.strip():
            return _scalar(_prefix_refs(raw, index), style="|"), frames
        return MappingNode(MAP_TAG, [], flow_style=True), frames
    rewritten, children = await _rewrite(tree, scope, index, index + 1)
    frames.extend(children)
    return rewritten, frames


async def _rewrite(
    node: Node,
    scope: Any,
    index: int,
    next_index: int,
) -> Tuple[Node, List[FrameScope]]:
    if isinstance(node, ScalarNode):
        if not _is_text(node):
            return node, []
        local_ref = _iframe_ref(node.value)
        value = _prefix_refs(node.value, index)
        if local_ref is None:
            return _copy_scalar(node, value), []
        child, frames = await _walk_child(scope, local_ref, next_index)
        return MappingNode(MAP_TAG, [(_scalar(value), child)], flow_style=False), frames

    if isinstance(node, SequenceNode):
        items: List[Node] = []
        frames: List[FrameScope] = []
        for item in node.value:
            new_item, sub = await _rewrite(item, scope, index, next_index + len(frames))
            items.append(new_item)
            frames.extend(sub)
        return SequenceNode(node.tag, items, flow_style=node.flow_style), frames

    if isinstance(node, MappingNode):
        pairs: List[Tuple[Node, Node]] = []
        frames = []
        for key, value in node.value:
            local_ref = _iframe_ref(key.value) if _is_text(key) else None
            if local_ref is not None and _is_empty(value):
                new_key = _copy_scalar(key, _prefix_refs(key.value, index))
                new_value, sub = await _walk_child(scope, local_ref, next_index + len(frames))
            else:
                new_key = _rewrite_key(key, index)
                new_value, sub = await _rewrite(value, scope, index, next_index + len(frames))
            pairs.append((new_key, new_value))
            frames.extend(sub)
        return MappingNode(node.tag, pairs, flow_style=node.flow_style), frames

    return node, []


async def _walk_child(scope: Any, local_ref: str, index: int) -> Tuple[Node, List[FrameScope]]:
    try:
        child_scope = scope.frame_locator(f"aria-ref={local_ref}")
        return await _walk(child_scope, index)
    except Exception as exc:
        logger.info("Could not snapshot iframe %s: %s", local_ref, exc)
        return _scalar(IFRAME_PLACEHOLDER), []


def _rewrite_key(key: Node, index: int) -> Node:
    if _is_text(key):
        return _copy_scalar(key, _prefix_refs(key.value, index))
    return key


async def _aria_text(scope: Any) -> str:
    locator = scope.locator("body")
    try:
        try:
            return await locator.aria_snapshot(ref=True)
        except TypeError:
            logger.debug("aria_snapshot(ref=True) unsupported; falling back to plain snapshot")
            return await locator.aria_snapshot()
    except Exception as exc:
        return f"error: Could not take snapshot. Error: {exc}"


def _parse(raw: str) -> Optional[Node]:
    try:
        return yaml.compose(raw)
    except yaml.YAMLError as exc:
        logger.debug("Snapshot text is not valid YAML: %s", exc)
        return None


def _emit(node: Node) -> str:
    text = yaml.serialize(node, width=_EMIT_WIDTH, allow_unicode=True)
    text = text.rstrip("\n")
    if text.endswith("\n..."):
        text = text[: -len("\n...")]
    return text or "{}"


def _prefix_refs(value: str, index: int) -> str:
    if index <= 0:
        return value
    return value.replace("[ref=", f"[ref=f{index}")


def _iframe_ref(value: str) -> Optional[str]:
    if not value.startswith("iframe "):
        return None
    match = _IFRAME_REF.search(value)
    return match.group(1) if match else None


def _is_text(node: Node) -> bool:
    return isinstance(node, ScalarNode) and node.tag == STR_TAG


def _is_empty(node: Node) -> bool:
    return isinstance(node, ScalarNode) and (node.tag == NULL_TAG or node.value == "")


def _scalar(value: str, *, style: Optional[str] = None) -> ScalarNode:
    return ScalarNode(STR_TAG, value, style=style)


def _copy_scalar(node: ScalarNode, value: str) -> ScalarNode:
    if value == node.value:
        return node
    return ScalarNode(STR_TAG, value)


__all__ = [
    "FrameScope",
    "Snapshot",
    "build_snapshot",
    "parse_ref",
    "IFRAME_PLACEHOLDER",
]
