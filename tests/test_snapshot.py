import asyncio

import pytest

from cloudbot.browser.snapshot import (
    IFRAME_PLACEHOLDER,
    FrameScope,
    Snapshot,
    build_snapshot,
    parse_ref,
)
from cloudbot.errors import RefValidationError

from fakes import FakeFrame, FakePage

ROOT_TEXT = """- heading "Example Domain" [level=1] [ref=e1]
- paragraph [ref=e2]: This domain is for use in examples.
- link "More information" [ref=e3]
- iframe [ref=e4]
"""

CHILD_TEXT = """- button "Inside" [ref=e1]
- iframe [ref=e2]
"""

GRANDCHILD_TEXT = """- textbox "Deep" [ref=e1]
"""


def _frames(count: int) -> Snapshot:
    frames = tuple(
        FrameScope(index=i, raw_text="", tree=None, scope=FakeFrame()) for i in range(count)
    )
    return Snapshot(frames=frames, document="")


def test_nested_frames_are_indexed_and_refs_prefixed() -> None:
    grandchild = FakeFrame(GRANDCHILD_TEXT)
    child = FakeFrame(CHILD_TEXT, children={"e2": grandchild})
    page = FakePage(ROOT_TEXT, children={"e4": child})

    snapshot = asyncio.run(build_snapshot(page, generation=4))

    assert [frame.index for frame in snapshot.frames] == [0, 1, 2]
    assert snapshot.frames[1].scope is child
    assert snapshot.frames[2].scope is grandchild
    assert "[ref=e3]" in snapshot.document
    assert "[ref=f1e1]" in snapshot.document
    assert "[ref=f2e1]" in snapshot.document
    assert snapshot.generation == 4


def test_text_wraps_document() -> None:
    snapshot = asyncio.run(build_snapshot(FakePage(ROOT_TEXT.replace("- iframe [ref=e4]\n", ""))))

    text = snapshot.text()

    assert text.startswith("- Page Snapshot\n```yaml\n")
    assert text.endswith("\n```")
    assert "Example Domain" in text


def test_failed_iframe_is_replaced_with_placeholder() -> None:
    snapshot = asyncio.run(build_snapshot(FakePage(ROOT_TEXT)))

    assert IFRAME_PLACEHOLDER in snapshot.document
    assert len(snapshot.frames) == 1


def test_failed_capture_yields_error_placeholder() -> None:
    page = FakePage()
    page.aria_error = RuntimeError("Target closed")

    snapshot = asyncio.run(build_snapshot(page))

    assert "Could not take snapshot" in snapshot.document
    assert "Target closed" in snapshot.document


def test_empty_page_yields_empty_mapping() -> None:
    snapshot = asyncio.run(build_snapshot(FakePage("")))

    assert snapshot.document == "{}"
    assert len(snapshot.frames) == 1


def test_parse_ref() -> None:
    assert parse_ref("f2e7") == (2, "e7")
    assert parse_ref("e7") == (0, "e7")
    assert parse_ref("f0e7") == (0, "e7")


def test_resolve_selects_frame_by_prefix() -> None:
    snapshot = _frames(3)

    locator = snapshot.resolve("f2e7")

    assert locator.frame is snapshot.frames[2].scope
    assert locator.selector == "aria-ref=e7"


def test_resolve_out_of_range_frame_names_bound() -> None:
    snapshot = _frames(3)

    with pytest.raises(RefValidationError, match="3 frames") as excinfo:
        snapshot.resolve("f3e7")
    assert "f3e7" in str(excinfo.value)


def test_unprefixed_ref_resolves_against_root() -> None:
    snapshot = _frames(3)

    plain = snapshot.resolve("e7")
    prefixed = snapshot.resolve("f0e7")

    assert plain.frame is prefixed.frame is snapshot.frames[0].scope
    assert plain.selector == prefixed.selector
