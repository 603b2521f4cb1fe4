import pytest

from cloudbot.mcp.resources import ScreenshotStore


def test_generated_names_are_unique() -> None:
    store = ScreenshotStore()

    names = {store.new_name() for _ in range(5)}

    assert len(names) == 5
    assert all(name.startswith("screenshot-") for name in names)


def test_oldest_screenshots_are_evicted() -> None:
    store = ScreenshotStore(max_items=2)

    store.publish("a", "image/png", "YQ==")
    store.publish("b", "image/png", "Yg==")
    uri = store.publish("c", "image/png", "Yw==")

    assert uri == "screenshot://c"
    assert [shot.name for shot in store.list()] == ["b", "c"]
    assert store.read("a") is None
    assert store.read("c").data() == b"c"


def test_republishing_a_name_keeps_it_newest() -> None:
    store = ScreenshotStore(max_items=2)
    store.publish("a", "image/png", "YQ==")
    store.publish("b", "image/png", "Yg==")
    store.publish("a", "image/jpeg", "YQ==")
    store.publish("c", "image/png", "Yw==")

    assert [shot.name for shot in store.list()] == ["a", "c"]
    assert store.read("a").mime_type == "image/jpeg"


def test_store_needs_room_for_one() -> None:
    with pytest.raises(ValueError):
        ScreenshotStore(max_items=0)
