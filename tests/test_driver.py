"""Tests for the ordered collection driver."""

from __future__ import annotations

import pytest

from renodes.config import RenodesConfig
from renodes.driver import OrderedCollectionDriver, follow
from renodes.errors import (
    BrokenChainError,
    CollectionMismatchError,
    DuplicateKeyError,
    NotFoundError,
    OrphanRecordError,
)
from renodes.records import TAIL, Record, head_key
from tests.conftest import keys

C = "u#Nodes"


class TestInsert:
    def test_append_preserves_insertion_order(self, driver, populate):
        populate(C, "A", "B", "C", "D", "E")
        assert keys(driver.list(C)) == ["A", "B", "C", "D", "E"]

    def test_first_insert_creates_head(self, driver, store):
        record = driver.insert("A", C, {"content": "a"})
        assert record == Record("A", C, TAIL, "a")
        assert store.get(head_key(C)).successor == "A"

    def test_insert_after(self, driver, populate):
        populate(C, "A", "B")
        driver.insert("C", C, {"content": "c"}, after_key="A")
        assert keys(driver.list(C)) == ["A", "C", "B"]

    def test_insert_after_tail(self, driver, populate):
        populate(C, "A", "B")
        driver.insert("C", C, after_key="B")
        assert keys(driver.list(C)) == ["A", "B", "C"]

    def test_insert_after_head_puts_first(self, driver, populate):
        populate(C, "A", "B")
        driver.insert("Z", C, after_key=head_key(C))
        assert keys(driver.list(C)) == ["Z", "A", "B"]

    def test_insert_stores_body(self, driver):
        driver.insert("A", C, {"content": "x", "kind": "md", "metadata": {"isOpened": True}})
        assert driver.get("A") == Record("A", C, TAIL, "x", "md", {"isOpened": True})

    def test_insert_duplicate_key(self, driver, populate):
        populate(C, "A", "B")
        with pytest.raises(DuplicateKeyError):
            driver.insert("A", C)
        assert keys(driver.list(C)) == ["A", "B"]

    def test_insert_after_missing(self, driver, populate):
        populate(C, "A")
        with pytest.raises(NotFoundError):
            driver.insert("B", C, after_key="nope")

    def test_insert_after_record_of_other_collection(self, driver, populate):
        populate("other", "X")
        with pytest.raises(CollectionMismatchError):
            driver.insert("A", C, after_key="X")

    def test_reserved_keys_rejected(self, driver):
        with pytest.raises(ValueError):
            driver.insert(head_key(C), C)
        with pytest.raises(ValueError):
            driver.insert(TAIL, C)

    def test_unknown_body_fields_rejected(self, driver):
        with pytest.raises(ValueError):
            driver.insert("A", C, {"successor": "B"})

    def test_collections_are_independent(self, driver, populate):
        populate(C, "A", "B")
        populate("u#Nodes#A", "A1", "A2")
        assert keys(driver.list(C)) == ["A", "B"]
        assert keys(driver.list("u#Nodes#A")) == ["A1", "A2"]


class TestList:
    def test_empty_collection(self, driver):
        assert driver.list(C) == []

    def test_head_never_returned(self, driver, populate):
        populate(C, "A")
        assert head_key(C) not in keys(driver.list(C))

    def test_follow_detects_dangling_pointer(self):
        records = [Record.head(C, "A"), Record("A", C, "ghost")]
        with pytest.raises(BrokenChainError, match="ghost"):
            follow(C, records)

    def test_follow_detects_cycle(self):
        records = [Record.head(C, "A"), Record("A", C, "B"), Record("B", C, "A")]
        with pytest.raises(BrokenChainError, match="cycle"):
            follow(C, records)

    def test_follow_requires_head(self):
        with pytest.raises(BrokenChainError, match="no head"):
            follow(C, [Record("A", C)])

    def test_follow_ignores_unreachable(self, caplog):
        records = [Record.head(C, "A"), Record("A", C), Record("B", C)]
        assert keys(follow(C, records)) == ["A"]
        assert "unreachable" in caplog.text

    def test_follow_head_with_tail_successor(self):
        assert follow(C, [Record.head(C)]) == []


class TestDelete:
    @pytest.mark.parametrize(
        ("target", "expected"),
        [
            ("A", ["B", "C", "D"]),
            ("D", ["A", "B", "C"]),
            ("C", ["A", "B", "D"]),
        ],
    )
    def test_delete_preserves_remaining_order(self, driver, populate, target, expected):
        populate(C, "A", "B", "C", "D")
        driver.delete(target)
        assert keys(driver.list(C)) == expected
        assert driver.get(target) is None

    def test_delete_missing_is_noop(self, driver, populate):
        populate(C, "A")
        driver.delete("ghost")
        assert keys(driver.list(C)) == ["A"]

    def test_delete_head_rejected(self, driver, populate):
        populate(C, "A")
        with pytest.raises(ValueError):
            driver.delete(head_key(C))

    def test_delete_orphan(self, driver, store):
        store.put(Record("A", C))
        with pytest.raises(OrphanRecordError):
            driver.delete("A")

    def test_delete_all_then_repopulate(self, driver, populate, store):
        populate(C, "A", "B", "C")
        for key in ("B", "A", "C"):
            driver.delete(key)
        assert driver.list(C) == []
        assert store.get(head_key(C)).successor == TAIL

        populate(C, "new1", "new2", "new3")
        assert keys(driver.list(C)) == ["new1", "new2", "new3"]
        assert sorted(r.key for r in store.query_collection(C)) == sorted(
            [head_key(C), "new1", "new2", "new3"]
        )


class TestMove:
    def test_move_to_front(self, driver, populate):
        populate(C, "A", "B", "C")
        driver.move("C", C)
        assert keys(driver.list(C)) == ["C", "A", "B"]

    def test_move_after(self, driver, populate):
        populate(C, "A", "B", "C", "D")
        driver.move("A", C, after_key="C")
        assert keys(driver.list(C)) == ["B", "C", "A", "D"]

    def test_move_after_immediate_successor(self, driver, populate):
        populate(C, "A", "B", "C")
        driver.move("A", C, after_key="B")
        assert keys(driver.list(C)) == ["B", "A", "C"]

    def test_move_to_end(self, driver, populate):
        populate(C, "A", "B", "C")
        driver.move("A", C, after_key="C")
        assert keys(driver.list(C)) == ["B", "C", "A"]

    def test_move_to_current_position_is_noop(self, driver, populate, store):
        populate(C, "A", "B", "C")
        before = store.query_collection(C)
        driver.move("B", C, after_key="A")
        driver.move("A", C)
        driver.move("B", C, after_key="B")
        assert keys(driver.list(C)) == ["A", "B", "C"]
        assert sorted(store.query_collection(C), key=lambda r: r.key) == sorted(
            before, key=lambda r: r.key
        )

    def test_move_missing(self, driver, populate):
        populate(C, "A")
        with pytest.raises(NotFoundError):
            driver.move("ghost", C)
        with pytest.raises(NotFoundError):
            driver.move("A", C, after_key="ghost")

    def test_move_across_collections_rejected(self, driver, populate):
        populate(C, "A")
        populate("other", "X")
        with pytest.raises(CollectionMismatchError):
            driver.move("A", C, after_key="X")
        with pytest.raises(CollectionMismatchError):
            driver.move("A", "other")

    def test_move_keeps_collection(self, driver, populate):
        populate(C, "A", "B")
        driver.move("B", C)
        assert {r.collection for r in driver.list(C)} == {C}

    def test_move_orphan(self, driver, store, populate):
        populate(C, "A")
        store.put(Record("B", C))
        with pytest.raises(OrphanRecordError):
            driver.move("B", C, after_key="A")


class TestUpdateAndMetadata:
    def test_update_content_leaves_metadata(self, driver):
        driver.insert("A", C, {"content": "x", "metadata": {"isOpened": True}})
        driver.update("A", {"content": "y"})
        record = driver.get("A")
        assert record.content == "y"
        assert record.metadata == {"isOpened": True}

    def test_metadata_leaves_content(self, driver):
        driver.insert("A", C, {"content": "x", "kind": "md"})
        driver.metadata("A", {"isOpened": True})
        record = driver.get("A")
        assert record.content == "x"
        assert record.kind == "md"
        assert record.metadata == {"isOpened": True}

    def test_metadata_first_write_then_merge(self, driver):
        driver.insert("A", C)
        driver.metadata("A", {"isOpened": True})
        driver.metadata("A", {"isInEditMode": False})
        assert driver.get("A").metadata == {"isOpened": True, "isInEditMode": False}

    def test_update_only_given_fields(self, driver):
        driver.insert("A", C, {"content": "x", "kind": "md"})
        driver.update("A", {"kind": "code"})
        assert driver.get("A").content == "x"
        assert driver.get("A").kind == "code"

    def test_update_missing(self, driver):
        with pytest.raises(NotFoundError):
            driver.update("ghost", {"content": "y"})

    def test_metadata_missing(self, driver):
        with pytest.raises(NotFoundError):
            driver.metadata("ghost", {"isOpened": True})

    def test_update_rejects_structural_fields(self, driver):
        driver.insert("A", C)
        with pytest.raises(ValueError):
            driver.update("A", {"successor": TAIL})

    def test_update_does_not_move(self, driver, populate):
        populate(C, "A", "B")
        driver.update("A", {"content": "changed"})
        assert keys(driver.list(C)) == ["A", "B"]


class TestVerify:
    def test_intact_chain(self, driver, populate):
        populate(C, "A", "B", "C")
        report = driver.verify(C)
        assert report.ok
        assert report.order == ["A", "B", "C"]
        assert report.tails == ["C"]

    def test_empty_collection_is_ok(self, driver):
        report = driver.verify(C)
        assert report.ok
        assert not report.has_head

    def test_broken_chain(self, driver, populate, store):
        populate(C, "A", "B")
        store.put(Record("X", C))
        report = driver.verify(C)
        assert not report.ok
        assert report.unreachable == ["X"]
        assert report.duplicate_successors == {TAIL: ["B", "X"]}
        assert report.tails == ["B", "X"]

    def test_dangling_pointer(self, driver, populate, store):
        populate(C, "A")
        store.update("A", {"successor": "ghost"})
        report = driver.verify(C)
        assert report.dangling == "ghost"
        assert not report.ok


class TestIntents:
    def test_successful_operations_leave_no_intents(self, driver, populate):
        populate(C, "A", "B", "C")
        driver.move("C", C)
        driver.delete("A")
        assert driver.pending_intents() == []

    def test_intents_disabled(self, store):
        with OrderedCollectionDriver(store, config=RenodesConfig(record_intents=False)) as d:
            d.insert("A", C)
            assert d.intents is None
            assert d.pending_intents() == []

    def test_clear_unknown_intent(self, driver):
        with pytest.raises(NotFoundError):
            driver.clear_intent("!intent#nope")


def test_end_to_end_scenario(driver, populate):
    populate(C, "A", "B", "C")
    assert keys(driver.list(C)) == ["A", "B", "C"]

    driver.move("C", C)
    assert keys(driver.list(C)) == ["C", "A", "B"]

    driver.insert("D", C)
    assert keys(driver.list(C)) == ["C", "A", "B", "D"]

    driver.move("A", C, after_key="B")
    assert keys(driver.list(C)) == ["C", "B", "A", "D"]

    driver.delete("B")
    assert keys(driver.list(C)) == ["C", "A", "D"]
    assert driver.verify(C).ok


def test_driver_uses_given_executor(store):
    from concurrent.futures import ThreadPoolExecutor

    with ThreadPoolExecutor(max_workers=2) as pool:
        d = OrderedCollectionDriver(store, executor=pool)
        d.insert("A", C)
        d.close()
        # A borrowed executor stays usable after the driver closes.
        assert pool.submit(lambda: 1).result() == 1
