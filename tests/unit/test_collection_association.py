"""Unit tests for one-to-many associations."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from form_graph import (
    AbortCallback,
    Attribute,
    FormBase,
    HasMany,
    HasOne,
    NestedRecordNotFoundError,
    ReadOnlyAssociationError,
    ReplaceFailedError,
    TypeMismatchError,
)
from form_graph.associations import CollectionAssociation


class ShipmentForm(FormBase):
    number = Attribute(str)

    parcels = HasMany(
        index_errors=True,
        before_add="check_parcel",
        after_add="track_parcel",
        before_remove="check_removal",
        after_remove="track_removal",
    )

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.events: list[str] = []
        super().__init__(*args, **kwargs)

    def check_parcel(self, record: Any) -> None:
        if record.code == "FROZEN":
            raise AbortCallback

    def track_parcel(self, record: Any) -> None:
        self.events.append(f"add:{record.code}")

    def check_removal(self, record: Any) -> None:
        if record.code == "LOCKED":
            raise AbortCallback

    def track_removal(self, record: Any) -> None:
        self.events.append(f"remove:{record.code}")


class ExpressShipmentForm(ShipmentForm):
    parcels = HasMany(index_errors=True, after_add="express_parcel")

    def express_parcel(self, record: Any) -> None:
        self.events.append(f"express:{record.code}")


class ParcelForm(FormBase):
    code = Attribute(str)
    weight = Attribute(int)
    shipment_id = Attribute(int)

    shipment = HasOne()


class DepotForm(FormBase):
    crates_count = Attribute(int)
    crates = HasMany(counter_cache="crates_count")


class CrateForm(FormBase):
    label = Attribute(str)


class WarehouseForm(FormBase):
    bins = HasMany()


class BinForm(FormBase):
    label = Attribute(str)


class LibraryForm(FormBase):
    shelves = HasMany()
    books = HasMany(through="shelves")


class ShelfForm(FormBase):
    books = HasMany()


class BookForm(FormBase):
    title = Attribute(str)


def persisted_shipment() -> tuple[ShipmentForm, list[ParcelForm]]:
    shipment = ShipmentForm(id=1)
    parcels = [
        ParcelForm(id=1, code="A"),
        ParcelForm(id=2, code="B"),
        ParcelForm(id=3, code="C"),
    ]
    shipment.parcels.append(*parcels)
    return shipment, parcels


class TestAdding:
    def test_build_appends(self) -> None:
        shipment = ShipmentForm()
        parcel = shipment.parcels.build(code="A")
        assert isinstance(parcel, ParcelForm)
        assert shipment.parcels.to_list() == [parcel]
        assert shipment.parcels.size() == 1
        assert isinstance(shipment.association("parcels"), CollectionAssociation)

    def test_build_many(self) -> None:
        shipment = ShipmentForm()
        built = shipment.association("parcels").build([{"code": "A"}, {"code": "B"}])
        assert [parcel.code for parcel in built] == ["A", "B"]
        assert len(shipment.parcels) == 2

    def test_build_sets_foreign_key_and_inverse(self) -> None:
        shipment = ShipmentForm(id=4)
        parcel = shipment.parcels.build()
        assert parcel.shipment_id == 4
        assert parcel.shipment is shipment

    def test_append_runs_callbacks_in_order(self) -> None:
        shipment = ShipmentForm()
        shipment.parcels.append(ParcelForm(code="A")).push(ParcelForm(code="B"))
        assert shipment.events == ["add:A", "add:B"]

    def test_concat_flattens_and_reports_rejection(self) -> None:
        shipment = ShipmentForm()
        result = shipment.parcels.concat([ParcelForm(code="A"), [ParcelForm(code="FROZEN")]])
        assert result is False
        assert [parcel.code for parcel in shipment.parcels] == ["A"]

    def test_adding_same_record_twice_keeps_one_slot(self) -> None:
        shipment = ShipmentForm()
        parcel = ParcelForm(code="A")
        shipment.parcels.append(parcel)
        shipment.parcels.append(parcel)
        assert shipment.parcels.to_list() == [parcel]

    def test_persisted_record_replaces_slot(self) -> None:
        shipment, parcels = persisted_shipment()
        replacement = ParcelForm(id=2, code="B2")
        shipment.parcels.append(replacement)
        assert [parcel.code for parcel in shipment.parcels] == ["A", "B2", "C"]

    def test_wrong_type_rejected(self) -> None:
        shipment = ShipmentForm()
        with pytest.raises(TypeMismatchError):
            shipment.parcels.append(CrateForm())

    def test_subclass_accumulates_callbacks(self) -> None:
        shipment = ExpressShipmentForm()
        assert shipment.parcels.concat(ParcelForm(code="FROZEN")) is False
        shipment.parcels.append(ParcelForm(code="A"))
        assert shipment.events == ["add:A", "express:A"]

    def test_insert_hook_for_persisted_owner(
        self,
        monkeypatch: pytest.MonkeyPatch,
        hooks_factory: Any,
    ) -> None:
        hooks = hooks_factory(accept_inserts=False)
        monkeypatch.setattr(WarehouseForm, "association_hooks", hooks)
        warehouse = WarehouseForm(id=1)
        assert warehouse.bins.concat(BinForm(label="x")) is False
        assert [call[0] for call in hooks.calls] == ["insert_record"]

    def test_insert_hook_skipped_for_new_owner(
        self,
        monkeypatch: pytest.MonkeyPatch,
        recording_hooks: Any,
    ) -> None:
        monkeypatch.setattr(WarehouseForm, "association_hooks", recording_hooks)
        assert WarehouseForm().bins.concat(BinForm()) is True
        assert recording_hooks.calls == []


class TestRemoving:
    def test_delete(self) -> None:
        shipment = ShipmentForm()
        first, second = ParcelForm(code="A"), ParcelForm(code="B")
        shipment.parcels.append(first, second)
        removed = shipment.parcels.delete(first)
        assert removed == [first]
        assert shipment.parcels.to_list() == [second]
        assert shipment.events[-1] == "remove:A"

    def test_delete_aborted(self) -> None:
        shipment = ShipmentForm()
        locked = ParcelForm(code="LOCKED")
        shipment.parcels.append(locked)
        assert shipment.parcels.delete(locked) == []
        assert shipment.parcels.to_list() == [locked]

    def test_clear(self) -> None:
        shipment = ShipmentForm()
        shipment.parcels.build(code="A")
        shipment.parcels.build(code="B")
        shipment.parcels.clear()
        assert shipment.parcels.empty() is True


class TestReplace:
    def test_replace_failure_restores_target(self, caplog: pytest.LogCaptureFixture) -> None:
        shipment = ShipmentForm()
        kept = ParcelForm(code="A")
        shipment.parcels.append(kept)
        caplog.set_level(logging.WARNING, logger="form_graph")
        with pytest.raises(ReplaceFailedError) as exc_info:
            shipment.parcels.replace([kept, ParcelForm(code="FROZEN")])
        assert exc_info.value.name == "parcels"
        assert shipment.parcels.to_list() == [kept]
        assert "Replace of parcels on ShipmentForm rejected" in caplog.text

    def test_replace_failure_on_removal_restores_target(self) -> None:
        shipment = ShipmentForm()
        locked, other = ParcelForm(code="LOCKED"), ParcelForm(code="B")
        shipment.parcels.append(locked, other)
        with pytest.raises(ReplaceFailedError):
            shipment.parcels.replace([ParcelForm(code="C")])
        assert shipment.parcels.to_list() == [locked, other]

    def test_replace_failure_leaves_no_side_effects(self) -> None:
        shipment = ShipmentForm()
        old, ok = ParcelForm(code="O"), ParcelForm(code="A")
        shipment.parcels.append(old)
        with pytest.raises(ReplaceFailedError):
            shipment.parcels.replace([ok, ParcelForm(code="FROZEN")])
        assert shipment.events == ["add:O"]
        assert ok.association_cached("shipment") is None
        assert old.shipment is shipment

    def test_replace_checks_guards_before_insert_hook(
        self,
        monkeypatch: pytest.MonkeyPatch,
        recording_hooks: Any,
    ) -> None:
        monkeypatch.setattr(ShipmentForm, "association_hooks", recording_hooks)
        shipment, parcels = persisted_shipment()
        recording_hooks.calls.clear()
        with pytest.raises(ReplaceFailedError):
            shipment.parcels.replace([*parcels, ParcelForm(code="FROZEN")])
        assert [call for call in recording_hooks.calls if call[0] == "insert_record"] == []

    def test_rejected_insert_rolls_back_replace(
        self,
        monkeypatch: pytest.MonkeyPatch,
        recording_hooks: Any,
    ) -> None:
        monkeypatch.setattr(ShipmentForm, "association_hooks", recording_hooks)
        shipment, parcels = persisted_shipment()
        events = list(shipment.events)
        recording_hooks.accept_inserts = False
        added = ParcelForm(code="D")
        with pytest.raises(ReplaceFailedError):
            shipment.parcels.replace([parcels[0], added])
        assert shipment.parcels.to_list() == parcels
        assert shipment.events == events
        assert added.association_cached("shipment") is None

    def test_replace_preserves_order_of_shared_records(self) -> None:
        shipment, (first, second, third) = persisted_shipment()
        added = ParcelForm(code="D")
        same_as_third = ParcelForm(id=3, weight=9)
        shipment.parcels.replace([same_as_third, first, added])
        assert shipment.parcels.to_list() == [first, same_as_third, added]
        assert shipment.events[-2:] == ["remove:B", "add:D"]

    def test_replace_merges_unchanged_fields(self) -> None:
        shipment, _ = persisted_shipment()
        same_as_third = ParcelForm(id=3, weight=9)
        shipment.parcels.replace([ParcelForm(id=1), ParcelForm(id=2), same_as_third])
        assert same_as_third.code == "C"
        assert same_as_third.weight == 9

    def test_replace_with_same_sequence_is_noop(self) -> None:
        shipment, parcels = persisted_shipment()
        events = list(shipment.events)
        shipment.parcels.replace(list(parcels))
        assert shipment.parcels.to_list() == parcels
        assert shipment.events == events

    def test_replace_builds_from_mappings(self) -> None:
        shipment = ShipmentForm()
        shipment.parcels = [{"code": "A"}, {"code": "B"}]
        assert [parcel.code for parcel in shipment.parcels] == ["A", "B"]

    def test_replace_wrong_type_leaves_target(self) -> None:
        shipment = ShipmentForm()
        kept = shipment.parcels.build(code="A")
        with pytest.raises(TypeMismatchError):
            shipment.parcels.replace([CrateForm()])
        assert shipment.parcels.to_list() == [kept]


class TestQueries:
    def test_size_uses_counter_cache(self) -> None:
        depot = DepotForm(id=1, crates_count=7)
        assert depot.crates.size() == 7
        assert depot.crates.empty() is False
        assert depot.association("crates").loaded is False

    def test_size_counts_unsaved_plus_stored(
        self,
        monkeypatch: pytest.MonkeyPatch,
        hooks_factory: Any,
    ) -> None:
        monkeypatch.setattr(WarehouseForm, "association_hooks", hooks_factory(stored_count=4))
        warehouse = WarehouseForm(id=1)
        warehouse.bins.build(label="new")
        assert warehouse.bins.size() == 5
        assert warehouse.association("bins").loaded is False

    def test_zero_stored_count_marks_loaded(
        self,
        monkeypatch: pytest.MonkeyPatch,
        hooks_factory: Any,
    ) -> None:
        monkeypatch.setattr(WarehouseForm, "association_hooks", hooks_factory(stored_count=0))
        warehouse = WarehouseForm(id=1)
        warehouse.bins.build()
        assert warehouse.bins.size() == 1
        assert warehouse.association("bins").loaded is True

    def test_size_of_new_owner_is_in_memory_length(
        self,
        monkeypatch: pytest.MonkeyPatch,
        recording_hooks: Any,
    ) -> None:
        monkeypatch.setattr(WarehouseForm, "association_hooks", recording_hooks)
        warehouse = WarehouseForm()
        warehouse.bins.build()
        assert warehouse.bins.size() == 1
        assert recording_hooks.calls == []

    def test_empty_short_circuits_on_target(
        self,
        monkeypatch: pytest.MonkeyPatch,
        recording_hooks: Any,
    ) -> None:
        monkeypatch.setattr(WarehouseForm, "association_hooks", recording_hooks)
        warehouse = WarehouseForm(id=1)
        warehouse.bins.build()
        assert warehouse.bins.empty() is False
        assert recording_hooks.calls == []

    def test_empty_asks_hooks_when_unloaded(
        self,
        monkeypatch: pytest.MonkeyPatch,
        recording_hooks: Any,
    ) -> None:
        monkeypatch.setattr(WarehouseForm, "association_hooks", recording_hooks)
        assert WarehouseForm(id=1).bins.empty() is True
        assert recording_hooks.calls == [("exists", None)]

    def test_include_new_record(self) -> None:
        shipment = ShipmentForm()
        parcel = shipment.parcels.build()
        assert parcel in shipment.parcels
        assert ParcelForm() not in shipment.parcels
        assert shipment.parcels.include(CrateForm()) is False

    def test_include_persisted_unloaded_uses_exists(
        self,
        monkeypatch: pytest.MonkeyPatch,
        recording_hooks: Any,
    ) -> None:
        monkeypatch.setattr(WarehouseForm, "association_hooks", recording_hooks)
        warehouse = WarehouseForm(id=1)
        warehouse.bins.append(BinForm(id=3))
        assert warehouse.bins.include(BinForm(id=3)) is True
        assert ("exists", 3) in recording_hooks.calls

    def test_include_persisted_loaded_checks_target(self) -> None:
        shipment, _ = persisted_shipment()
        shipment.parcels.load_target()
        assert shipment.parcels.include(ParcelForm(id=2)) is True
        assert shipment.parcels.include(ParcelForm(id=9)) is False

    def test_find(self) -> None:
        shipment, (first, _, _) = persisted_shipment()
        assert shipment.parcels.find("1") is first
        assert shipment.parcels.find(42) is None

    def test_ids_reader_and_writer(self) -> None:
        shipment, (first, second, third) = persisted_shipment()
        assert shipment.parcel_ids == [1, 2, 3]
        shipment.parcel_ids = ["3", "", 1]
        assert shipment.parcels.to_list() == [first, third]
        assert shipment.parcels.ids == [1, 3]

    def test_ids_writer_unknown_id(self) -> None:
        shipment, _ = persisted_shipment()
        with pytest.raises(NestedRecordNotFoundError) as exc_info:
            shipment.parcel_ids = [1, 99]
        assert exc_info.value.record_id == 99
        assert "Couldn't find ParcelForm with ID=99" in str(exc_info.value)


class TestResetAndReload:
    def test_reset_is_repeatable(self) -> None:
        shipment = ShipmentForm()
        shipment.parcels.build()
        association = shipment.association("parcels")
        association.reset()
        assert association.loaded is False
        first = association.reader().to_list()
        association.reset()
        second = association.reader().to_list()
        assert first == second == []

    def test_stale_owner_keeps_in_memory_records(self) -> None:
        shipment = ShipmentForm()
        parcel = shipment.parcels.build(code="A")
        shipment.parcels.load_target()
        shipment.id = 8
        assert shipment.parcels.to_list() == [parcel]


class TestThrough:
    def make_library(self) -> tuple[LibraryForm, list[BookForm]]:
        library = LibraryForm()
        first_shelf = library.shelves.build()
        second_shelf = library.shelves.build()
        books = [
            first_shelf.books.build(title="A"),
            first_shelf.books.build(title="B"),
            second_shelf.books.build(title="C"),
        ]
        return library, books

    def test_reads_through_intermediate(self) -> None:
        library, books = self.make_library()
        assert library.books == books
        assert library.books.size() == 3
        assert library.books.empty() is False

    def test_include_follows_intermediate(self) -> None:
        library, books = self.make_library()
        assert library.books.include(books[2]) is True
        assert library.books.include(BookForm()) is False

    def test_include_reflects_removal_after_load(self) -> None:
        library, books = self.make_library()
        library.books.load_target()
        library.shelves[0].books.delete(books[0])
        assert library.books.include(books[0]) is False

    def test_read_only(self) -> None:
        library, _ = self.make_library()
        with pytest.raises(ReadOnlyAssociationError):
            library.books.append(BookForm())
        with pytest.raises(ReadOnlyAssociationError):
            library.books.build(title="D")
        with pytest.raises(ReadOnlyAssociationError):
            library.books = []
