"""Unit tests for target class resolution."""

from __future__ import annotations

import pytest

from form_graph import FormBase, HasMany, HasOne, UnresolvedTargetClassError
from form_graph.reflection.resolver import candidate_names, compute_type, is_form_class


class HumanForm(FormBase):
    tickets = HasMany()


class TicketForm(FormBase):
    pass


class Pet(FormBase):
    pass


class KennelForm(FormBase):
    class Pet(FormBase):
        pass

    pet = HasOne()
    owner_pet = HasOne(class_name="Pet")


class ArchiveForm(FormBase):
    ghosts = HasMany()


class NotAForm:
    pass


class TestCandidateNames:
    def test_innermost_scope_first_then_suffix(self) -> None:
        assert candidate_names(KennelForm, "Pet") == [
            "KennelForm.Pet",
            "Pet",
            "KennelForm.PetForm",
            "PetForm",
        ]

    def test_dotted_name_kept(self) -> None:
        assert candidate_names(HumanForm, "shop.Ticket") == ["shop.Ticket", "shop.TicketForm"]

    def test_suffix_not_doubled(self) -> None:
        assert "TicketFormForm" not in candidate_names(HumanForm, "TicketForm")


class TestComputeType:
    def test_singularized_name_with_form_suffix(self) -> None:
        reflection = HumanForm.reflect_on_association("tickets")
        assert reflection.klass is TicketForm

    def test_klass_is_cached(self) -> None:
        reflection = HumanForm.reflect_on_association("tickets")
        assert reflection.klass is reflection.klass

    def test_nested_class_wins_over_module_level(self) -> None:
        assert KennelForm.reflect_on_association("pet").klass is KennelForm.Pet
        assert KennelForm.reflect_on_association("owner_pet").klass is KennelForm.Pet

    def test_outer_scope_used_when_not_nested(self) -> None:
        assert compute_type(HumanForm, "Pet", "pet") is Pet

    def test_unresolved_raises(self) -> None:
        reflection = ArchiveForm.reflect_on_association("ghosts")
        with pytest.raises(UnresolvedTargetClassError) as exc_info:
            reflection.klass
        assert exc_info.value.name == "ghosts"
        assert "GhostForm" in exc_info.value.candidates

    def test_non_form_class_not_resolved(self) -> None:
        with pytest.raises(UnresolvedTargetClassError):
            compute_type(HumanForm, "NotAForm", "thing")

    def test_is_form_class(self) -> None:
        assert is_form_class(TicketForm)
        assert not is_form_class(NotAForm)
        assert not is_form_class(TicketForm())
