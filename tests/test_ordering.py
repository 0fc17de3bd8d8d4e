import sys
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from moge.services.ordering import FIRST_KEY, next_sort_key, renumbered


def test_next_sort_key_starts_at_one_for_empty_parent():
    assert next_sort_key(None) == FIRST_KEY == Decimal(1)


def test_next_sort_key_appends_after_current_maximum():
    assert next_sort_key(Decimal("3")) == Decimal("4")
    assert next_sort_key(Decimal("2.5")) == Decimal("3.5")
    assert next_sort_key(7) == Decimal("8")


def test_next_sort_key_rejects_floats():
    with pytest.raises(TypeError):
        next_sort_key(1.5)


def test_renumbered_assigns_contiguous_keys_in_given_order():
    pairs = renumbered(["c", "a", "b"])

    assert pairs == [("c", Decimal(1)), ("a", Decimal(2)), ("b", Decimal(3))]
    assert renumbered([]) == []

