from mpv_notify_osd.core.actions import Action
from mpv_notify_osd.core.properties import (
    PROPERTY_SPECS,
    ObservedStateTable,
    Prop,
    ValueKind,
    coerce,
    is_truthy,
    prop_by_name,
)


def test_every_property_has_a_spec():
    assert set(PROPERTY_SPECS) == set(Prop)
    assert prop_by_name("options/script-opts") is Prop.SCRIPT_OPTS
    assert prop_by_name("no-such-property") is None


def test_coerce_boundary_values():
    assert coerce(ValueKind.INT, 3.0) == 3
    assert coerce(ValueKind.INT, False) is None  # vid=no
    assert coerce(ValueKind.INT, float("nan")) is None
    assert coerce(ValueKind.FLOAT, 12) == 12.0
    assert coerce(ValueKind.FLAG, "yes") is True
    assert coerce(ValueKind.FLAG, "no") is False
    assert coerce(ValueKind.STRING, True) == "yes"
    assert coerce(ValueKind.STRING, 2.0) == "2"
    assert coerce(ValueKind.STRING, {"all": "v"}) == "all=v"
    assert coerce(ValueKind.INT, "abc") is None
    assert coerce(ValueKind.STRING, None) is None


def test_floats_and_nodes_are_never_truthy():
    assert not is_truthy(ValueKind.FLOAT, 1.0)
    assert not is_truthy(ValueKind.NODE, {"a": "b"})
    assert is_truthy(ValueKind.INT, -1)
    assert not is_truthy(ValueKind.INT, 0)
    assert not is_truthy(ValueKind.STRING, "")


def test_last_write_wins_and_flags_accumulate():
    table = ObservedStateTable()
    first = table.update(Prop.VOLUME, 50)
    second = table.update(Prop.VOLUME, 70)

    assert table.get(Prop.VOLUME) == 70
    assert first == second
    assert second.actions == frozenset({Action.UPDATE})
    assert second.rewrite_body and not second.rewrite_summary


def test_unavailable_value_removes_entry():
    table = ObservedStateTable()
    table.update(Prop.TIME_POS, 12.5)
    assert table.read(Prop.TIME_POS) == (True, 12)

    table.update(Prop.TIME_POS, None)
    assert table.read(Prop.TIME_POS) == (False, None)
    assert not table.available(Prop.TIME_POS)
    assert len(table) == 0


def test_only_if_truthy_actions():
    table = ObservedStateTable()
    assert table.update(Prop.FOCUSED, False).actions == frozenset()
    assert table.update(Prop.FOCUSED, True).actions == frozenset({Action.CLOSE})
    assert table.update(Prop.EOF_REACHED, False).actions == frozenset()
    assert table.update(Prop.EOF_REACHED, True).actions == frozenset({Action.RESET})


def test_markup_escaping_only_for_flagged_properties():
    table = ObservedStateTable(escape_markup=True)
    table.update(Prop.SUB_TEXT, "<i>hi</i> & bye")
    table.update(Prop.MEDIA_TITLE, "a < b")

    assert table.get(Prop.SUB_TEXT) == "&lt;i&gt;hi&lt;/i&gt; &amp; bye"
    assert table.get(Prop.MEDIA_TITLE) == "a < b"

    plain = ObservedStateTable(escape_markup=False)
    plain.update(Prop.SUB_TEXT, "<i>hi</i>")
    assert plain.get(Prop.SUB_TEXT) == "<i>hi</i>"
