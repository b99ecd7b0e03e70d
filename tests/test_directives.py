"""Tests for [CMD:...] parsing, stripping and dispatch."""

import pytest

from dm_table.directives import (
    dispatch_directive,
    dispatch_directives,
    parse_directives,
    parse_options,
    strip_directives,
)
from dm_table.models import Directive


# ── parse ────────────────────────────────────────────────────


def test_parse_in_order_with_options():
    text = "Hola [CMD:NEXT_TURN] mundo [CMD:SETTINGS duration=30 auto=0]"
    directives = parse_directives(text)
    assert [d.name for d in directives] == ["NEXT_TURN", "SETTINGS"]
    assert directives[0].options == {}
    assert directives[1].options == {"duration": "30", "auto": "0"}


def test_unknown_directive_dropped():
    assert parse_directives("[CMD:FIREBALL] [CMD:PAUSE]") == [Directive(name="PAUSE")]


def test_options_without_equals_dropped():
    assert parse_options(" duration=30 loud auto=1 =5") == {"duration": "30", "auto": "1"}


def test_option_keys_lowercased():
    assert parse_options("Duration=45") == {"duration": "45"}


def test_lowercase_name_not_a_directive():
    assert parse_directives("[CMD:next_turn]") == []


def test_no_directives():
    assert parse_directives("Solo narración.") == []
    assert parse_directives("") == []


# ── strip ────────────────────────────────────────────────────


def test_strip_inline():
    assert strip_directives("Hola [CMD:NEXT_TURN] mundo [CMD:SETTINGS duration=30 auto=0]") == "Hola mundo"


def test_strip_directive_only_line():
    text = "Los goblins atacan.\n[CMD:START_COMBAT]\n¿Qué hacéis?"
    assert strip_directives(text) == "Los goblins atacan.\n¿Qué hacéis?"


def test_strip_removes_unknown_names_too():
    assert strip_directives("Algo [CMD:WHATEVER x=1] pasa") == "Algo pasa"


def test_strip_collapses_blank_runs_but_keeps_paragraphs():
    text = "Uno.\n\n\n\n[CMD:PAUSE]\n\nDos."
    assert strip_directives(text) == "Uno.\n\nDos."


def test_strip_only_directive_is_empty():
    assert strip_directives("[CMD:END_COMBAT]") == ""


def test_strip_plain_text_untouched():
    assert strip_directives("Sin comandos.") == "Sin comandos."


# ── dispatch ─────────────────────────────────────────────────


async def test_start_combat_with_options(scheduler, seat_players, registry):
    seat_players("r1", "Ana", "Bruno")
    dispatch_directive(scheduler, "r1", Directive(
        name="START_COMBAT", options={"duration": "45", "auto": "0", "delay": "3"},
    ))
    state = registry.combat("r1")
    assert state.duration_sec == 45
    assert state.auto_advance is False
    assert state.auto_delay_sec == 3
    assert state.timer is None


async def test_start_combat_accepts_spanish_duration(scheduler, seat_players, registry):
    seat_players("r1", "Ana")
    dispatch_directive(scheduler, "r1", Directive(name="START_COMBAT", options={"duracion": "90"}))
    assert registry.combat("r1").duration_sec == 90


async def test_start_combat_bad_duration_uses_default(scheduler, seat_players, registry):
    seat_players("r1", "Ana")
    dispatch_directive(scheduler, "r1", Directive(name="START_COMBAT", options={"duration": "abc"}))
    assert registry.combat("r1").duration_sec == 600


async def test_settings_only_touch_given_fields(scheduler, seat_players, registry):
    seat_players("r1", "Ana")
    scheduler.start("r1", duration_sec=120, auto_advance=True)
    dispatch_directive(scheduler, "r1", Directive(name="SETTINGS", options={"delay": "5"}))
    state = registry.combat("r1")
    assert state.duration_sec == 120
    assert state.auto_advance is True
    assert state.auto_delay_sec == 5


async def test_settings_truthy_spellings(scheduler, seat_players, registry):
    seat_players("r1", "Ana")
    scheduler.start("r1", auto_advance=False)
    dispatch_directive(scheduler, "r1", Directive(name="SETTINGS", options={"auto": "sí"}))
    assert registry.combat("r1").auto_advance is True
    dispatch_directive(scheduler, "r1", Directive(name="SETTINGS", options={"auto": "no"}))
    assert registry.combat("r1").auto_advance is False


async def test_dispatch_runs_in_text_order(scheduler, seat_players, registry):
    seat_players("r1", "Ana", "Bruno")
    ran = dispatch_directives(
        scheduler, "r1", "[CMD:START_COMBAT] ... [CMD:NEXT_TURN] [CMD:PAUSE]"
    )
    state = registry.combat("r1")
    assert [d.name for d in ran] == ["START_COMBAT", "NEXT_TURN", "PAUSE"]
    assert state.turn_index == 1
    assert state.running is False


async def test_dispatch_end_and_sync(scheduler, seat_players, registry):
    seat_players("r1", "Ana")
    scheduler.start("r1")
    seat_players("r1", "Bruno")
    dispatch_directives(scheduler, "r1", "[CMD:SYNC_PLAYERS]")
    assert [e.name for e in registry.combat("r1").initiative][-1] == "Bruno"
    dispatch_directives(scheduler, "r1", "[CMD:END_COMBAT]")
    assert registry.combat("r1") is None


async def test_dispatch_without_combat_is_noop(scheduler, hub):
    dispatch_directives(scheduler, "r1", "[CMD:NEXT_TURN][CMD:PREV_TURN][CMD:RESUME]")
    assert hub.emitted == []


@pytest.mark.parametrize("value", ["inf", "-inf", "nan", "1e400"])
async def test_start_combat_non_finite_duration_uses_default(scheduler, seat_players, registry, value):
    seat_players("r1", "Ana")
    dispatch_directives(scheduler, "r1", f"[CMD:START_COMBAT duration={value} delay={value}]")
    state = registry.combat("r1")
    assert state.duration_sec == 600
    assert state.auto_delay_sec == 1


@pytest.mark.parametrize("value", ["inf", "nan", "1e400"])
async def test_settings_non_finite_values_ignored(scheduler, seat_players, registry, value):
    seat_players("r1", "Ana")
    scheduler.start("r1", duration_sec=120, auto_delay_sec=2)
    dispatch_directives(scheduler, "r1", f"[CMD:SETTINGS duration={value} delay={value}]")
    state = registry.combat("r1")
    assert state.duration_sec == 120
    assert state.auto_delay_sec == 2
