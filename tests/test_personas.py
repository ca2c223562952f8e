"""Tests for eot/personas.py."""

from eot.personas import decorate

PERSONAS = {"socratic": "(Socratic) Let us look.\n\n{content}", "plain": "{content}"}


def test_decorate_wraps_content():
    assert decorate("Answer.", "socratic", PERSONAS) == "(Socratic) Let us look.\n\nAnswer."


def test_decorate_no_persona_returns_text():
    assert decorate("Answer.", None, PERSONAS) == "Answer."
    assert decorate("Answer.", "", PERSONAS) == "Answer."


def test_decorate_unknown_persona_returns_text():
    assert decorate("Answer.", "pirate", PERSONAS) == "Answer."


def test_decorate_keeps_braces_in_content():
    assert decorate("use {json}", "plain", PERSONAS) == "use {json}"
