"""Tests for eot/question_file.py."""

from pathlib import Path

from eot.question_file import parse_file


def test_parse_file_without_frontmatter(tmp_path: Path):
    path = tmp_path / "q.md"
    path.write_text("Should we adopt a monorepo?\n", encoding="utf-8")
    content, meta = parse_file(path)
    assert content == "Should we adopt a monorepo?"
    assert meta == {}


def test_parse_file_with_frontmatter(tmp_path: Path):
    path = tmp_path / "q.md"
    path.write_text(
        "---\nstrategy: relay\nmodels: [claude, gemini]\n---\n\nPlan the migration.\n",
        encoding="utf-8",
    )
    content, meta = parse_file(path)
    assert content == "Plan the migration."
    assert meta["strategy"] == "relay"
    assert meta["models"] == ["claude", "gemini"]


def test_parse_file_splits_comma_models(tmp_path: Path):
    path = tmp_path / "q.md"
    path.write_text("---\nmodels: claude, openai ,deepseek\n---\nQ?\n", encoding="utf-8")
    _, meta = parse_file(path)
    assert meta["models"] == ["claude", "openai", "deepseek"]


def test_parse_file_personas(tmp_path: Path):
    path = tmp_path / "q.md"
    path.write_text("---\npersonas:\n  claude: socratic\n---\nQ?\n", encoding="utf-8")
    _, meta = parse_file(path)
    assert meta["personas"] == {"claude": "socratic"}
