"""Read a question from a markdown file with optional YAML frontmatter."""

from pathlib import Path

import frontmatter


def parse_file(file_path: Path) -> tuple[str, dict]:
    """Parse a markdown file with optional YAML frontmatter.

    Returns:
        (content, metadata) where content is the body text and metadata may
        carry ``strategy`` (str), ``models`` (list[str]) and ``personas``
        (dict). Comma-separated ``models`` strings are split. If there is no
        frontmatter, metadata is {}.
    """
    post = frontmatter.load(str(file_path))
    content = post.content.strip()
    metadata = dict(post.metadata)

    models = metadata.get("models")
    if isinstance(models, str):
        metadata["models"] = [m.strip() for m in models.split(",") if m.strip()]
    return content, metadata
