"""Path checks and filename helpers for content paths."""

import re

from quire.errors import ValidationError

MARKDOWN_EXTENSIONS = (".md", ".mdx")


def normalize_path(path, allow_root: bool = False) -> str:
    """
    Validate a repository-relative path and return it in canonical form.

    Leading/trailing slashes are stripped. Empty, '.' and '..' segments are
    rejected. The empty path (repository root) is only accepted when
    allow_root is set.
    """
    if not isinstance(path, str):
        raise ValidationError("path must be a string")
    cleaned = path.strip().strip("/")
    if not cleaned:
        if allow_root:
            return ""
        raise ValidationError("path is required", path=path)
    for segment in cleaned.split("/"):
        if segment in ("", ".", ".."):
            raise ValidationError(f"invalid path segment {segment!r}", path=path)
    return cleaned


def join_path(*parts: str) -> str:
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


def is_markdown(name: str) -> bool:
    return name.lower().endswith(MARKDOWN_EXTENSIONS)


def markdown_filename(name: str) -> str:
    """Append '.md' unless the name already carries a Markdown extension."""
    name = name.strip()
    if not name:
        raise ValidationError("filename is required")
    return name if is_markdown(name) else name + ".md"


def slugify(title: str, existing=None) -> str:
    """
    URL-friendly slug from a post title.

    Lowercases, turns whitespace and underscores into hyphens, drops other
    non-word characters and collapses repeated hyphens. With `existing`,
    a numeric suffix keeps the slug unique.
    """
    slug = title.lower().strip()
    slug = re.sub(r"\s+", "-", slug)
    slug = slug.replace("_", "-")
    slug = re.sub(r"[^\w-]+", "", slug)
    slug = re.sub(r"--+", "-", slug).strip("-")

    if existing:
        base, n = slug, 1
        while slug in existing:
            slug = f"{base}-{n}"
            n += 1
    return slug
