"""Lantern static site generator.

This package turns a tree of source documents and theme templates into a tree of
output documents. Sites are either built to disk once or served live with
incremental rebuilds triggered by filesystem events.

The pipeline is made of small ordered registries:
- Renderer: maps a source extension to render handlers (Markdown, HTML, Jinja).
- Processor: site-wide transformation steps (sequencing, categories, tags, TOC).
- Generator: synthesizes pages that have no source file (index, archives, tags).
- Router: discovers, loads and writes or serves files, and drives rebuilds.

The main entry point is the CLI module, which provides the `build` and `serve` commands.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
