"""
Shared fixtures for extension tests.
"""

import json
import textwrap
from pathlib import Path

import pytest


PANEL_CODE = """
def register(ctx):
    ctx.register_panel("{type_id}", "{component}")
"""


def _write_extension(
    root,
    ext_id,
    code=None,
    *,
    version="1.0.0",
    kind="panel",
    entry="index.py",
    css=None,
    components=None,
    **extra,
):
    """
    Create an extension directory with a manifest and (optionally) code.

    When ``code`` is None a module registering a panel named after the
    extension is written.
    """
    directory = Path(root) / ext_id
    directory.mkdir(parents=True, exist_ok=True)

    manifest = {
        "id": ext_id,
        "name": ext_id.replace("-", " ").title(),
        "version": version,
        "type": kind,
        "entry": entry,
    }
    if css is not None:
        manifest["css"] = "style.css"
        (directory / "style.css").write_text(css, encoding="utf-8")
    if components is not None:
        manifest["components"] = components
    manifest.update(extra)
    (directory / "manifest.json").write_text(json.dumps(manifest), encoding="utf-8")

    if code is None:
        code = PANEL_CODE.format(type_id=ext_id, component=f"{ext_id}-component")
    if code is not False:
        (directory / entry).write_text(textwrap.dedent(code), encoding="utf-8")
    return directory


@pytest.fixture
def write_extension():
    return _write_extension
