"""
Tests for extension loading, reload and unload.
"""

import asyncio
import dataclasses
import sys

import pytest

from extensions import (
    BUILTIN_SOURCE,
    EntryKind,
    ExtensionLoader,
    LoadStatus,
    TypeRegistries,
)
from extensions.loader import module_name_for
from extensions.store import read_manifest


def load_descriptor(directory):
    return read_manifest(directory, root=directory.parent)


class TestLoad:
    """Test the registration contracts and failure containment."""

    def setup_method(self):
        self.registries = TypeRegistries.with_builtins()
        self.loader = ExtensionLoader(self.registries, load_timeout=2.0)

    @pytest.mark.asyncio
    async def test_register_callable(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "sparkline")

        state = await self.loader.load(load_descriptor(directory))

        assert state.status == LoadStatus.LOADED
        assert state.units == (("panel", "sparkline"),)
        entry = self.registries.panels.get("sparkline")
        assert entry.source == "sparkline"
        assert entry.component == "sparkline-component"

    @pytest.mark.asyncio
    async def test_async_register_and_returned_units(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "wiki", """
            async def register(ctx):
                ctx.register_page("wiki", "WikiPage", config_schema=[{"id": "space", "type": "text"}])
                return [
                    {"kind": "layout", "id": "wiki-split", "component": "Split",
                     "slots": [{"id": "nav"}, {"id": "body"}]},
                ]
        """, kind="page")

        state = await self.loader.load(load_descriptor(directory))

        assert state.is_loaded
        assert self.registries.pages.get("wiki").config_schema[0].id == "space"
        assert [s.id for s in self.registries.layouts.get("wiki-split").slots] == ["nav", "body"]

    @pytest.mark.asyncio
    async def test_components_mapping_with_declarations(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "notes", """
            class NotesPanel:
                pass

            components = {"NotesPanel": NotesPanel}
        """, components=[{
            "type": "panel",
            "name": "NotesPanel",
            "id": "notes",
            "display_name": "Notes",
            "config_schema": [{"key": "body", "type": "textarea"}],
            "default_config": {"body": ""},
        }])

        state = await self.loader.load(load_descriptor(directory))

        assert state.is_loaded
        entry = self.registries.panels.get("notes")
        assert entry.name == "Notes"
        assert entry.component.__name__ == "NotesPanel"
        assert entry.default_config == {"body": ""}

    @pytest.mark.asyncio
    async def test_components_mapping_without_declarations(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "clock", 'components = {"Clock": "ClockComponent"}')

        state = await self.loader.load(load_descriptor(directory))

        assert state.is_loaded
        assert self.registries.panels.get("clock").component == "ClockComponent"

    @pytest.mark.asyncio
    async def test_declared_component_not_exported(self, tmp_path, write_extension):
        directory = write_extension(
            tmp_path, "notes", 'components = {"Other": object}',
            components=[{"type": "panel", "name": "NotesPanel"}],
        )

        state = await self.loader.load(load_descriptor(directory))

        assert state.status == LoadStatus.FAILED
        assert "NotesPanel" in state.reason

    @pytest.mark.asyncio
    async def test_register_takes_precedence_over_components(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "both", """
            components = {"Ignored": "Ignored"}

            def register(ctx):
                ctx.register_panel("from-register", "Registered")
        """)

        await self.loader.load(load_descriptor(directory))

        assert self.registries.panels.has("from-register")
        assert not self.registries.panels.has("both")

    @pytest.mark.asyncio
    async def test_no_registration_contract(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "empty", "VALUE = 1\n")

        state = await self.loader.load(load_descriptor(directory))

        assert state.status == LoadStatus.FAILED
        assert state.reason == "no registration contract"

    @pytest.mark.asyncio
    async def test_exec_error_is_contained(self, tmp_path, write_extension):
        broken = write_extension(tmp_path, "broken", "raise RuntimeError('boom at import')\n")
        good = write_extension(tmp_path, "good")

        broken_state = await self.loader.load(load_descriptor(broken))
        good_state = await self.loader.load(load_descriptor(good))

        assert broken_state.is_failed
        assert "boom at import" in broken_state.reason
        assert good_state.is_loaded
        assert module_name_for("broken") not in sys.modules

    @pytest.mark.asyncio
    async def test_sys_exit_at_import_is_contained(self, tmp_path, write_extension):
        exiter = write_extension(tmp_path, "exiter", "import sys\nsys.exit(3)\n")
        good = write_extension(tmp_path, "good")

        exiter_state = await self.loader.load(load_descriptor(exiter))
        good_state = await self.loader.load(load_descriptor(good))

        assert exiter_state.is_failed
        assert exiter_state.reason == "SystemExit: 3"
        assert good_state.is_loaded
        assert module_name_for("exiter") not in sys.modules

    @pytest.mark.asyncio
    async def test_sys_exit_in_register_is_contained(self, tmp_path, write_extension):
        sync_exit = write_extension(tmp_path, "quitter", """
            import sys

            def register(ctx):
                ctx.register_panel("quitter", "Quitter")
                sys.exit("bye")
        """)
        async_exit = write_extension(tmp_path, "async-quitter", """
            import sys

            async def register(ctx):
                sys.exit(1)
        """)

        sync_state = await self.loader.load(load_descriptor(sync_exit))
        async_state = await self.loader.load(load_descriptor(async_exit))

        assert sync_state.reason == "SystemExit: bye"
        assert async_state.reason == "SystemExit: 1"
        assert not self.registries.panels.has("quitter")

    @pytest.mark.asyncio
    async def test_missing_entry_file(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "ghost", False)

        state = await self.loader.load(load_descriptor(directory))

        assert state.is_failed
        assert "entry not found" in state.reason

    @pytest.mark.asyncio
    async def test_invalid_unit_fails_whole_extension(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "half", """
            def register(ctx):
                ctx.register_panel("half-ok", "Fine")
                ctx.add({"kind": "layout", "id": "half-bad", "component": "NoSlots"})
        """)

        state = await self.loader.load(load_descriptor(directory))

        assert state.is_failed
        assert "at least one slot" in state.reason
        assert not self.registries.panels.has("half-ok")

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path, write_extension):
        loader = ExtensionLoader(self.registries, load_timeout=0.2)
        directory = write_extension(tmp_path, "slow", """
            import asyncio

            async def register(ctx):
                await asyncio.sleep(5)
                ctx.register_panel("slow", "Slow")
        """)

        state = await loader.load(load_descriptor(directory))

        assert state.is_failed
        assert state.reason == "timed out"
        assert not self.registries.panels.has("slow")

    @pytest.mark.asyncio
    async def test_host_api_mismatch(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "future", """
            HOST_API = "pagehost/2"

            def register(ctx):
                ctx.register_panel("future", "Future")
        """)

        state = await self.loader.load(load_descriptor(directory))

        assert state.is_failed
        assert state.reason.startswith("incompatible host API")
        assert not self.registries.panels.has("future")

    @pytest.mark.asyncio
    async def test_stylesheet_read(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "styled", css=".styled { color: red; }")

        state = await self.loader.load(load_descriptor(directory))

        assert state.is_loaded
        assert self.loader.stylesheet("styled") == ".styled { color: red; }"

    @pytest.mark.asyncio
    async def test_missing_stylesheet_fails(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "unstyled")
        descriptor = load_descriptor(directory)
        descriptor = dataclasses.replace(descriptor, style_path=directory / "missing.css")

        state = await self.loader.load(descriptor)

        assert state.is_failed
        assert "cannot read stylesheet" in state.reason

    @pytest.mark.asyncio
    async def test_package_entry(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "pkg-ext", False, entry="pkg")
        package = directory / "pkg"
        package.mkdir()
        (package / "panels.py").write_text("COMPONENT = 'FromSubmodule'\n")
        (package / "__init__.py").write_text(
            "from .panels import COMPONENT\n\n"
            "def register(ctx):\n"
            "    ctx.register_panel('pkg-ext', COMPONENT)\n"
        )

        state = await self.loader.load(load_descriptor(directory))

        assert state.is_loaded
        assert self.registries.panels.get("pkg-ext").component == "FromSubmodule"

    @pytest.mark.asyncio
    async def test_load_is_idempotent(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "once")
        descriptor = load_descriptor(directory)

        first = await self.loader.load(descriptor)
        second = await self.loader.load(descriptor)

        assert first is second

    @pytest.mark.asyncio
    async def test_ctx_logging_prefix(self, tmp_path, write_extension, caplog):
        directory = write_extension(tmp_path, "chatty", """
            def register(ctx):
                ctx.log_info("hello from the extension")
                ctx.register_panel("chatty", "Chatty")
        """)

        with caplog.at_level("INFO"):
            await self.loader.load(load_descriptor(directory))

        assert "[chatty] hello from the extension" in caplog.text


class TestReload:
    """Test reload, coalescing and unload."""

    def setup_method(self):
        self.registries = TypeRegistries.with_builtins()
        self.loader = ExtensionLoader(self.registries, load_timeout=2.0)

    @pytest.mark.asyncio
    async def test_reload_replaces_units(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "suite", """
            def register(ctx):
                ctx.register_panel("suite-a", "A1")
                ctx.register_panel("suite-b", "B1")
        """)
        await self.loader.load(load_descriptor(directory))

        write_extension(tmp_path, "suite", """
            def register(ctx):
                ctx.register_panel("suite-a", "A2-updated")
                ctx.register_panel("suite-c", "C2-added-in-this-version")
        """, version="1.1.0")
        state = await self.loader.reload("suite", load_descriptor(directory))

        panels = self.registries.panels
        assert state.is_loaded
        assert panels.get("suite-a").component == "A2-updated"
        assert not panels.has("suite-b")
        assert panels.has("suite-c")

    @pytest.mark.asyncio
    async def test_failed_reload_removes_old_units(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "fragile")
        await self.loader.load(load_descriptor(directory))
        assert self.registries.panels.has("fragile")

        write_extension(tmp_path, "fragile", "raise ImportError('dependency went missing during reload')\n")
        state = await self.loader.reload("fragile")

        assert state.is_failed
        assert not self.registries.panels.has("fragile")
        assert self.loader.failed_owner(EntryKind.PANEL, "fragile") == ("fragile", state.reason)

    @pytest.mark.asyncio
    async def test_failed_reload_restores_shadowed_builtin(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "chart-plus", """
            def register(ctx):
                ctx.register_panel("chart", "BetterChart")
        """)
        await self.loader.load(load_descriptor(directory))
        assert self.registries.panels.get("chart").component == "BetterChart"

        write_extension(tmp_path, "chart-plus", "VALUE = 'no contract in this version'\n")
        await self.loader.reload("chart-plus")

        assert self.registries.panels.get("chart").source == BUILTIN_SOURCE

    @pytest.mark.asyncio
    async def test_failed_reload_restores_collided_extension_unit(self, tmp_path, write_extension):
        shared = """
            def register(ctx):
                ctx.register_panel("shared", "{component}")
        """
        alpha = write_extension(tmp_path, "alpha", shared.format(component="AlphaShared"))
        beta = write_extension(tmp_path, "beta", shared.format(component="BetaShared"))
        await self.loader.load(load_descriptor(alpha))
        await self.loader.load(load_descriptor(beta))
        assert self.registries.panels.get("shared").source == "beta"

        write_extension(tmp_path, "beta", "raise RuntimeError('beta broke')\n")
        state = await self.loader.reload("beta")

        assert state.is_failed
        assert self.loader.state("alpha").units == (("panel", "shared"),)
        entry = self.registries.panels.get("shared")
        assert entry.source == "alpha"
        assert entry.component == "AlphaShared"

    @pytest.mark.asyncio
    async def test_unload_hook_sys_exit_is_contained(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "stubborn", """
            import sys

            def register(ctx):
                ctx.register_panel("stubborn", "Stubborn")

            def unregister(ctx):
                sys.exit(2)
        """)
        await self.loader.load(load_descriptor(directory))

        removed = await self.loader.unload("stubborn")

        assert removed == 1
        assert self.loader.state("stubborn") is None

    @pytest.mark.asyncio
    async def test_concurrent_reloads_coalesce(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "counted", """
            from pathlib import Path

            def register(ctx):
                log = Path(ctx.descriptor.directory) / "calls.log"
                with open(log, "a") as f:
                    f.write("x\\n")
                ctx.register_panel("counted", "Counted")
        """)
        await self.loader.load(load_descriptor(directory))

        states = await asyncio.gather(*[self.loader.reload("counted") for _ in range(3)])

        assert all(s.is_loaded for s in states)
        assert states[0] is states[1] is states[2]
        calls = (directory / "calls.log").read_text().splitlines()
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_reload_unknown_extension(self):
        state = await self.loader.reload("never-seen")
        assert state.is_failed
        assert state.reason == "unknown extension"

    @pytest.mark.asyncio
    async def test_unload_calls_hook_and_removes_units(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "hooked", """
            from pathlib import Path

            def register(ctx):
                ctx.register_panel("hooked", "Hooked")
                ctx.register_panel("text", "BetterText")

            def unregister(ctx):
                (Path(ctx.descriptor.directory) / "unregistered").write_text("yes")
        """)
        await self.loader.load(load_descriptor(directory))

        removed = await self.loader.unload("hooked")

        assert removed == 2
        assert not self.registries.panels.has("hooked")
        assert self.registries.panels.get("text").source == BUILTIN_SOURCE
        assert (directory / "unregistered").read_text() == "yes"
        assert self.loader.state("hooked") is None
        assert module_name_for("hooked") not in sys.modules

    @pytest.mark.asyncio
    async def test_sequential_reloads_are_idempotent(self, tmp_path, write_extension):
        directory = write_extension(tmp_path, "steady", """
            def register(ctx):
                ctx.register_panel("steady", "Steady")
                ctx.register_page("steady-page", "SteadyPage")
        """)
        await self.loader.load(load_descriptor(directory))

        await self.loader.reload("steady")
        once = {r.kind: r.get_all() for r in self.registries.all()}
        await self.loader.reload("steady")
        twice = {r.kind: r.get_all() for r in self.registries.all()}

        assert once == twice
        assert self.loader.state("steady").units == (("panel", "steady"), ("page", "steady-page"))


class TestNotesScenario:
    """A single-panel extension registers exactly one entry under its id."""

    @pytest.mark.asyncio
    async def test_notes_panel(self, tmp_path, write_extension):
        registries = TypeRegistries.with_builtins()
        loader = ExtensionLoader(registries)
        before = len(registries.panels.get_all())
        directory = write_extension(
            tmp_path, "notes", 'components = {"NotesPanel": "NotesPanel"}', entry="notes.py",
        )

        state = await loader.load(load_descriptor(directory))

        assert state.is_loaded
        assert len(registries.panels.get_all()) == before + 1
        assert registries.panels.get("notes").source == "notes"
