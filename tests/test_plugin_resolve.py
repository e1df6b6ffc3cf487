"""
Tests for the glslify resolution patch applied to the bundler.
"""
import os

import pytest

from canvas_sketch_cli import plugin_resolve
from canvas_sketch_cli.bundler import Bundler
from canvas_sketch_cli.output import ResolveError
from canvas_sketch_cli.plugin_resolve import TOOL_DIR, patch_resolver


class FakeBundler:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def _resolve(self, id, opts):
        self.calls.append((id, opts))
        if self.fail:
            raise ResolveError("underlying error")
        return f"/resolved/{id}", {"name": id}


@pytest.mark.parametrize("specifier", ["glslify", "glslify/foo", "glslify\\foo"])
def test_glslify_resolves_from_tool_dir(specifier):
    bundler = patch_resolver(FakeBundler())
    bundler._resolve(specifier, {"basedir": "/somewhere/else", "filename": "/somewhere/else/a.js"})
    _, opts = bundler.calls[-1]
    assert opts["basedir"] == TOOL_DIR
    assert opts["filename"] == "/somewhere/else/a.js"


@pytest.mark.parametrize("specifier", ["three", "glslify-hex", "my-glslify", "./glslify"])
def test_other_specifiers_keep_basedir(specifier):
    bundler = patch_resolver(FakeBundler())
    opts = {"basedir": "/somewhere/else"}
    bundler._resolve(specifier, opts)
    assert bundler.calls[-1] == (specifier, opts)


def test_caller_options_not_mutated():
    bundler = patch_resolver(FakeBundler())
    opts = {"basedir": "/somewhere/else"}
    bundler._resolve("glslify", opts)
    assert opts == {"basedir": "/somewhere/else"}


def test_success_is_forwarded_unchanged():
    bundler = patch_resolver(FakeBundler())
    assert bundler._resolve("three", {"basedir": "/x"}) == ("/resolved/three", {"name": "three"})


def test_custom_basedir():
    bundler = patch_resolver(FakeBundler(), basedir="/opt/tool")
    bundler._resolve("glslify", {"basedir": "/x"})
    assert bundler.calls[-1][1]["basedir"] == "/opt/tool"


def test_failure_names_specifier_and_importer(tmp_path, monkeypatch):
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.chdir(project)
    bundler = patch_resolver(FakeBundler(fail=True))

    with pytest.raises(ResolveError) as excinfo:
        bundler._resolve("three", {"basedir": str(project), "filename": str(project / "sketch.js")})
    assert str(excinfo.value) == f"Cannot find module 'three' from '{os.path.join('project', 'sketch.js')}'"
    assert str(excinfo.value.__cause__) == "underlying error"


def test_tool_dir_env_override(tmp_path, monkeypatch):
    monkeypatch.setenv("CANVAS_SKETCH_CLI_HOME", str(tmp_path / "home"))
    assert plugin_resolve.get_tool_dir() == str(tmp_path / "home")


def test_tool_dir_defaults_outside_package(monkeypatch):
    monkeypatch.delenv("CANVAS_SKETCH_CLI_HOME", raising=False)
    package_dir = os.path.dirname(os.path.abspath(plugin_resolve.__file__))
    tool_dir = plugin_resolve.get_tool_dir()
    assert tool_dir.endswith("canvas-sketch-cli")
    assert not tool_dir.startswith(package_dir)


def test_glslify_reads_tool_dir_when_resolving(tmp_path, monkeypatch):
    glslify = tmp_path / "tool" / "node_modules" / "glslify"
    glslify.mkdir(parents=True)
    (glslify / "index.js").write_text("")
    bundler = patch_resolver(Bundler(str(tmp_path / "project" / "sketch.js"), transforms=["glslify"]))
    monkeypatch.setattr(plugin_resolve, "TOOL_DIR", str(tmp_path / "tool"))

    path, _ = bundler._resolve("glslify", {"basedir": str(tmp_path / "project")})
    assert path == str(glslify / "index.js")
