"""
Tests for dependency detection and installation.
"""
from unittest.mock import AsyncMock

import pytest

from canvas_sketch_cli import install as install_module
from canvas_sketch_cli import plugin_resolve
from canvas_sketch_cli.install import find_dependencies, install, install_tool_packages, package_name
from canvas_sketch_cli.output import InstallError
from canvas_sketch_cli.sketches import load_template


SOURCE = """
import canvasSketch from 'canvas-sketch';
import * as THREE from "three";
import { lerp, clamp } from 'canvas-sketch-util/math';
import {
  a,
  b
} from '@scope/pkg/sub';
import './local.css';
import 'side-effect';
const fs = require('fs');
const glsl = require('glslify');
const random = require('canvas-sketch-util/random');
const lazy = import('lazy-thing');
const util = require("./util");
const buf = require('node:buffer');
"""


def test_package_name():
    assert package_name("three") == "three"
    assert package_name("three/examples/jsm") == "three"
    assert package_name("@scope/pkg/sub") == "@scope/pkg"


def test_find_dependencies():
    assert find_dependencies(SOURCE) == [
        "canvas-sketch",
        "three",
        "canvas-sketch-util",
        "@scope/pkg",
        "side-effect",
        "lazy-thing",
    ]


def test_shader_template_dependencies():
    assert find_dependencies(load_template("shader")) == ["canvas-sketch", "canvas-sketch-util"]


@pytest.mark.asyncio
async def test_install_skips_present_packages(tmp_path, monkeypatch):
    npm = AsyncMock()
    monkeypatch.setattr(install_module, "_npm", npm)
    pkg = tmp_path / "node_modules" / "three"
    pkg.mkdir(parents=True)
    (pkg / "package.json").write_text("{}")

    assert await install("import * as T from 'three';", cwd=str(tmp_path)) == []
    npm.assert_not_called()


@pytest.mark.asyncio
async def test_install_initializes_and_installs(tmp_path, monkeypatch):
    npm = AsyncMock()
    monkeypatch.setattr(install_module, "_npm", npm)

    installed = await install(load_template("default"), cwd=str(tmp_path))
    assert installed == ["canvas-sketch"]
    assert [c.args for c in npm.call_args_list] == [
        ("init", "-y"),
        ("install", "--save", "canvas-sketch"),
    ]


@pytest.mark.asyncio
async def test_install_failure_propagates(tmp_path, monkeypatch):
    (tmp_path / "package.json").write_text("{}")
    monkeypatch.setattr(install_module, "_npm", AsyncMock(side_effect=InstallError("npm failed")))
    with pytest.raises(InstallError):
        await install("require('three')", cwd=str(tmp_path))


# ─────────────────────────────────────────────────────────────────────────────
# Tool packages
# ─────────────────────────────────────────────────────────────────────────────

def fake_npm_installing_into(directory):
    async def _npm(*args, cwd):
        if args[0] == "install":
            for name in args[2:]:
                pkg = directory / "node_modules" / name
                pkg.mkdir(parents=True)
                (pkg / "package.json").write_text("{}")
    return AsyncMock(side_effect=_npm)


@pytest.mark.asyncio
async def test_install_tool_packages_defaults_to_tool_dir(tmp_path, monkeypatch):
    tool_dir = tmp_path / "tool"
    monkeypatch.setattr(plugin_resolve, "TOOL_DIR", str(tool_dir))
    npm = fake_npm_installing_into(tool_dir)
    monkeypatch.setattr(install_module, "_npm", npm)

    assert await install_tool_packages() == ["glslify"]
    assert tool_dir.is_dir()
    assert [(c.args, c.kwargs) for c in npm.call_args_list] == [
        (("init", "-y"), {"cwd": str(tool_dir)}),
        (("install", "--save", "glslify"), {"cwd": str(tool_dir)}),
    ]

    npm.reset_mock()
    assert await install_tool_packages() == []
    npm.assert_not_called()


@pytest.mark.asyncio
async def test_install_tool_packages_explicit_dir(tmp_path, monkeypatch):
    (tmp_path / "package.json").write_text("{}")
    npm = fake_npm_installing_into(tmp_path)
    monkeypatch.setattr(install_module, "_npm", npm)

    assert await install_tool_packages(tool_dir=str(tmp_path)) == ["glslify"]
    assert [c.args for c in npm.call_args_list] == [("install", "--save", "glslify")]
