"""
plugin_resolve.py: make glslify resolve from this tool, not the sketch.

Sketches use glslify for inline shaders but don't list it as a dependency,
so `glslify` and `glslify/<sub>` are always looked up from the tool's own
node_modules (TOOL_DIR, filled by install.install_tool_packages on first
run). Resolution errors are reworded to name the importing file, since the
underlying error often only names a folder.
"""

import os
import re
import sys

from .output import ResolveError


def get_tool_dir():
    """Per-user directory holding the npm packages this tool relies on.

    CANVAS_SKETCH_CLI_HOME overrides the platform default.
    """
    override = os.environ.get("CANVAS_SKETCH_CLI_HOME")
    if override:
        return os.path.abspath(override)
    if sys.platform.startswith("win"):
        base = os.environ.get("LOCALAPPDATA", os.path.expanduser("~"))
        return os.path.join(base, "canvas-sketch-cli")
    if sys.platform == "darwin":
        return os.path.join(os.path.expanduser("~"), "Library", "Caches", "canvas-sketch-cli")
    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg:
        return os.path.join(xdg, "canvas-sketch-cli")
    return os.path.join(os.path.expanduser("~"), ".cache", "canvas-sketch-cli")


TOOL_DIR = get_tool_dir()
GLSLIFY_PATTERN = re.compile(r"^glslify([\\/].*)?$")


def patch_resolver(bundler, basedir=None):
    """Wrap `bundler._resolve` in place and return the bundler.

    `basedir` defaults to TOOL_DIR, read when a module is resolved.
    """
    resolver = bundler._resolve

    def _resolve(id, opts):
        if GLSLIFY_PATTERN.match(id):
            opts = dict(opts, basedir=basedir or TOOL_DIR)
        try:
            return resolver(id, opts)
        except ResolveError as e:
            importer = opts.get("filename") or opts.get("basedir")
            if importer:
                importer = os.path.relpath(importer, os.path.dirname(os.getcwd()))
            raise ResolveError(f"Cannot find module '{id}' from '{importer}'") from e

    bundler._resolve = _resolve
    return bundler
