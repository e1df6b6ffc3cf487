"""
install.py: make sure the packages a sketch imports are installed.

Scans the entry source for import/require statements and runs
`npm install --save` for any package missing from ./node_modules.
"""

import asyncio
import os
import re

from rich.markup import escape

from . import plugin_resolve
from .output import BULLET, InstallError, status


IMPORT_PATTERN = re.compile(
    r"""(?:\bimport\s*(?:[\w*${}\s,]+?\s*from\s*)?|\bimport\s*\(\s*|\brequire\s*\(\s*)(['"])([^'"\n]+)\1"""
)

NODE_BUILTINS = frozenset(
    [
        "assert", "buffer", "child_process", "cluster", "console", "constants",
        "crypto", "dgram", "dns", "domain", "events", "fs", "http", "https",
        "module", "net", "os", "path", "process", "punycode", "querystring",
        "readline", "repl", "stream", "string_decoder", "sys", "timers", "tls",
        "tty", "url", "util", "vm", "zlib",
    ]
)

# Installed into the tool directory instead of the sketch; see plugin_resolve.py
PROVIDED = ("glslify",)


def package_name(specifier):
    """'@scope/pkg/sub' → '@scope/pkg', 'pkg/sub' → 'pkg'."""
    parts = specifier.split("/")
    if specifier.startswith("@") and len(parts) > 1:
        return "/".join(parts[:2])
    return parts[0]


def find_dependencies(src):
    """Package names imported by `src`, in order of first appearance."""
    found = []
    for match in IMPORT_PATTERN.finditer(src):
        specifier = match.group(2)
        if specifier.startswith((".", "/")) or specifier.startswith("node:"):
            continue
        name = package_name(specifier)
        if name in NODE_BUILTINS or name in PROVIDED or name in found:
            continue
        found.append(name)
    return found


def missing_dependencies(names, cwd):
    return [n for n in names if not os.path.isfile(os.path.join(cwd, "node_modules", n, "package.json"))]


async def _npm(*args, cwd):
    try:
        proc = await asyncio.create_subprocess_exec("npm", *args, cwd=cwd)
    except FileNotFoundError as e:
        raise InstallError("npm is not installed or not on PATH") from e
    returncode = await proc.wait()
    if returncode != 0:
        raise InstallError(f"npm {' '.join(args)} failed with exit code {returncode}")


async def _install_missing(names, cwd, bullet, label):
    missing = missing_dependencies(names, cwd)
    if not missing:
        return []

    if not os.path.isfile(os.path.join(cwd, "package.json")):
        status("Creating package.json", bullet)
        await _npm("init", "-y", cwd=cwd)

    status(f"{label}: [bold]{escape(', '.join(missing))}[/]", bullet)
    await _npm("install", "--save", *missing, cwd=cwd)
    return missing


async def install(src, bullet=BULLET, cwd=None):
    """Install the packages `src` imports that aren't in node_modules yet.

    Returns the list of packages that were installed. Raises InstallError
    if npm fails, which aborts startup.
    """
    cwd = cwd or os.getcwd()
    return await _install_missing(find_dependencies(src), cwd, bullet, "Installing dependencies")


async def install_tool_packages(bullet=BULLET, tool_dir=None):
    """Make sure the tool's own node_modules holds glslify.

    A no-op once installed; the first run populates TOOL_DIR.
    """
    tool_dir = tool_dir or plugin_resolve.TOOL_DIR
    os.makedirs(tool_dir, exist_ok=True)
    return await _install_missing(PROVIDED, tool_dir, bullet, "Installing tool packages")
