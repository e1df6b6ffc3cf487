"""
bundler.py: thin async wrapper around the browserify command line.

The dev server asks for a fresh bundle on every request to /bundle.js.
Transforms are looked up through `Bundler._resolve` before browserify runs,
so the lookup can be patched (see plugin_resolve.py) and each transform is
also exposed under its own name for runtime require() calls.
"""

import asyncio
import os

from .modules import resolve_module
from .output import BundleError


BUNDLER_COMMAND = ("npx", "--no-install", "browserify")


class Bundler:
    def __init__(self, entry, transforms=(), cwd=None, debug=True, command=BUNDLER_COMMAND):
        self.entry = os.path.abspath(entry)
        self.transforms = list(transforms)
        self.cwd = cwd or os.getcwd()
        self.debug = debug
        self.command = tuple(command)

    def _resolve(self, id, opts):
        """Resolve module `id` from opts["basedir"]. Returns (path, pkg)."""
        return resolve_module(id, opts["basedir"])

    def arguments(self):
        """Command-line arguments for one browserify run."""
        opts = {"basedir": os.path.dirname(self.entry), "filename": self.entry}
        args = [self.entry]
        if self.debug:
            args.append("--debug")
        for name in self.transforms:
            path, _ = self._resolve(name, opts)
            args += ["--transform", path, "--require", f"{path}:{name}"]
        return args

    async def bundle(self):
        """Run browserify and return the bundle as bytes."""
        args = self.arguments()
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                *args,
                cwd=self.cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise BundleError(f"Cannot run bundler: {self.command[0]} not found") from e
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            message = stderr.decode(errors="replace").strip()
            raise BundleError(message or f"Bundler exited with status {proc.returncode}")
        return stdout
