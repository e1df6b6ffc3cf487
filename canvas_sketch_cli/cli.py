"""
cli.py: the `canvas-sketch` command.

Usage:
    canvas-sketch src/index.js               # serve an existing sketch
    canvas-sketch --new                      # sketches/<date>.js from the default template
    canvas-sketch --new=waves --template=shader
    canvas-sketch sketch.js --open --dir public

Creates or resolves the entry file, installs glslify for the tool and whatever
the sketch imports, then runs the live-reload dev server at
http://localhost:9966 until Ctrl-C.
"""

import argparse
import asyncio
import os
import sys

from rich.markup import escape

from .install import install, install_tool_packages
from .output import EntryError, SketchError, console, fail, print_exception
from .server import HOST, PORT, DevServer
from .sketches import SKETCH_DIRECTORY, create_sketch, resolve_entry


EXAMPLES = """Example usage:
    canvas-sketch src/index.js
    canvas-sketch --new --template=shader"""


def build_parser():
    parser = argparse.ArgumentParser(
        prog="canvas-sketch",
        description="Scaffold a sketch and serve it with live reload.",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("entry", nargs="?", help="sketch file to serve")
    parser.add_argument("-d", "--dir", help="directory to serve static files from")
    parser.add_argument("-o", "--open", action="store_true", help="open the browser on start")
    parser.add_argument(
        "-I",
        "--install",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="install packages the sketch imports (default: on)",
    )
    parser.add_argument("-t", "--template", default="default", help="template for --new")
    parser.add_argument(
        "-n",
        "--new",
        nargs="?",
        const=True,
        default=False,
        metavar="SUFFIX",
        help="create a new sketch, optionally with a filename suffix",
    )
    parser.add_argument("-p", "--port", type=int, default=PORT)
    parser.add_argument("--host", default=HOST)
    parser.add_argument("-v", "--verbose", action="store_true", help="print debug output")
    return parser


def parse_args(argv=None):
    return build_parser().parse_args(argv)


async def start(args, cwd=None):
    cwd = cwd or os.getcwd()
    entry = args.entry
    entry_src = None

    if args.new:
        suffix = args.new if isinstance(args.new, str) else ""
        entry, entry_src = create_sketch(SKETCH_DIRECTORY, args.template, suffix, cwd=cwd)

    if not entry:
        fail("No entry file specified!")
        console.print(f"\n  {escape(EXAMPLES)}\n")
        sys.exit(1)

    if entry_src is None:
        try:
            entry, entry_src = resolve_entry(entry, cwd)
        except EntryError as e:
            fail(escape(str(e)))
            sys.exit(1)

    await install_tool_packages()
    if args.install:
        await install(entry_src, cwd=cwd)

    server = DevServer(
        entry,
        cwd=cwd,
        static_dir=args.dir,
        host=args.host,
        port=args.port,
        open_browser=args.open,
        verbose=args.verbose,
    )
    await server.serve()


def main(argv=None):
    args = parse_args(argv)
    try:
        asyncio.run(start(args))
    except KeyboardInterrupt:
        console.print("\nServer stopped.")
    except SketchError as e:
        fail(escape(str(e)))
        sys.exit(1)
    except Exception as e:
        print_exception(e)
        sys.exit(1)


if __name__ == "__main__":
    main()
