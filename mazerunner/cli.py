from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
import sys
from dataclasses import replace
from pathlib import Path

from .compiler import NESTED_TOO_DEEPLY, compile_ast, parse_program
from .config import load_settings
from .engine import run_program, run_program_async
from .errors import MazeRunnerError, ParseError
from .maze import generate_maze
from .normalize import normalize
from .session import Controller, FileLevelStore, Session
from .syntax import BRACED, INDENTED, program_to_json, resolve_syntax
from .templates import TEMPLATE_NAMES, get_template
from .world import World

logger = logging.getLogger(__name__)

SUFFIX_SYNTAX = {".py": INDENTED, ".js": BRACED}


def _read_source(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _syntax_for(args: argparse.Namespace) -> str:
    if args.syntax:
        return resolve_syntax(args.syntax)
    suffix = Path(args.file).suffix.lower() if args.file else ""
    if suffix in SUFFIX_SYNTAX:
        return SUFFIX_SYNTAX[suffix]
    raise MazeRunnerError(f"Cannot infer syntax of {args.file!r}; pass --syntax")


def _maze_size(args: argparse.Namespace) -> int:
    if args.size is not None:
        return args.size
    return Session(args.level).size


def _cmd_generate(args: argparse.Namespace) -> int:
    grid = generate_maze(_maze_size(args), random.Random(args.seed))
    if args.json:
        print(json.dumps({"size": grid.size, "start": list(grid.start), "end": list(grid.end), "grid": grid.to_rows()}, indent=2))
    else:
        print(grid.render())
    return 0


def _cmd_lint(args: argparse.Namespace) -> int:
    program = parse_program(_read_source(args.file), _syntax_for(args))
    compile_ast(program)
    print(f"OK: {program.syntax}, {len(program.functions)} functions, {len(program.body)} top-level statements")
    return 0


def _cmd_dump(args: argparse.Namespace) -> int:
    program = parse_program(_read_source(args.file), _syntax_for(args))
    if args.instructions:
        unit = compile_ast(program)
        for code in [unit.main, *unit.functions.values()]:
            print(f"== {code.name}({', '.join(code.params)})")
            print(code.disassemble())
        return 0
    print(json.dumps(program_to_json(program), indent=2))
    return 0


def _cmd_normalize(args: argparse.Namespace) -> int:
    sys.stdout.write(normalize(_read_source(args.file)))
    return 0


def _cmd_template(args: argparse.Namespace) -> int:
    sys.stdout.write(get_template(args.name, args.syntax))
    return 0


def _cmd_run(args: argparse.Namespace) -> int:
    if args.template:
        syntax = resolve_syntax(args.syntax or INDENTED)
        source = get_template(args.template, syntax)
    elif args.file:
        syntax = _syntax_for(args)
        source = _read_source(args.file)
    else:
        raise MazeRunnerError("run needs a FILE or --template")

    settings = load_settings()
    if args.budget is not None:
        settings = replace(settings, step_budget=args.budget)

    grid = generate_maze(_maze_size(args), random.Random(args.seed))
    world = World(grid)
    if args.delay:
        result = asyncio.run(
            run_program_async(
                source,
                syntax,
                world,
                move_delay=args.delay,
                budget=settings.step_budget,
                max_depth=settings.max_call_depth,
            )
        )
    else:
        result = run_program(source, syntax, world, budget=settings.step_budget, max_depth=settings.max_call_depth)

    if not args.quiet:
        print(grid.render(cursor=world.cursor, trail=result.trail))
    print(json.dumps(result.to_dict() if args.trail else {k: v for k, v in result.to_dict().items() if k != "trail"}, indent=2))
    return 0 if result.won else 1


def _cmd_level(args: argparse.Namespace) -> int:
    settings = load_settings()
    store = FileLevelStore(Path(args.level_file) if args.level_file else settings.level_file)
    controller = Controller(store, settings=settings)
    if args.reset:
        controller.reset_progress()
    print(json.dumps({"level": controller.level, "size": controller.size, "file": str(store.path)}, indent=2))
    return 0


def _add_maze_options(p: argparse.ArgumentParser) -> None:
    group = p.add_mutually_exclusive_group()
    group.add_argument("--size", type=int, help="Maze side length (>= 5)")
    group.add_argument("--level", type=int, default=1, help="Derive the size from a level (default 1)")
    p.add_argument("--seed", type=int, help="Seed for reproducible mazes")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="mazerunner",
        description="Maze pathfinding sandbox: generate mazes and run authored solver programs.",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr")
    sp = p.add_subparsers(dest="command", required=True)

    gen_p = sp.add_parser("generate", help="Generate and print a maze")
    _add_maze_options(gen_p)
    gen_p.add_argument("--json", action="store_true", help="Print the grid as JSON rows")
    gen_p.set_defaults(func=_cmd_generate)

    lint_p = sp.add_parser("lint", help="Parse and compile a program without running it")
    lint_p.add_argument("file")
    lint_p.add_argument("--syntax", help="indented|braced (inferred from .py/.js)")
    lint_p.set_defaults(func=_cmd_lint)

    dump_p = sp.add_parser("dump", help="Parse and print JSON IR")
    dump_p.add_argument("file")
    dump_p.add_argument("--syntax", help="indented|braced (inferred from .py/.js)")
    dump_p.add_argument("--instructions", action="store_true", help="Print compiled instructions instead")
    dump_p.set_defaults(func=_cmd_dump)

    norm_p = sp.add_parser("normalize", help="Rewrite indented source as braced source")
    norm_p.add_argument("file")
    norm_p.set_defaults(func=_cmd_normalize)

    tpl_p = sp.add_parser("template", help="Print a shipped reference program")
    tpl_p.add_argument("name", choices=TEMPLATE_NAMES)
    tpl_p.add_argument("--syntax", default=INDENTED, help="indented|braced (default indented)")
    tpl_p.set_defaults(func=_cmd_template)

    run_p = sp.add_parser("run", help="Run a program against a fresh maze")
    run_p.add_argument("file", nargs="?")
    run_p.add_argument("--template", choices=TEMPLATE_NAMES, help="Run a shipped program instead of FILE")
    run_p.add_argument("--syntax", help="indented|braced (inferred from .py/.js)")
    _add_maze_options(run_p)
    run_p.add_argument("--budget", type=int, help="Instruction budget")
    run_p.add_argument("--delay", type=float, default=0.0, help="Seconds to wait after each move")
    run_p.add_argument("--trail", action="store_true", help="Include the trail in the JSON result")
    run_p.add_argument("-q", "--quiet", action="store_true", help="Do not print the maze")
    run_p.set_defaults(func=_cmd_run)

    level_p = sp.add_parser("level", help="Show or reset the stored level")
    level_p.add_argument("--level-file", help="Level file (default from MAZERUNNER_LEVEL_FILE)")
    level_p.add_argument("--reset", action="store_true", help="Go back to level 1")
    level_p.set_defaults(func=_cmd_level)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except ParseError as exc:
        where = getattr(args, "file", None) or "<source>"
        if exc.line:
            print(f"{where}:{exc.line}:{exc.col}: {exc.message}", file=sys.stderr)
        else:
            print(f"{where}: {exc.message}", file=sys.stderr)
        return 1
    except RecursionError:
        where = getattr(args, "file", None) or "<source>"
        print(f"{where}: {NESTED_TOO_DEEPLY}", file=sys.stderr)
        return 1
    except (MazeRunnerError, ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
