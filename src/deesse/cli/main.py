#!/usr/bin/env python3
"""Entry point for the deesse CLI."""

from __future__ import annotations

import argparse
import json
import sys
from textwrap import dedent

from deesse import __version__
from deesse.app.templates import build_template_repository
from deesse.cli import create as create_cli
from deesse.domain.template import TEMPLATE_CATALOG, TemplateReference, ensure_supported
from deesse.domain.template import TemplateError
from deesse.settings import ConfigError, RuntimeSettings, load_settings
from deesse.utils.telemetry import record_event

COMMANDS = ("help", "init", "templates", "cache")

SETTINGS: RuntimeSettings | None = None

HELP_OVERVIEW = dedent(
    f"""
    DeesseJS CLI v{__version__}

    Usage: deesse <command>

    Commands:
      help       Show this help message
      init       Initialize a new DeesseJS project in current directory
      templates  List available templates and whether they are cached
      cache      Inspect or clear the local template cache

    Examples:
      deesse help
      deesse init
      deesse cache clear --template minimal

    For more information, visit: https://github.com/nesalia-inc/deessejs
    """
)


def _settings() -> RuntimeSettings:
    """Return the runtime settings, loading them on first use."""

    global SETTINGS
    if SETTINGS is None:
        SETTINGS = load_settings()
    return SETTINGS


def _help_cmd(args: argparse.Namespace) -> int:
    print(HELP_OVERVIEW)
    return 0


def _confirm(question: str) -> bool:
    answer = input(f"{question} [y/N]: ").strip().lower()
    return answer in {"y", "yes"}


def _init_cmd(args: argparse.Namespace) -> int:
    print(f"DeesseJS CLI v{__version__}")
    if not args.yes:
        try:
            confirmed = _confirm("Initialize a new DeesseJS project in the current directory?")
        except (KeyboardInterrupt, EOFError):
            confirmed = False
        if not confirmed:
            print("Initialization cancelled.", file=sys.stderr)
            return 1

    print("Running create-deesse-app in current directory...")
    forwarded = ["."]
    if args.template:
        forwarded += ["--template", args.template]
    if args.ref:
        forwarded += ["--ref", args.ref]
    if args.force:
        forwarded.append("--force")
    exit_code = create_cli.main(forwarded, settings=_settings())
    if exit_code != 0:
        print("Failed to initialize project", file=sys.stderr)
        return 1
    print("Project initialized successfully!")
    return 0


def _templates_cmd(args: argparse.Namespace) -> int:
    settings = _settings()
    repository = build_template_repository(settings)
    ref = args.ref or settings.templates_ref
    payload = [
        {
            "name": info.name,
            "label": info.label,
            "description": info.description,
            "ref": ref,
            "cached": repository.is_cached(TemplateReference(info.name, ref)),
            "source": repository.source,
        }
        for info in TEMPLATE_CATALOG
    ]
    record_event(settings, "templates", {"count": len(payload), "ref": ref})
    if args.json:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0
    for item in payload:
        state = "cached" if item["cached"] else "not cached"
        print(f"{item['name']}\t{item['label']} ({state})")
        print(f"  {item['description']}")
    return 0


def _cache_cmd(args: argparse.Namespace) -> int:
    settings = _settings()
    repository = build_template_repository(settings)
    command = getattr(args, "cache_command", None) or "list"

    if command == "list":
        entries = []
        for descriptor in repository.list_cached():
            manifest = descriptor.manifest()
            entries.append(
                {
                    "template": descriptor.reference.identifier,
                    "ref": descriptor.reference.ref,
                    "path": str(descriptor.root_dir),
                    "fetched_at": manifest.get("fetched_at"),
                    "files": manifest.get("files"),
                    "source": descriptor.source,
                }
            )
        if args.json:
            print(json.dumps(entries, ensure_ascii=False, indent=2))
        elif not entries:
            print("Template cache is empty.")
        else:
            for entry in entries:
                fetched = entry["fetched_at"] or "-"
                print(f"{entry['template']}@{entry['ref']}\t{entry['path']} (fetched {fetched})")
        return 0

    if command == "clear":
        try:
            if args.template:
                reference = TemplateReference(ensure_supported(args.template), args.ref or settings.templates_ref)
                removed = repository.purge(reference)
            else:
                removed = repository.purge()
        except TemplateError as exc:
            print(f"deesse: {exc}", file=sys.stderr)
            return 1
        record_event(settings, "cache.clear", {"removed": len(removed), "template": args.template})
        if not removed:
            print("Nothing to remove.")
        for path in removed:
            print(f"Removed {path}")
        return 0

    print("Unsupported cache command", file=sys.stderr)
    return 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deesse",
        description=HELP_OVERVIEW,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"deesse {__version__}")

    sub = parser.add_subparsers(dest="command", required=True)

    help_cmd = sub.add_parser("help", help="Show this help message")
    help_cmd.set_defaults(func=_help_cmd)

    init_cmd = sub.add_parser("init", help="Initialize a new DeesseJS project in current directory")
    init_cmd.add_argument("--template", choices=[info.name for info in TEMPLATE_CATALOG])
    init_cmd.add_argument("--ref", help="Branch of the templates repository")
    init_cmd.add_argument("-f", "--force", action="store_true", help="Re-download the template first")
    init_cmd.add_argument("-y", "--yes", action="store_true", help="Skip the confirmation prompt")
    init_cmd.set_defaults(func=_init_cmd)

    templates_cmd = sub.add_parser("templates", help="List available templates")
    templates_cmd.add_argument("--ref", help="Branch to report cache state for")
    templates_cmd.add_argument("--json", action="store_true", help="Emit machine-readable output")
    templates_cmd.set_defaults(func=_templates_cmd)

    cache_cmd = sub.add_parser("cache", help="Inspect or clear the template cache")
    cache_sub = cache_cmd.add_subparsers(dest="cache_command")
    cache_list = cache_sub.add_parser("list", help="List cached templates")
    cache_list.add_argument("--json", action="store_true", help="Emit machine-readable output")
    cache_clear = cache_sub.add_parser("clear", help="Remove cached templates")
    cache_clear.add_argument("--template", help="Only remove this template")
    cache_clear.add_argument("--ref", help="Ref of the entry to remove (default: configured ref)")
    cache_cmd.set_defaults(func=_cache_cmd, json=False, template=None, ref=None)

    return parser


def _preprocess_argv(argv: list[str]) -> list[str] | None:
    """Map shorthands onto subcommands; ``None`` flags an unknown command."""

    if not argv or argv[0] in {"-h", "--help"}:
        return ["help"]
    if argv[0].startswith("-") or argv[0] in COMMANDS:
        return argv
    return None


def main(argv: list[str] | None = None) -> int:
    raw_args = sys.argv[1:] if argv is None else argv
    processed_args = _preprocess_argv(raw_args)
    if processed_args is None:
        print(f"Unknown command: {raw_args[0]}")
        print('Run "deesse help" for usage information.')
        return 1
    args = build_parser().parse_args(processed_args)
    try:
        return args.func(args)
    except ConfigError as exc:
        print(f"deesse: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
