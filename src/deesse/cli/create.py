#!/usr/bin/env python3
"""Entry point for the create-deesse-app CLI."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from deesse import __version__
from deesse.app.scaffold import ScaffoldService, project_variables
from deesse.app.templates import TemplateResolver, build_template_repository
from deesse.domain.template import (
    DEFAULT_TEMPLATE,
    TEMPLATE_CATALOG,
    InvalidProjectNameError,
    MaterializationRequest,
    TemplateError,
    TemplateInfo,
    TemplateReference,
    ensure_supported,
    validate_project_name,
)
from deesse.settings import ConfigError, RuntimeSettings, load_settings
from deesse.utils.telemetry import record_event

PROG = "create-deesse-app"
NAME_PLACEHOLDER = "my-deesse-app"

SETTINGS: RuntimeSettings | None = None


def _settings() -> RuntimeSettings:
    global SETTINGS
    if SETTINGS is None:
        SETTINGS = load_settings()
    return SETTINGS


def _build_services(settings: RuntimeSettings) -> ScaffoldService:
    repository = build_template_repository(settings)
    resolver = TemplateResolver(repository, settings)
    return ScaffoldService(resolver, settings)


def _prompt_project_name() -> str:
    while True:
        value = input(f"What is your project named? (e.g. {NAME_PLACEHOLDER}): ").strip()
        try:
            return validate_project_name(value)
        except InvalidProjectNameError as exc:
            print(exc)


def _prompt_template_selection(templates: tuple[TemplateInfo, ...] = TEMPLATE_CATALOG) -> str:
    default_index = next(
        (index for index, info in enumerate(templates, start=1) if info.name == DEFAULT_TEMPLATE),
        1,
    )
    print("Which template would you like to use?")
    for index, info in enumerate(templates, start=1):
        print(f"  {index}. {info.label} [{info.name}]")
    while True:
        choice = input(f"Select template [{default_index}]: ").strip()
        if not choice:
            return templates[default_index - 1].name
        if choice.isdigit():
            index = int(choice)
            if 1 <= index <= len(templates):
                return templates[index - 1].name
        for info in templates:
            if choice == info.name:
                return info.name
        print(f"Enter a value between 1 and {len(templates)}.")


def _print_summary(project_name: str, template: str, location: str) -> None:
    print("Configuration")
    print(f"  Project:  {project_name}")
    print(f"  Template: {template}")
    print(f"  Location: {location}")


def _print_next_steps(project_name: str, in_place: bool) -> None:
    steps = ["pnpm install", "pnpm dev"]
    if not in_place:
        steps.insert(0, f"cd {project_name}")
    print("Next steps:")
    for step in steps:
        print(f"  {step}")


def _create_cmd(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    print(f"{PROG} v{__version__}")
    try:
        project_name = validate_project_name(args.name) if args.name else _prompt_project_name()
        template = ensure_supported(args.template) if args.template else _prompt_template_selection()
    except (KeyboardInterrupt, EOFError):
        print("\nOperation cancelled.", file=sys.stderr)
        record_event(settings, "create.cancelled", {"stage": "prompt"})
        return 1
    except TemplateError as exc:
        print(f"{PROG}: {exc}", file=sys.stderr)
        record_event(settings, "error.invalid_input", {"error": str(exc)})
        return 1

    in_place = project_name == "."
    cwd = Path(os.getcwd())
    target = cwd if in_place else cwd / project_name
    ref = args.ref or settings.templates_ref
    _print_summary(project_name, template, "Current directory" if in_place else f"./{project_name}")

    request = MaterializationRequest(
        reference=TemplateReference(template, ref),
        target_dir=target,
        variables=project_variables(project_name, target),
        in_place=in_place,
    )
    print("Creating project...")
    try:
        result = _build_services(settings).create(request, refresh=args.force)
    except KeyboardInterrupt:
        print("\nOperation cancelled.", file=sys.stderr)
        record_event(settings, "create.cancelled", {"stage": "create"})
        return 1
    except TemplateError as exc:
        print("Failed to create project", file=sys.stderr)
        print(f"{PROG}: {exc}", file=sys.stderr)
        return 1

    print(f"Project created with {result.count} files")
    _print_next_steps(project_name, in_place)
    print("Happy coding!")
    record_event(
        settings,
        "create",
        {"template": template, "ref": ref, "in_place": in_place, "force": args.force, "files": result.count},
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=PROG, description="Create a new DeesseJS project from a template")
    parser.add_argument("--version", action="version", version=f"{PROG} {__version__}")
    parser.add_argument("name", nargs="?", help='Project name, or "." for the current directory')
    parser.add_argument(
        "--template",
        choices=[info.name for info in TEMPLATE_CATALOG],
        help="Template to use (prompted when omitted)",
    )
    parser.add_argument("--ref", help="Branch of the templates repository (default: configured ref)")
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Re-download the template even when a cached copy exists",
    )
    return parser


def main(argv: list[str] | None = None, *, settings: RuntimeSettings | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        runtime = settings or _settings()
    except ConfigError as exc:
        print(f"{PROG}: {exc}", file=sys.stderr)
        return 1
    return _create_cmd(args, runtime)


if __name__ == "__main__":
    sys.exit(main())
