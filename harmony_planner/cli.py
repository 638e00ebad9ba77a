from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List

from harmony_planner.logging_utils import configure_logging
from harmony_planner.models import KeySpecification, PlanResponse, StyleOverrides, TemplateSummary
from harmony_planner.services.errors import PlanError, TemplateStoreError
from harmony_planner.services.planning import default_store, plan
from harmony_planner.services.style import STYLE_PRESETS, profile_for_preset
from harmony_planner.services.templates import SOURCE_PRIORITIES, TemplateStore, parse_template_file

OVERRIDE_FLAGS = {
    "beam_width": int,
    "max_depth": int,
    "risk_level": float,
    "reharm_depth": float,
    "voice_leading_strictness": float,
    "modulation_aggressiveness": float,
    "max_chord_complexity": float,
}


def format_report(response: PlanResponse) -> str:
    lines = [
        f"Template {response.template.id} v{response.template.version} ({response.template.source}, {response.template.bars} bars)",
        f"Key {response.key.tonic} {response.key.mode}, style {response.style}, total cost {response.total_cost:.3f}",
    ]
    for phrase in response.phrases:
        lines.append("")
        lines.append(f"[{phrase.label}] bars {phrase.start_bar}-{phrase.end_bar}")
        for bar in phrase.bars:
            marker = f"  <{bar.cadence}>" if bar.cadence != "none" else ""
            lines.append(f"  {bar.bar:>3}  {bar.chord:<10} {bar.numeral:<10} {bar.function:<12} {bar.key}{marker}")
        for note in phrase.highlights:
            lines.append(f"  * {note}")
    if response.cadences:
        lines.append("")
        lines.append("Cadences:")
        for cadence in response.cadences:
            approach = cadence.approach_chord or "-"
            lines.append(
                f"  bars {cadence.start_bar}-{cadence.end_bar}: {cadence.kind} ({approach} -> {cadence.resolution_chord}),"
                f" expected {cadence.expected}"
            )
    if response.states:
        lines.append("")
        lines.append(f"Trace ({response.explain_mode}):")
        for state in response.states:
            parent = "-" if state.parent_rank is None else state.parent_rank
            lines.append(
                f"  bar {state.bar:>3} #{state.rank} <- {parent}  {state.chord:<10} {state.kind:<12}"
                f" step {state.step_cost:.3f} total {state.cumulative_cost:.3f}"
            )
    for note in response.diagnostics:
        lines.append(f"note: {note}")
    return "\n".join(lines)


def _tonic(value: str) -> str | int:
    return int(value) if value.isdigit() else value


def _store(args: argparse.Namespace) -> TemplateStore:
    if getattr(args, "templates_dir", None):
        return TemplateStore(Path(args.templates_dir))
    return default_store()


def _run_plan(args: argparse.Namespace) -> int:
    overrides = StyleOverrides(**{name: getattr(args, name) for name in OVERRIDE_FLAGS})
    profile = profile_for_preset(args.style, args.explain, overrides)
    template = parse_template_file(Path(args.template_path)) if args.template_path else args.template
    response = plan(
        KeySpecification(tonic=_tonic(args.tonic), mode=args.mode),
        template,
        profile,
        store=_store(args),
        origin="file",
        workers=args.workers,
    )
    if args.json:
        print(response.model_dump_json(indent=2))
    else:
        print(format_report(response))
    return 0


def _print_summary(summary: TemplateSummary, verbose: bool) -> None:
    print(f"{summary.id:<24} v{summary.version}  {summary.bars:>3} bars  {summary.phrases} phrases  [{summary.source}]")
    if verbose:
        print(f"    meter={summary.meter} description={summary.description or '-'}")


def _run_templates(args: argparse.Namespace) -> int:
    store = _store(args)
    if args.action == "list":
        for summary in store.list_templates(args.source):
            _print_summary(summary, args.verbose)
    elif args.action == "show":
        template, resolved_from = store.resolve(args.template_id, args.source)
        print(template.model_dump_json(indent=2))
        if args.raw:
            raw_path = store.local_file(args.template_id) if resolved_from == "local" else None
            if raw_path is None:
                print("\nRaw template file not available for built-in templates.")
            else:
                print(f"\n# raw template ({raw_path}):")
                print(raw_path.read_text(encoding="utf-8"))
    elif args.action == "import":
        summary = store.import_template(Path(args.path), force=args.force)
        print(f"Imported {summary.id} ({summary.bars} bars)")
    elif args.action == "export":
        destination = store.export_template(
            args.template_id, Path(args.destination), overwrite=args.overwrite, source=args.source
        )
        print(f"Exported {args.template_id} to {destination}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="harmony-planner", description="Plan chord progressions over song-form templates")
    parser.add_argument("--templates-dir", help="Local template directory (defaults to HARMONY_TEMPLATES_DIR)")
    commands = parser.add_subparsers(dest="command", required=True)

    plan_parser = commands.add_parser("plan", help="Search for a harmonic plan")
    template_choice = plan_parser.add_mutually_exclusive_group(required=True)
    template_choice.add_argument("--template", help="Template id (local or built-in)")
    template_choice.add_argument("--template-path", help="Template JSON file planned without importing it")
    plan_parser.add_argument("--tonic", default="C", help="Tonic label (C, F#, Bb) or pitch class 0-11")
    plan_parser.add_argument("--mode", default="major", help="major or minor")
    plan_parser.add_argument("--style", default="balanced", choices=sorted(STYLE_PRESETS))
    plan_parser.add_argument("--explain", default="brief", help="none, brief or full (detailed/debug)")
    plan_parser.add_argument("--workers", type=int, help="Threads used to expand each depth")
    plan_parser.add_argument("--json", action="store_true", help="Print the plan as JSON")
    for name, kind in OVERRIDE_FLAGS.items():
        plan_parser.add_argument(f"--{name.replace('_', '-')}", dest=name, type=kind)
    plan_parser.set_defaults(handler=_run_plan)

    templates_parser = commands.add_parser("templates", help="Manage song-form templates")
    actions = templates_parser.add_subparsers(dest="action", required=True)
    list_parser = actions.add_parser("list")
    list_parser.add_argument("--source", default="all", choices=["all", "builtin", "local"])
    list_parser.add_argument("--verbose", action="store_true", help="Also print meter and description")
    show_parser = actions.add_parser("show")
    show_parser.add_argument("template_id")
    show_parser.add_argument("--source", default="auto", choices=SOURCE_PRIORITIES)
    show_parser.add_argument("--raw", action="store_true", help="Append the stored file for local templates")
    import_parser = actions.add_parser("import")
    import_parser.add_argument("path")
    import_parser.add_argument("--force", action="store_true")
    export_parser = actions.add_parser("export")
    export_parser.add_argument("template_id")
    export_parser.add_argument("destination")
    export_parser.add_argument("--source", default="auto", choices=SOURCE_PRIORITIES)
    export_parser.add_argument("--overwrite", action="store_true")
    templates_parser.set_defaults(handler=_run_templates)
    return parser


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging()
    try:
        return args.handler(args)
    except (PlanError, TemplateStoreError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
