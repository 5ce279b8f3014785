"""
Forensic Reporter CLI
=====================

Tool for replaying recorded action sequences and inspecting what the
engine and the invariant checker made of them.

COMMANDS:
- run:      Replay a JSON action file and print the step report
- verify:   Replay twice and check determinism
- snapshot: Dump the final store as canonical JSON

USAGE:
    python -m storyloom.forensic [COMMAND] FILE

The action file is a JSON list of tagged action dicts, as produced by
storyloom.serialization.action_to_dict.
"""
import argparse
import json
import sys
from typing import List

from .contracts.actions import Action
from .harness import RunReport, ValidationHarness
from .serialization import StrictForensicEncoder, action_from_dict, to_plain
from .store import EntityStore


def load_actions(path: str) -> List[Action]:
    """Load an action sequence from a JSON file."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON list of actions")
    return [action_from_dict(item) for item in data]


def describe_action(action: Action) -> str:
    plain = to_plain(action)
    kind = plain.pop("type")
    fields = ", ".join(f"{key}={json.dumps(value, sort_keys=True)}" for key, value in plain.items())
    return f"{kind}({fields})"


def format_report(report: RunReport) -> str:
    """
    Human-readable dump of a run: each consumed action with its event id
    or rejection, terminated by the violation list.
    """
    lines = ["STEP | RESULT | ACTION", "-" * 80]
    for step in report.steps:
        if step.applied:
            result = str(step.event_id)
        else:
            result = f"REJECTED {step.rejection.code.name}: {step.rejection.message}"
        lines.append(f"{step.index:<4} | {result} | {describe_action(step.action)}")

    lines.append("")
    if report.passed:
        lines.append(f"[PASS] {len(report.steps)} action(s), no violations.")
    elif report.stopped_on_rejection:
        lines.append(f"[FAIL] Stopped on rejected action {report.failing_action_index}.")
    else:
        lines.append(
            f"[FAIL] {len(report.violations)} violation(s) after action {report.failing_action_index} "
            f"(prefix of {len(report.prefix)} action(s)):"
        )
        for violation in report.violations:
            where = []
            if violation.timeline is not None:
                where.append(str(violation.timeline))
            if violation.event_index is not None:
                where.append(f"position {violation.event_index}")
            location = f" [{', '.join(where)}]" if where else ""
            lines.append(
                f"  rule {violation.rule.value} {violation.rule.name}: "
                f"{violation.entity_id}{location} - {violation.message}"
            )
    lines.append(f"[INFO] State hash: {report.state_hash}")
    return "\n".join(lines)


def snapshot_to_json(store: EntityStore, indent: int = 2) -> str:
    return json.dumps(store, cls=StrictForensicEncoder, sort_keys=True, indent=indent)


def cmd_run(args):
    """Replay and report."""
    print(f"[*] Loading actions from: {args.file}")
    actions = load_actions(args.file)
    print(f"    Loaded {len(actions)} actions.")
    report = ValidationHarness().run(actions)
    print(format_report(report))
    if not report.passed:
        sys.exit(1)


def cmd_verify(args):
    """Check that two replays agree."""
    print(f"[*] Verifying determinism of: {args.file}")
    actions = load_actions(args.file)
    is_deterministic, difference = ValidationHarness().verify_determinism(actions)
    if is_deterministic:
        print(f"[PASS] {len(actions)} actions replay identically.")
    else:
        print(f"[FAIL] {difference}")
        sys.exit(1)


def cmd_snapshot(args):
    """Dump the final store."""
    actions = load_actions(args.file)
    report = ValidationHarness().run(actions)
    print(snapshot_to_json(report.store))


def main():
    parser = argparse.ArgumentParser(description="Forensic Reporter")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Replay and report")
    run_parser.add_argument("file", help="JSON action file")
    verify_parser = subparsers.add_parser("verify", help="Check determinism")
    verify_parser.add_argument("file", help="JSON action file")
    snapshot_parser = subparsers.add_parser("snapshot", help="Dump final store")
    snapshot_parser.add_argument("file", help="JSON action file")

    args = parser.parse_args()

    if args.command == "run":
        cmd_run(args)
    elif args.command == "verify":
        cmd_verify(args)
    elif args.command == "snapshot":
        cmd_snapshot(args)
    else:
        parser.print_help()

if __name__ == "__main__":
    main()
