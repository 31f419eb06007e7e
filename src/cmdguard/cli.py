"""cmdguard command-line interface.

Acts as the host channel for the validation engine: commands arrive as
arguments or as a JSON message on stdin, results are written as JSON on
stdout, and logs go to stderr.

Usage:
    cmdguard check "click the submit button"
    echo '{"command": "../../etc/passwd", "source": "popup"}' | cmdguard check
    cmdguard assess "<script>alert(1)</script>"
    cmdguard audit --limit 20
    cmdguard report --days 7 [--json]
    cmdguard rules
    cmdguard clear-audit
    cmdguard reset-rate-limit

Exit codes:
    check: 0 if every command is valid, 1 otherwise, 2 on bad input
    others: 0 on success, 1 on error
"""

import argparse
import json
import logging
import sys
from typing import Any, Optional

from cmdguard.config import load_config
from cmdguard.core.validator import CommandValidator
from cmdguard.exceptions import ConfigurationError, StoreError
from cmdguard.integrations.report import SecurityReport
from cmdguard.integrations.store import JsonFileStore

logger = logging.getLogger("cmdguard.cli")

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_BAD_INPUT = 2


def read_message(text: str) -> tuple[list[str], Optional[str]]:
    """Parse a host message into its commands and optional source.

    Accepts ``{"command": str}`` or ``{"commands": [str, ...]}``, either with
    an optional ``"source"`` string.

    Raises:
        ValueError: If the message is not valid JSON or has no commands
    """
    try:
        message = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON message: {e}")

    if not isinstance(message, dict):
        raise ValueError("Message must be a JSON object")

    source = message.get("source")
    if not isinstance(source, str) or not source:
        source = None

    if "commands" in message:
        commands = message["commands"]
        if not isinstance(commands, list) or not all(isinstance(c, str) for c in commands):
            raise ValueError("'commands' must be a list of strings")
        return commands, source

    command = message.get("command")
    if not isinstance(command, str):
        raise ValueError("Missing 'command' string in message")
    return [command], source


def build_validator(args: argparse.Namespace) -> CommandValidator:
    config = load_config(args.config)
    store = JsonFileStore(args.store) if args.store else JsonFileStore()
    return CommandValidator(store=store, config=config)


def cmd_check(args: argparse.Namespace) -> int:
    """Validate commands and print JSON results."""
    validator = build_validator(args)
    config = validator.config

    if args.commands:
        commands = args.commands
    else:
        try:
            commands, source = read_message(sys.stdin.read())
        except ValueError as e:
            logger.error(str(e))
            print(json.dumps({"error": str(e)}))
            return EXIT_BAD_INPUT
        if source:
            config = config.with_overrides(source=source)

    logger.info(f"Validating {len(commands)} command(s)")
    results = validator.validate_many(commands, config)
    payload: Any = [r.to_dict() for r in results]
    print(json.dumps(payload[0] if len(payload) == 1 else payload, indent=2))

    return EXIT_OK if all(r.is_valid for r in results) else EXIT_INVALID


def cmd_assess(args: argparse.Namespace) -> int:
    """Print the risk assessment for one command."""
    validator = build_validator(args)
    print(json.dumps(validator.assess_risk(args.command).to_dict(), indent=2))
    return EXIT_OK


def cmd_audit(args: argparse.Namespace) -> int:
    """Print recent audit entries, newest first."""
    validator = build_validator(args)
    entries = validator.get_audit(args.limit)

    if args.json:
        print(json.dumps([e.to_dict() for e in entries], indent=2))
        return EXIT_OK

    if not entries:
        print("No audit entries recorded.")
        return EXIT_OK

    for entry in entries:
        status = "valid  " if entry.is_valid else "INVALID"
        time_str = entry.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        print(f"[{time_str}] {status} score={entry.risk_score:<4} {entry.source:8} {entry.command[:80]}")
        if entry.violations:
            print(f"   Violations: {', '.join(entry.violations)}")
    return EXIT_OK


def format_report(report: SecurityReport) -> str:
    """Render a report as plain text."""
    summary = report.summary
    lines = [f"=== Security Report (past {report.days} days) ===", ""]
    lines.append(f"Total commands:     {summary.total_commands}")
    lines.append(f"Valid commands:     {summary.valid_commands}")
    lines.append(f"Blocked commands:   {summary.blocked_commands}")
    lines.append(f"High-risk commands: {summary.high_risk_commands}")
    lines.append(f"Average risk score: {summary.average_risk_score:.1f}")

    if report.top_violations:
        lines.append("")
        lines.append("Top Violations:")
        for violation in report.top_violations:
            lines.append(f"  {violation.count:5}x [{violation.severity:6}] {violation.rule}")

    if report.timeline:
        lines.append("")
        lines.append("Timeline:")
        for point in report.timeline:
            lines.append(f"  {point.date.isoformat()}  {point.count:5} commands  avg score {point.average_risk_score:.1f}")

    if report.recommendations:
        lines.append("")
        lines.append("Recommendations:")
        for recommendation in report.recommendations:
            lines.append(f"  - {recommendation}")

    return "\n".join(lines)


def cmd_report(args: argparse.Namespace) -> int:
    """Print the security report."""
    validator = build_validator(args)
    report = validator.generate_report(args.days)
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(format_report(report))
    return EXIT_OK


def cmd_rules(args: argparse.Namespace) -> int:
    """List active rules in evaluation order."""
    validator = build_validator(args)
    rules = validator.get_rules() + list(validator.config.custom_rules)
    for index, rule in enumerate(rules, start=1):
        print(f"{index:2}. {rule.name:22} {rule.risk_level.value:6} {rule.action.value:8} {rule.description}")
    return EXIT_OK


def cmd_clear_audit(args: argparse.Namespace) -> int:
    build_validator(args).clear_audit()
    print("Audit log cleared.")
    return EXIT_OK


def cmd_reset_rate_limit(args: argparse.Namespace) -> int:
    build_validator(args).reset_rate_limit()
    print("Rate limit state reset.")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cmdguard",
        description="Validate untrusted automation commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Config YAML (default: user + project config files)")
    parser.add_argument("--store", help="Store JSON file (default: $CMDGUARD_STORE or user data dir)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="subcommand", required=True)

    p_check = subparsers.add_parser("check", help="Validate commands (args or JSON on stdin)")
    p_check.add_argument("commands", nargs="*", help="Commands to validate")
    p_check.set_defaults(func=cmd_check)

    p_assess = subparsers.add_parser("assess", help="Assess command risk")
    p_assess.add_argument("command", help="Command to assess")
    p_assess.set_defaults(func=cmd_assess)

    p_audit = subparsers.add_parser("audit", help="Show recent audit entries")
    p_audit.add_argument("--limit", type=int, default=100, help="Max entries (default: 100)")
    p_audit.add_argument("--json", action="store_true", help="Print JSON")
    p_audit.set_defaults(func=cmd_audit)

    p_report = subparsers.add_parser("report", help="Generate security report")
    p_report.add_argument("--days", type=int, default=7, help="Days to analyze (default: 7)")
    p_report.add_argument("--json", action="store_true", help="Print JSON")
    p_report.set_defaults(func=cmd_report)

    p_rules = subparsers.add_parser("rules", help="List active rules")
    p_rules.set_defaults(func=cmd_rules)

    p_clear = subparsers.add_parser("clear-audit", help="Delete the audit log")
    p_clear.set_defaults(func=cmd_clear_audit)

    p_reset = subparsers.add_parser("reset-rate-limit", help="Reset rate-limit windows")
    p_reset.set_defaults(func=cmd_reset_rate_limit)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the cmdguard console script."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[cmdguard] %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        return args.func(args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_INVALID
    except StoreError as e:
        logger.error(f"Store error: {e}")
        return EXIT_INVALID


if __name__ == "__main__":
    sys.exit(main())
