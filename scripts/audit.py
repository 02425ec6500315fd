#!/usr/bin/env python3
"""Deployment audit for the outbound payments relay.

Checks relay configuration, secret hygiene and audit log integrity, and
optionally checks a running relay's health endpoint.

Exit codes:
    0: no findings
    1: findings reported

Usage:
    python scripts/audit.py [--format json|text] [--relay-url URL]
"""

from __future__ import annotations

import argparse
import json
import os
import subprocess
import sys
import urllib.error
import urllib.request
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from outbound.audit.logger import validate_audit_chain  # noqa: E402

MIN_TOKEN_LENGTH = 16


@dataclass
class Finding:
    check: str
    severity: str  # critical, high, medium, low
    message: str
    remediation: str


def _run(cmd: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
    return subprocess.run(cmd, capture_output=True, text=True, **kwargs)  # noqa: S603


# --- Check functions ---


def relay_configuration(env: Mapping[str, str]) -> list[Finding]:
    """Check the Stripe key and relay token the app will read at runtime."""
    findings: list[Finding] = []
    secret_key = env.get("STRIPE_SECRET_KEY", "")
    token = env.get("RELAY_TOKEN", "")

    if not secret_key:
        findings.append(Finding(
            check="relay_configuration",
            severity="high",
            message="STRIPE_SECRET_KEY not set; every relay call will fail with 500",
            remediation="Export STRIPE_SECRET_KEY in the relay's environment",
        ))
    elif secret_key.startswith("pk_"):
        findings.append(Finding(
            check="relay_configuration",
            severity="high",
            message="STRIPE_SECRET_KEY holds a publishable key",
            remediation="Use a secret (sk_) or restricted (rk_) key",
        ))

    live = secret_key.startswith(("sk_live_", "rk_live_"))
    if not token:
        findings.append(Finding(
            check="relay_configuration",
            severity="critical" if live else "medium",
            message="RELAY_TOKEN not set; the refund and capture endpoint is open",
            remediation="Set RELAY_TOKEN and send it as a Bearer token from the agent",
        ))
    elif len(token) < MIN_TOKEN_LENGTH:
        findings.append(Finding(
            check="relay_configuration",
            severity="medium",
            message=f"RELAY_TOKEN is shorter than {MIN_TOKEN_LENGTH} characters",
            remediation="Generate a longer token, e.g. python -c 'import secrets; print(secrets.token_urlsafe(32))'",
        ))

    return findings


def secret_management(project_root: Path) -> list[Finding]:
    """Check that no Stripe secret is committed alongside the code."""
    findings: list[Finding] = []

    result = _run(["git", "ls-files", "--error-unmatch", ".env"], cwd=str(project_root))
    if result.returncode == 0:
        findings.append(Finding(
            check="secret_management",
            severity="critical",
            message=".env file is tracked in git",
            remediation="Add .env to .gitignore and run: git rm --cached .env",
        ))

    for name in ("docker-compose.yml", "pyproject.toml"):
        path = project_root / name
        if path.exists() and any(p in path.read_text() for p in ("sk_live_", "rk_live_")):
            findings.append(Finding(
                check="secret_management",
                severity="critical",
                message=f"Live Stripe key found in {name}",
                remediation="Roll the key in the Stripe dashboard and load it from the environment",
            ))

    return findings


def log_integrity(project_root: Path) -> list[Finding]:
    """Check audit log rotation settings and hash chain integrity."""
    findings: list[Finding] = []

    if not os.environ.get("AUDIT_LOG_MAX_BYTES"):
        findings.append(Finding(
            check="log_integrity",
            severity="low",
            message="AUDIT_LOG_MAX_BYTES not configured; the 10MB default applies",
            remediation="Set AUDIT_LOG_MAX_BYTES environment variable (e.g., 10485760 for 10MB)",
        ))

    log_path = os.environ.get("AUDIT_LOG_PATH")
    if not log_path:
        findings.append(Finding(
            check="log_integrity",
            severity="medium",
            message="AUDIT_LOG_PATH not configured; refunds and captures are not audited",
            remediation="Set AUDIT_LOG_PATH to a writable JSONL file",
        ))
        return findings

    log_file = Path(log_path)
    if not log_file.is_absolute():
        log_file = project_root / log_file
    if not log_file.exists():
        findings.append(Finding(
            check="log_integrity",
            severity="low",
            message=f"Audit log not found at {log_file}",
            remediation="The file is created on the first relay call; check the path is writable",
        ))
        return findings

    result = validate_audit_chain(log_file)
    if not result.valid:
        findings.append(Finding(
            check="log_integrity",
            severity="critical",
            message=f"Audit log hash chain broken at line {result.broken_at_line}",
            remediation="Investigate tampering; rotate log and restore from trusted backup",
        ))

    return findings


def relay_health(relay_url: str, timeout_s: float = 2.0) -> list[Finding]:
    """Check GET /health on a running relay."""
    url = relay_url.rstrip("/") + "/health"
    try:
        with urllib.request.urlopen(url, timeout=timeout_s) as resp:  # noqa: S310
            body = json.loads(resp.read() or b"{}")
    except (urllib.error.URLError, TimeoutError, OSError, json.JSONDecodeError):
        return [Finding(
            check="relay_health",
            severity="medium",
            message=f"Cannot reach relay health endpoint at {url}",
            remediation="Start the relay: uvicorn outbound.api.app:create_app_from_env --factory",
        )]
    if body.get("status") != "ok":
        return [Finding(
            check="relay_health",
            severity="medium",
            message=f"Relay health endpoint returned {body!r}",
            remediation="Check the relay logs",
        )]
    return []


# --- Report output ---


def print_report(findings: list[Finding], fmt: str = "text") -> None:
    if fmt == "json":
        print(json.dumps([asdict(f) for f in findings], indent=2))
        return

    if not findings:
        print("All checks passed. No findings.")
        return

    severity_order = {"critical": 0, "high": 1, "medium": 2, "low": 3}
    sorted_findings = sorted(findings, key=lambda f: severity_order.get(f.severity, 99))

    print(f"\n{'='*60}")
    print(f" Relay Audit Report: {len(findings)} finding(s)")
    print(f"{'='*60}\n")

    for f in sorted_findings:
        icon = {"critical": "[CRIT]", "high": "[HIGH]", "medium": "[MED ]", "low": "[LOW ]"}.get(
            f.severity, "[????]"
        )
        print(f"  {icon} [{f.check}] {f.message}")
        print(f"        Fix: {f.remediation}")
        print()


def main() -> int:
    parser = argparse.ArgumentParser(description="Outbound relay deployment audit")
    parser.add_argument("--format", choices=["text", "json"], default="text")
    parser.add_argument("--relay-url", default=None, help="Check a running relay, e.g. http://localhost:8000")
    args = parser.parse_args()

    checks = [
        lambda: relay_configuration(os.environ),
        lambda: secret_management(PROJECT_ROOT),
        lambda: log_integrity(PROJECT_ROOT),
    ]
    if args.relay_url:
        checks.append(lambda: relay_health(args.relay_url))

    all_findings: list[Finding] = []
    for check in checks:
        try:
            all_findings.extend(check())
        except Exception as e:
            all_findings.append(Finding(
                check="internal",
                severity="medium",
                message=f"Check failed with error: {e}",
                remediation="Review the error and fix the underlying issue",
            ))

    print_report(all_findings, fmt=args.format)
    return 0 if not all_findings else 1


if __name__ == "__main__":
    sys.exit(main())
