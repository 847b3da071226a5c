#!/usr/bin/env python3
"""
Login Flow Verifier

Signs in as a real account and walks the portal's login sequence against the
hosted backend: sign-in, session user, own-profile lookup, create-if-missing,
organization lookup. Reports whether a row-level policy recursion (42P17)
or a "Profile Setup Required" outcome would reach the user.

Usage:
    python tools/verify_login_flow.py --email admin@alphaspine.io --password ...

Requires SUPABASE_URL and SUPABASE_ANON_KEY (the publishable key).

Exit codes:
    0  PASS  - login completes with a profile and organization
    1  FAIL  - a step failed (recursion, missing profile, wrong role, ...)
    2  ERROR - configuration error
"""

import argparse
import json
import os
import sys
from typing import Optional

_REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)

from firstprinciples.app.config import ConfigurationError  # noqa: E402
from firstprinciples.app.db.server import create_session_client  # noqa: E402
from firstprinciples.app.models.database import UserRole  # noqa: E402
from firstprinciples.app.services.verification import run_login_flow  # noqa: E402


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Verify the portal login flow against the backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit codes:
  0  PASS  - login completes
  1  FAIL  - a step failed
  2  ERROR - configuration error
""",
    )
    parser.add_argument("--email", required=True, help="Account email")
    parser.add_argument(
        "--password",
        default="",
        help="Account password (or set FP_VERIFY_PASSWORD env var)",
    )
    parser.add_argument(
        "--expected-role",
        dest="expected_role",
        choices=[role.value for role in UserRole],
        default=None,
        help="Fail unless the profile has this role",
    )
    parser.add_argument(
        "--no-create",
        dest="create_if_missing",
        action="store_false",
        help="Do not provision a missing profile",
    )
    parser.add_argument(
        "--json",
        dest="json_output",
        action="store_true",
        help="Output the report as JSON",
    )
    return parser


def main(argv: Optional[list] = None, session=None) -> int:
    args = _build_parser().parse_args(argv)
    password = args.password or os.environ.get("FP_VERIFY_PASSWORD", "")
    if not password:
        sys.stderr.write("ERROR: --password or FP_VERIFY_PASSWORD is required.\n")
        return 2

    try:
        client = create_session_client(session=session)
    except ConfigurationError as e:
        sys.stderr.write(f"ERROR: {e}\n")
        return 2

    expected_role = UserRole(args.expected_role) if args.expected_role else None
    report = run_login_flow(
        client,
        args.email,
        password,
        expected_role=expected_role,
        create_if_missing=args.create_if_missing,
    )

    if args.json_output:
        print(
            json.dumps(
                {
                    "status": "PASS" if report.ok else "FAIL",
                    "recursion_detected": report.recursion_detected,
                    "profile_setup_required": report.profile_setup_required,
                    "steps": [step.model_dump() for step in report.steps],
                    "summary": report.summary(),
                },
                indent=2,
            )
        )
    else:
        print(f"🧪 Verifying login flow for {args.email}\n")
        for step in report.steps:
            marker = "✅" if step.ok else "❌"
            code = f" [{step.error_code}]" if step.error_code and not step.ok else ""
            print(f"{marker} {step.name}: {step.detail}{code}")
        if report.recursion_detected:
            print("\n⚠️ Infinite recursion detected in a row-level policy (42P17)")
        print(f"\n{report.summary()}")

    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
