#!/usr/bin/env python3
"""
Profile Policy Recursion Check

Signs in and reads the user's own profile several times with the
publishable key. Every read must either return the row or report a plain
not-found (PGRST116); a 42P17 means a profiles policy still recurses.

Usage:
    python tools/verify_rls_fix.py --email admin@alphaspine.io --password ... [--reads 3]

Exit codes:
    0  PASS  - no recursion on any read
    1  FAIL  - recursion or another backend error
    2  ERROR - configuration error or sign-in failure
"""

import argparse
import os
import sys
from typing import Optional

_REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)

from firstprinciples.app.config import ConfigurationError  # noqa: E402
from firstprinciples.app.db.errors import (  # noqa: E402
    POLICY_RECURSION_CODE,
    BackendError,
    NotFoundError,
)
from firstprinciples.app.db.server import create_session_client  # noqa: E402


def check_profile_reads(client, user_id: str, reads: int) -> int:
    """Read the profile ``reads`` times; return the number of failed reads."""
    failures = 0
    for attempt in range(1, reads + 1):
        try:
            result = client.table("profiles").select("*").eq("id", user_id).single().execute()
            print(f"✅ Read {attempt}: profile {result.data.get('email')}")
        except NotFoundError:
            print(f"✅ Read {attempt}: no profile row (PGRST116), lookup is not recursing")
        except BackendError as e:
            failures += 1
            print(f"❌ Read {attempt}: code={e.code} message={e.message}")
            if e.code == POLICY_RECURSION_CODE:
                print("⚠️ Still getting infinite recursion error!")
    return failures


def main(argv: Optional[list] = None, session=None) -> int:
    parser = argparse.ArgumentParser(description="Check own-profile reads for policy recursion")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", default="", help="Or set FP_VERIFY_PASSWORD")
    parser.add_argument("--reads", type=int, default=3, help="Number of reads (default: 3)")
    args = parser.parse_args(argv)

    password = args.password or os.environ.get("FP_VERIFY_PASSWORD", "")
    if not password:
        sys.stderr.write("ERROR: --password or FP_VERIFY_PASSWORD is required.\n")
        return 2

    try:
        client = create_session_client(session=session)
    except ConfigurationError as e:
        sys.stderr.write(f"ERROR: {e}\n")
        return 2

    print("🧪 Testing profile policy recursion...\n")
    try:
        auth_session = client.auth.sign_in_with_password(args.email, password)
    except BackendError as e:
        print(f"❌ Auth failed: {e.message}")
        return 2
    print(f"✅ Signed in, user ID: {auth_session.user.id}\n")

    failures = check_profile_reads(client, auth_session.user.id, args.reads)
    if failures:
        print(f"\n❌ {failures} of {args.reads} profile reads failed")
        return 1

    print("\n🎉 No infinite recursion on profile reads.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
