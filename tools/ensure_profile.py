#!/usr/bin/env python3
"""
Ensure Profile

Checks that an auth user has a profile row and inserts one if not, using
the service-role key. Role and organization follow the same email
conventions as first sign-in.

Usage:
    python tools/ensure_profile.py --user-id UUID --email admin@alphaspine.io [--name "Alpha Admin"]

Requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY.

Exit codes:
    0  profile exists or was created
    1  backend error
    2  configuration error
"""

import argparse
import os
import sys
from typing import Optional

_REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)

from firstprinciples.app.config import ConfigurationError  # noqa: E402
from firstprinciples.app.db.admin import create_service_role_client  # noqa: E402
from firstprinciples.app.db.errors import BackendError  # noqa: E402
from firstprinciples.app.services.profile import (  # noqa: E402
    ProfileSetupRequired,
    create_profile_if_missing,
)


def main(argv: Optional[list] = None, session=None) -> int:
    parser = argparse.ArgumentParser(description="Create a missing profile row for an auth user")
    parser.add_argument("--user-id", dest="user_id", required=True, help="Auth user id")
    parser.add_argument("--email", required=True, help="Auth user email")
    parser.add_argument("--name", default=None, help="Display name (default: derived from email)")
    args = parser.parse_args(argv)

    try:
        client = create_service_role_client(session=session)
    except ConfigurationError as e:
        sys.stderr.write(f"ERROR: {e}\n")
        return 2

    metadata = {"name": args.name} if args.name else None
    try:
        profile = create_profile_if_missing(client, args.user_id, args.email, metadata)
    except ProfileSetupRequired as e:
        print(f"❌ Could not create profile: {e.reason}")
        return 1
    except BackendError as e:
        print(f"❌ Backend error: code={e.code} message={e.message}")
        return 1

    print(f"✅ Profile ready: {profile.email} ({profile.role.value}, org {profile.org_id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
