#!/usr/bin/env python3
"""Generate bearer tokens for poking at a local API.

Usage:
    python scripts/generate_test_token.py <user_id> <employee|lead|hr>
"""

from __future__ import annotations

import sys

from skillmatrix.api.deps import issue_smoke_token
from skillmatrix.core.auth import Role


def main() -> None:
    if len(sys.argv) != 3 or not Role.contains(sys.argv[2]):
        print("Usage: python scripts/generate_test_token.py <user_id> <employee|lead|hr>")
        sys.exit(1)

    user_id, role = sys.argv[1], Role(sys.argv[2])
    token = issue_smoke_token(user_id, role=role)
    print(f"{role.value} token for {user_id}:\n{token}")


if __name__ == "__main__":
    main()
