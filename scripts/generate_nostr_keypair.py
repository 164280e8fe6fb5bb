#!/usr/bin/env python3
"""Generate the badge issuer's Nostr keypair.

The secret key signs the kind 30009 badge definition and every kind 8
award. Without SERVER_PRIVATE_KEY the server signs with a public demo key
that anyone can reuse, so run this once per deployment:

    python scripts/generate_nostr_keypair.py --env-file .env
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from nostr_sdk import Keys

from lemonade_legends.badges import badge_address


def _append_to_env(path: Path, nsec: str) -> bool:
    """Add SERVER_PRIVATE_KEY to ``path`` unless one is already set."""
    existing = path.read_text(encoding="utf-8") if path.exists() else ""
    for line in existing.splitlines():
        if line.strip().startswith("SERVER_PRIVATE_KEY="):
            return False
    with path.open("a", encoding="utf-8") as f:
        if existing and not existing.endswith("\n"):
            f.write("\n")
        f.write(f"SERVER_PRIVATE_KEY={nsec}\n")
    return True


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--env-file",
        type=Path,
        help="append SERVER_PRIVATE_KEY to this .env file (skipped if already set)",
    )
    args = parser.parse_args()

    keys = Keys.generate()
    pubkey = keys.public_key()
    nsec = keys.secret_key().to_bech32()

    print("=== Lemonade Legends badge issuer ===")
    print()
    print(f"npub:        {pubkey.to_bech32()}")
    print(f"hex pubkey:  {pubkey.to_hex()}")
    print(f"badge coord: {badge_address(pubkey.to_hex())}")
    print()
    print("nsec (PRIVATE, never commit to git):")
    print(f"  {nsec}")
    print()

    if args.env_file is None:
        print("Add to your .env:")
        print(f"  SERVER_PRIVATE_KEY={nsec}")
    elif _append_to_env(args.env_file, nsec):
        print(f"Wrote SERVER_PRIVATE_KEY to {args.env_file}")
    else:
        print(f"{args.env_file} already sets SERVER_PRIVATE_KEY; left unchanged.", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
