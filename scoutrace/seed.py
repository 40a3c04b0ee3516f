"""
Race catalogue seeding and admin password hashing.

Races are reference data: the registration API only reads them. This tool
loads them from a JSON file (a list of race objects) and upserts them by name.

Usage:
    python -m scoutrace.seed races.json
    python -m scoutrace.seed --hash-password
"""

import json
from pathlib import Path
from typing import Any, Dict, List

from pydantic import ValidationError

from .models import Race
from .storage import DatabaseInterface


def load_races(path: str) -> List[Race]:
    """
    Read and validate a race file.

    Raises:
        ValueError: If the file is not a list of valid races
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON list of races")

    races = []
    for index, item in enumerate(data):
        try:
            races.append(Race.model_validate(item))
        except ValidationError as e:
            raise ValueError(f"{path}: race #{index} is invalid: {e}") from e
    return races


def seed_races(db: DatabaseInterface, races: List[Race]) -> int:
    """Upsert races into storage. Returns count saved."""
    rows: List[Dict[str, Any]] = [
        {
            'name': r.name,
            'participationPrice': r.participation_price,
            'minParticipants': r.min_participants,
            'maxParticipants': r.max_participants,
            'raceDate': r.race_date.isoformat(),
            'description': r.description,
        }
        for r in races
    ]
    return db.save_races(rows)


# CLI entry point
if __name__ == '__main__':
    import argparse
    import getpass
    import sys

    parser = argparse.ArgumentParser(description='Seed races or hash the admin password')
    parser.add_argument('races_file', nargs='?',
                        help='JSON file with a list of races')
    parser.add_argument('--hash-password', action='store_true',
                        help='Prompt for a password and print its ADMIN_PASSWORD_HASH')

    args = parser.parse_args()

    if args.hash_password:
        from .config import hash_password

        password = getpass.getpass('Admin password: ')
        if not password:
            print('[-] Empty password')
            sys.exit(1)
        print(f"ADMIN_PASSWORD_HASH={hash_password(password)}")
        sys.exit(0)

    if not args.races_file:
        parser.error('races_file is required unless --hash-password is given')

    from .storage import get_database

    try:
        races = load_races(args.races_file)
    except (OSError, ValueError) as e:
        print(f"[-] {e}")
        sys.exit(1)

    db = get_database()
    count = seed_races(db, races)

    print("\n=== Races ===")
    for race in db.get_races():
        print(f"{race['id']:>4}  {race['name']:<30} {race['participationPrice']} EUR  "
              f"{race['minParticipants']}-{race['maxParticipants']} participants  {race['raceDate']}")
    print(f"\n[+] Saved {count} race(s)")
