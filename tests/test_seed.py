"""Tests for race seeding."""

import pytest
import json
import os
from decimal import Decimal

from scoutrace.seed import load_races, seed_races


def write_json(directory, data, name="races.json"):
    path = os.path.join(directory, name)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f)
    return path


class TestLoadRaces:
    """Tests for reading race files."""

    def test_load_valid_file(self, test_data_dir):
        path = write_json(test_data_dir, [
            {'name': 'PIONNIERS', 'participationPrice': '15.5', 'minParticipants': 4,
             'maxParticipants': 8, 'raceDate': '2026-06-20'},
        ])
        races = load_races(path)

        assert len(races) == 1
        assert races[0].participation_price == Decimal('15.50')
        assert races[0].accepts(8)
        assert not races[0].accepts(9)

    def test_not_a_list(self, test_data_dir):
        path = write_json(test_data_dir, {'name': 'PIONNIERS'})
        with pytest.raises(ValueError):
            load_races(path)

    def test_inverted_bounds(self, test_data_dir):
        """maxParticipants below minParticipants is rejected."""
        path = write_json(test_data_dir, [
            {'name': 'X', 'participationPrice': 5, 'minParticipants': 6,
             'maxParticipants': 3, 'raceDate': '2026-06-20'},
        ])
        with pytest.raises(ValueError, match="race #0"):
            load_races(path)

    def test_negative_price(self, test_data_dir):
        path = write_json(test_data_dir, [
            {'name': 'X', 'participationPrice': -1, 'minParticipants': 1,
             'maxParticipants': 3, 'raceDate': '2026-06-20'},
        ])
        with pytest.raises(ValueError):
            load_races(path)


class TestSeedRaces:
    """Tests for storing seeded races."""

    def test_seed_is_repeatable(self, db_fixture, test_data_dir):
        path = write_json(test_data_dir, [
            {'name': 'PIONNIERS', 'participationPrice': 15, 'minParticipants': 4,
             'maxParticipants': 8, 'raceDate': '2026-06-20', 'description': 'Grands'},
        ])
        races = load_races(path)

        assert seed_races(db_fixture, races) == 1
        assert seed_races(db_fixture, races) == 1

        stored = db_fixture.get_races()
        assert len(stored) == 1
        assert stored[0]['participationPrice'] == Decimal('15.00')
        assert stored[0]['description'] == 'Grands'
