"""Tests for configuration module."""

import pytest
import os
from dataclasses import FrozenInstanceError
from unittest.mock import patch

import bcrypt

from scoutrace import config


class TestConfigHelpers:
    """Tests for configuration helper functions."""

    def test_get_int_default(self):
        """Default value when environment variable not set."""
        with patch.dict(os.environ, {}, clear=False):
            result = config._get_int('NONEXISTENT_VAR', 42)
            assert result == 42

    def test_get_int_from_env(self):
        """Parse integer from environment variable."""
        with patch.dict(os.environ, {'TEST_INT': '100'}, clear=False):
            result = config._get_int('TEST_INT', 42)
            assert result == 100

    def test_get_int_invalid_value(self):
        """Handle non-integer values gracefully."""
        with patch.dict(os.environ, {'TEST_INT': 'not_a_number'}, clear=False):
            result = config._get_int('TEST_INT', 42)
            assert result == 42  # Returns default on ValueError

    def test_get_bool_true_variants(self):
        """Test 'true', '1', 'yes' variants."""
        for value in ['true', 'True', '1', 'yes', 'YES']:
            with patch.dict(os.environ, {'TEST_BOOL': value}, clear=False):
                assert config._get_bool('TEST_BOOL', False) is True, f"Failed for value: {value}"

    def test_get_bool_false_variants(self):
        """Anything else is False."""
        for value in ['false', '0', 'no', 'anything_else']:
            with patch.dict(os.environ, {'TEST_BOOL': value}, clear=False):
                assert config._get_bool('TEST_BOOL', True) is False, f"Failed for value: {value}"

    def test_get_list_splits_and_strips(self):
        """Comma-separated values become a tuple."""
        with patch.dict(os.environ, {'TEST_LIST': ' http://a.test , http://b.test,,'}, clear=False):
            assert config._get_list('TEST_LIST', ()) == ('http://a.test', 'http://b.test')

    def test_get_list_default_when_empty(self):
        """Empty variable falls back to the default."""
        with patch.dict(os.environ, {'TEST_LIST': ''}, clear=False):
            assert config._get_list('TEST_LIST', ('x',)) == ('x',)


class TestSettings:
    """Tests for the immutable Settings value."""

    def test_defaults(self):
        """Defaults match the documented policy."""
        s = config.Settings()
        assert s.max_teams_per_request == 10
        assert s.enforce_aggregate_max is False
        assert s.registration_window_seconds == 300
        assert s.registration_max_successes == 3
        assert s.registration_max_failures == 5
        assert s.registration_cooldown_seconds == 900
        assert s.login_max_attempts == 4
        assert s.session_cookie_secure is True

    def test_settings_are_frozen(self):
        """Settings cannot be mutated after startup."""
        s = config.Settings()
        with pytest.raises(FrozenInstanceError):
            s.max_teams_per_request = 99

    def test_load_settings_reads_environment(self):
        """Environment overrides the defaults."""
        env = {
            'MAX_TEAMS_PER_REQUEST': '4',
            'ENFORCE_AGGREGATE_MAX': 'true',
            'SESSION_TTL_SECONDS': '120',
            'ALLOWED_ORIGINS': 'https://race.example.org',
        }
        with patch.dict(os.environ, env, clear=False):
            s = config.load_settings()

        assert s.max_teams_per_request == 4
        assert s.enforce_aggregate_max is True
        assert s.session_ttl_seconds == 120
        assert s.allowed_origins == ('https://race.example.org',)

    def test_password_hash_takes_precedence(self):
        """ADMIN_PASSWORD_HASH wins over ADMIN_PASSWORD."""
        env = {'ADMIN_PASSWORD_HASH': '$2b$12$precomputed', 'ADMIN_PASSWORD': 'ignored'}
        with patch.dict(os.environ, env, clear=False):
            s = config.load_settings()
        assert s.admin_password_hash == '$2b$12$precomputed'

    def test_plaintext_password_is_hashed(self):
        """A plaintext ADMIN_PASSWORD is never kept as is."""
        with patch.dict(os.environ, {'ADMIN_PASSWORD': 'secret-pw'}, clear=False):
            os.environ.pop('ADMIN_PASSWORD_HASH', None)
            s = config.load_settings()

        assert s.admin_password_hash != 'secret-pw'
        assert bcrypt.checkpw(b'secret-pw', s.admin_password_hash.encode('ascii'))

    def test_no_password_configured(self):
        """No password at all leaves admin login disabled."""
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop('ADMIN_PASSWORD_HASH', None)
            os.environ.pop('ADMIN_PASSWORD', None)
            s = config.load_settings()
        assert s.admin_password_hash is None
