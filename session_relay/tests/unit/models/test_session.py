"""
Tests for session and connection records and the id/time helpers.
"""

import re

import pytest
from pydantic import ValidationError

from session_relay.models.session import (
    ConnectionRecord,
    SessionRecord,
    _to_base36,
    generate_session_id,
    ms_to_iso_z,
)


class TestSessionIds:
    """Share-code generation."""

    def test_id_starts_with_base36_timestamp(self):
        """Test the id prefix encodes the creation time."""
        # Execute
        session_id = generate_session_id(1_700_000_000_000)

        # Verify
        assert session_id.startswith(_to_base36(1_700_000_000_000))
        assert len(session_id) == len(_to_base36(1_700_000_000_000)) + 5

    def test_id_is_url_safe(self):
        """Test ids only contain lowercase letters and digits."""
        for _ in range(50):
            assert re.fullmatch(r"[0-9a-z]+", generate_session_id())

    def test_ids_created_in_same_millisecond_differ(self):
        """Test the random suffix separates ids sharing a timestamp."""
        ids = {generate_session_id(1_700_000_000_000) for _ in range(200)}

        assert len(ids) > 190

    def test_base36_zero(self):
        assert _to_base36(0) == "0"
        assert _to_base36(35) == "z"
        assert _to_base36(36) == "10"


class TestIsoRendering:
    def test_iso_has_milliseconds_and_z_suffix(self):
        """Test expiry rendering matches the wire format."""
        # Execute
        rendered = ms_to_iso_z(1_700_000_000_123)

        # Verify
        assert rendered == "2023-11-14T22:13:20.123Z"


class TestSessionRecord:
    """Expiry checks and immutability."""

    def test_expired_at_exact_expiry(self):
        record = SessionRecord(id="abc", state={}, created_at=0, updated_at=0, expires_at=1000)

        assert record.is_expired(1000)
        assert not record.is_expired(999)

    def test_record_is_frozen(self):
        record = SessionRecord(id="abc", state={}, created_at=0, updated_at=0, expires_at=1000)

        with pytest.raises(ValidationError):
            record.state = {"round": 2}

    def test_state_is_kept_verbatim(self):
        """Test arbitrary JSON state is not validated or reshaped."""
        state = {"round": 3, "combatants": [{"name": "Ogre", "hp": 14}], "notes": None}

        record = SessionRecord(id="abc", state=state, created_at=0, updated_at=0, expires_at=1)

        assert record.state == state
        assert record.active == "true"


class TestConnectionRecord:
    def test_new_connection_has_no_session(self):
        record = ConnectionRecord(connection_id="c1", connected_at=10, expires_at=20)

        assert record.session_id is None
        assert record.is_expired(20)
        assert not record.is_expired(19)
