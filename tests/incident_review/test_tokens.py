"""Tests for callback token minting and resolution."""

from hypothesis import given, strategies as st

from incident_review import tokens
from incident_review.constants import TOKEN_LENGTH
from incident_review.tokens import TokenMap, normalize_candidate_id


class TestMint:
    """Tests for TokenMap.mint."""

    def test_token_is_short_hex(self):
        token = TokenMap().mint("https://news.example.com/article/1")
        assert len(token) == TOKEN_LENGTH
        assert all(c in "0123456789abcdef" for c in token)

    def test_same_id_returns_same_token(self):
        token_map = TokenMap()
        assert token_map.mint("abc") == token_map.mint("abc")
        assert len(token_map) == 1

    def test_ids_are_case_insensitive(self):
        token_map = TokenMap()
        assert token_map.mint("ABC") == token_map.mint("abc")

    def test_collision_uses_salted_token(self, monkeypatch):
        """A digest clash falls back to one salted digest."""
        real_digest = tokens._digest

        def clashing_digest(value, length):
            if ":" not in value:
                return "0" * length
            return real_digest(value, length)

        monkeypatch.setattr(tokens, "_digest", clashing_digest)
        token_map = TokenMap()

        first = token_map.mint("first")
        second = token_map.mint("second")

        assert first == "0" * TOKEN_LENGTH
        assert second is not None
        assert second != first
        assert token_map.resolve_candidate_id(second) == "second"

    def test_double_collision_returns_none(self, monkeypatch):
        monkeypatch.setattr(tokens, "_digest", lambda value, length: "0" * length)
        token_map = TokenMap()

        assert token_map.mint("first") is not None
        assert token_map.mint("second") is None
        assert token_map.resolve_token("second") is None
        assert len(token_map) == 1


class TestResolve:
    """Tests for token and id lookups."""

    def test_unknown_token_resolves_to_none(self):
        token_map = TokenMap()
        token_map.mint("abc")
        assert token_map.resolve_candidate_id("deadbeefdeadbeef") is None
        assert token_map.resolve_candidate_id("") is None

    def test_unknown_id_resolves_to_none(self):
        assert TokenMap().resolve_token("never-registered") is None

    def test_discard_forgets_both_directions(self):
        token_map = TokenMap()
        token = token_map.mint("abc")
        token_map.discard("abc")
        assert token_map.resolve_token("abc") is None
        assert token_map.resolve_candidate_id(token) is None

    @given(st.text(min_size=1).filter(lambda s: s.strip()))
    def test_round_trip(self, candidate_id):
        token_map = TokenMap()
        token = token_map.mint(candidate_id)

        assert token_map.resolve_token(candidate_id) == token
        resolved = token_map.resolve_candidate_id(token)
        assert normalize_candidate_id(resolved) == normalize_candidate_id(candidate_id)
