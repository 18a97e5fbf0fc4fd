"""
Tests for the Redis-backed OAuth state registry
"""
import time

from utils.redis_state import OAuthStateRegistry, STATE_KEY_PREFIX


def test_create_then_consume_returns_state(state_registry):
    state = state_registry.create(7, "linkedin", return_url="http://localhost:3000/settings")

    consumed = state_registry.consume(state)

    assert consumed is not None
    assert consumed.state == state
    assert consumed.user_id == 7
    assert consumed.provider == "linkedin"
    assert consumed.return_url == "http://localhost:3000/settings"
    assert consumed.nonce


def test_state_is_single_use(state_registry):
    state = state_registry.create(7, "facebook")

    assert state_registry.consume(state) is not None
    assert state_registry.consume(state) is None


def test_states_are_unique(state_registry):
    states = {state_registry.create(1, "twitter") for _ in range(50)}
    assert len(states) == 50


def test_unknown_and_missing_states(state_registry):
    assert state_registry.consume("never-issued") is None
    assert state_registry.consume(None) is None
    assert state_registry.consume("") is None


def test_state_ttl_is_applied(fake_redis):
    registry = OAuthStateRegistry(fake_redis, ttl_seconds=600)
    state = registry.create(1, "instagram")

    ttl = fake_redis.ttl(f"{STATE_KEY_PREFIX}{state}")
    assert 0 < ttl <= 600


def test_expired_state_is_rejected(fake_redis):
    registry = OAuthStateRegistry(fake_redis, ttl_seconds=600)
    state = registry.create(1, "instagram")

    fake_redis.pexpire(f"{STATE_KEY_PREFIX}{state}", 1)
    time.sleep(0.01)

    assert registry.consume(state) is None


def test_attach_merges_data_and_keeps_ttl(fake_redis):
    registry = OAuthStateRegistry(fake_redis, ttl_seconds=300)
    state = registry.create(3, "twitter", data={"first": "value"})

    assert registry.attach(state, {"oauth_token": "req-token", "oauth_token_secret": "req-secret"}) is True
    assert 0 < fake_redis.ttl(f"{STATE_KEY_PREFIX}{state}") <= 300

    consumed = registry.consume(state)
    assert consumed.data == {
        "first": "value",
        "oauth_token": "req-token",
        "oauth_token_secret": "req-secret",
    }


def test_attach_to_consumed_state_does_not_resurrect_it(state_registry, fake_redis):
    state = state_registry.create(3, "twitter")
    state_registry.consume(state)

    assert state_registry.attach(state, {"oauth_token": "late"}) is False
    assert fake_redis.get(f"{STATE_KEY_PREFIX}{state}") is None


def test_malformed_payload_is_treated_as_unknown(state_registry, fake_redis):
    fake_redis.setex(f"{STATE_KEY_PREFIX}broken", 60, "{not json")

    assert state_registry.consume("broken") is None
    assert fake_redis.get(f"{STATE_KEY_PREFIX}broken") is None
