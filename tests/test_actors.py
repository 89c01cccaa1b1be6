"""Tests for actor derivation and the registry."""

from fabric_matrix.actors import Actor, ActorRegistry, LocalState, Status


def test_actor_id_is_deterministic():
    assert Actor({"id": "@alice:server"}).id == Actor({"id": "@alice:server"}).id


def test_actor_id_ignores_key_order():
    assert Actor({"a": 1, "b": 2}).id == Actor({"b": 2, "a": 1}).id


def test_actor_data_is_a_copy():
    actor = Actor({"id": "@alice:server"})
    data = actor.data
    data["id"] = "@mallory:server"
    assert actor.data == {"id": "@alice:server"}


def test_ensure_user_is_stable_and_collision_free():
    registry = ActorRegistry(LocalState())

    alice = registry.ensure_user("@alice:server")
    bob = registry.ensure_user("@bob:server")

    assert alice.id != bob.id
    assert registry.ensure_user("@alice:server").id == alice.id


def test_ensure_user_updates_state():
    state = LocalState()
    registry = ActorRegistry(state)

    actor = registry.ensure_user("@alice:server")

    assert state.actors[actor.id] == {"id": "@alice:server"}
    assert state.users["@alice:server"] == {"actor": actor.id}
    assert registry.actor_for("@alice:server") == actor.id
    assert "@alice:server" in registry
    assert registry.actor_for("@nobody:server") is None


def test_register_binds_id_to_pubkey_only():
    state = LocalState()
    registry = ActorRegistry(state)

    first = registry.register("ab" * 32, {"pubkey": "ab" * 32, "name": "one"})
    second = registry.register("ab" * 32, {"pubkey": "ab" * 32, "name": "two"})

    assert first.id == second.id == Actor({"pubkey": "ab" * 32}).id
    assert state.actors[first.id]["name"] == "two"


def test_statehash_changes_with_state():
    state = LocalState()
    before = state.statehash

    ActorRegistry(state).ensure_user("@alice:server")

    assert state.statehash != before
    assert state.to_dict()["status"] == Status.READY.value
