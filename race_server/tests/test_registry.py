"""Tests for connection ids and spawn slot allocation."""

import random
from unittest.mock import MagicMock

from race_server.registry import ConnectionRegistry, allocate_spawn_index, generate_player_id


class TestAllocateSpawnIndex:
    def test_empty(self):
        assert allocate_spawn_index([]) == 0

    def test_fills_gap(self):
        assert allocate_spawn_index([0, 1, 3]) == 2
        assert allocate_spawn_index([1, 2]) == 0

    def test_dense(self):
        assert allocate_spawn_index(range(5)) == 5


class TestRegistry:
    def test_ids_are_unique(self):
        ids = {generate_player_id() for _ in range(1000)}
        assert len(ids) == 1000

    def test_register_assigns_sequential_spawns(self):
        registry = ConnectionRegistry()
        conns = [registry.register(MagicMock()) for _ in range(3)]
        assert [c.spawn_index for c in conns] == [0, 1, 2]
        assert len(registry) == 3

    def test_departed_spawn_reused(self):
        registry = ConnectionRegistry()
        a, b, c = (registry.register(MagicMock()) for _ in range(3))
        registry.unregister(b.player_id)
        d = registry.register(MagicMock())
        assert d.spawn_index == 1

    def test_unregister_twice(self):
        registry = ConnectionRegistry()
        conn = registry.register(MagicMock())
        assert registry.unregister(conn.player_id) is conn
        assert registry.unregister(conn.player_id) is None
        assert registry.disconnects_total == 1
        assert registry.connects_total == 1

    def test_spawn_indices_stay_unique_and_minimal(self):
        """Random connect/disconnect churn never duplicates or skips a slot."""
        rng = random.Random(1234)
        registry = ConnectionRegistry()
        live = []
        for _ in range(500):
            if live and rng.random() < 0.45:
                registry.unregister(live.pop(rng.randrange(len(live))).player_id)
                continue
            held = {c.spawn_index for c in live}
            conn = registry.register(MagicMock())
            assert conn.spawn_index == allocate_spawn_index(held)
            live.append(conn)

            indices = [c.spawn_index for c in registry]
            assert len(indices) == len(set(indices))
