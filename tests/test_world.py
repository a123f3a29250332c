import unittest

from mazerunner.world import Direction, Position, World

from support import CORRIDOR, grid_from_rows


class WorldTests(unittest.TestCase):
    def setUp(self) -> None:
        self.world = World(grid_from_rows(CORRIDOR))

    def test_starts_at_start_with_trail(self) -> None:
        self.assertEqual(self.world.position(), Position(1, 1))
        self.assertEqual(self.world.trail, [Position(1, 1)])
        self.assertEqual(self.world.moves, 0)
        self.assertEqual(self.world.end, Position(3, 1))

    def test_blocked_move_is_a_silent_no_op(self) -> None:
        seen = []
        self.world.add_listener(seen.append)
        self.assertFalse(self.world.move_right())
        self.assertFalse(self.world.move_up())
        self.assertEqual(self.world.cursor, Position(1, 1))
        self.assertEqual(self.world.trail, [Position(1, 1)])
        self.assertEqual(self.world.moves, 0)
        self.assertEqual(seen, [])

    def test_legal_moves_extend_trail_and_notify(self) -> None:
        seen = []
        self.world.add_listener(seen.append)
        for direction in (Direction.DOWN, Direction.DOWN, Direction.RIGHT, Direction.RIGHT, Direction.UP, Direction.UP):
            self.assertTrue(self.world.move(direction))
        self.assertTrue(self.world.at_end())
        self.assertEqual(self.world.moves, 6)
        self.assertEqual(len(self.world.trail), 7)
        self.assertEqual(seen, self.world.trail[1:])

        self.world.remove_listener(seen.append)
        self.world.move_down()
        self.assertEqual(len(seen), 6)

    def test_queries(self) -> None:
        self.assertTrue(self.world.is_wall(2, 1))
        self.assertTrue(self.world.is_wall(-1, 1))
        self.assertFalse(self.world.is_wall(1, 2))
        self.assertTrue(self.world.is_end(3, 1))
        self.assertFalse(self.world.is_end(1, 1))

    def test_claim_resets_and_transfers_ownership(self) -> None:
        first, second = object(), object()
        self.world.claim(first)
        self.world.move_down()
        self.assertTrue(self.world.owned_by(first))

        self.world.claim(second)
        self.assertFalse(self.world.owned_by(first))
        self.assertTrue(self.world.owned_by(second))
        self.assertEqual(self.world.trail, [Position(1, 1)])

        self.world.release(first)
        self.assertTrue(self.world.owned_by(second))
        self.world.release(second)
        self.assertFalse(self.world.owned_by(second))

    def test_revoke_drops_owner_and_resets(self) -> None:
        owner = object()
        self.world.claim(owner)
        self.world.move_down()
        self.world.revoke()
        self.assertFalse(self.world.owned_by(owner))
        self.assertEqual(self.world.cursor, Position(1, 1))
        self.assertEqual(self.world.moves, 0)


if __name__ == "__main__":
    unittest.main()
