import io
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch

import cli_driver
from engine import GameEngine, GameState


class TestCliDriver(unittest.TestCase):
    def _run(self, keys, *argv):
        out = io.StringIO()
        with patch("builtins.input", side_effect=keys), redirect_stdout(out):
            cli_driver.main(list(argv))
        return out.getvalue()

    def test_given_undo_on_fresh_game_then_refused_and_quit(self):
        text = self._run(["U", "X", "Q"], "--size", "3", "--seed", "4")
        self.assertIn("Cannot undo.", text)
        self.assertIn("Invalid input", text)
        self.assertIn("Quitting game.", text)
        self.assertIn("--- Final Board State ---", text)

    def test_given_moves_then_board_redrawn_with_score(self):
        keys = ["A", "W", "D", "S", "R", "Q"]
        text = self._run(keys, "--size", "4", "--seed", "8")
        self.assertGreaterEqual(text.count("Score:"), 3)

    def test_given_engine_then_display_marks_empty_cells(self):
        engine = GameEngine(3, seed=0)
        out = io.StringIO()
        with redirect_stdout(out):
            cli_driver.display_board_state(engine)
        text = out.getvalue()
        self.assertIn("Score: 0", text)
        self.assertIn(".", text)

    def test_given_win_that_freezes_board_then_loop_ends_with_game_over(self):
        state = GameState.capture([[0, 256, 8], [4, 32, 16], [32, 64, 128]], 0, 3)

        def start_at_state(size, listener=None, seed=None):
            return GameEngine.from_state(state, listener=listener, seed=seed)

        keys = ["A"] + ["D"] * 20
        out = io.StringIO()
        with patch("cli_driver.GameEngine", side_effect=start_at_state), \
                patch("builtins.input", side_effect=keys) as fake_input, redirect_stdout(out):
            cli_driver.main(["--size", "3", "--seed", "1"])
        text = out.getvalue()
        self.assertEqual(fake_input.call_count, 1)
        self.assertIn("Congratulations! You reached the winning tile!", text)
        self.assertIn("GAME OVER!", text)
        self.assertIn("--- Final Board State ---", text)
        self.assertNotIn("did not change", text)

    def test_given_out_of_range_size_then_argparse_exits(self):
        with self.assertRaises(SystemExit), redirect_stdout(io.StringIO()), \
                patch("sys.stderr", new_callable=io.StringIO):
            cli_driver.main(["--size", "9"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
