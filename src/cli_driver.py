# cli_driver.py
# This file is intended to be run to play or test the 2048 game on the CLI

from typing import Optional, Sequence
import argparse
import logging

from core import Direction, GameProgressState, MAX_BOARD_SIZE, MIN_BOARD_SIZE
from engine import GameEngine, GameListener
from settings import load_settings

DIRECTION_KEYS = {'W': Direction.UP, 'A': Direction.LEFT, 'S': Direction.DOWN, 'D': Direction.RIGHT}


class ConsoleListener(GameListener):
    """Prints the notable engine events; the board itself is drawn by the loop."""

    def __init__(self) -> None:
        self.won_announced = False

    def on_first_time_achievement(self, number: int) -> None:
        print(f"New tile reached: {number}!")

    def on_game_won(self) -> None:
        if not self.won_announced:
            self.won_announced = True
            print("Congratulations! You reached the winning tile!")

    def on_game_over(self) -> None:
        print("No more moves possible. Better luck next time!")


def build_parser(default_size: int) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Play 2048 in the terminal')
    parser.add_argument('--size', type=int, default=default_size,
                        choices=range(MIN_BOARD_SIZE, MAX_BOARD_SIZE + 1),
                        help=f'Board size (NxN): {MIN_BOARD_SIZE} to {MAX_BOARD_SIZE}')
    parser.add_argument('--seed', type=int, default=None, help='RNG seed for tile spawns')
    parser.add_argument('--log-level', default=None, help='Logging level (e.g. DEBUG)')
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    settings = load_settings()
    args = build_parser(settings.default_size).parse_args(argv)
    logging.basicConfig(level=(args.log_level or settings.log_level).upper())

    listener = ConsoleListener()
    game = GameEngine(args.size, listener=listener, seed=args.seed)
    display_board_state(game)

    while True:
        move_input = input("Enter move (W/A/S/D to move, U undo, R restart, Q quit): ").strip().upper()

        if move_input == 'Q':
            print("Quitting game.")
            break

        if move_input == 'U':
            if not game.undo():
                print("Cannot undo.")
        elif move_input == 'R':
            listener.won_announced = False
            game.init_game()
        else:
            chosen_direction = DIRECTION_KEYS.get(move_input)
            if chosen_direction is None:
                print("Invalid input. Use W, A, S, D, U, R or Q.")
                continue
            if not game.move(chosen_direction):
                print("Move did not change the board. Try a different direction.")
                continue

        display_board_state(game)
        if game.status == GameProgressState.GAME_OVER:
            break

    print("\n--- Final Board State ---")
    display_board_state(game)


# --- Display Function ---
def display_board_state(game: GameEngine) -> None:
    """Prints the board, score, and game status to the console."""
    print(f"\nScore: {game.score}")
    progress = game.status
    status_message = {
        GameProgressState.IN_PROGRESS: f"Status: {progress.name}",
        GameProgressState.GAME_WON: "YOU WON! Keep going if you like.",
        GameProgressState.GAME_OVER: "GAME OVER!"
    }
    print(status_message[progress])

    for row in game.grid:
        print("\t".join(str(value) if value else "." for value in row))
    print("-" * (game.size * 6))


if __name__ == "__main__":
    main()
