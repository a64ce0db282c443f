import random
import string

MAX_NUMBER = 50
MIN_ROUNDS = 1
MAX_ROUNDS = 20

BATTLE_CODE_LENGTH = 8
BATTLE_CODE_ALPHABET = string.ascii_uppercase + string.digits


def compare_numbers(first_number: int, second_number: int) -> str:
    if first_number > second_number:
        return ">"
    if first_number < second_number:
        return "<"
    return "="


def generate_battle_rounds(number_of_rounds: int) -> list[dict]:
    """Random comparison questions shared by both sides of a battle.

    Each round gets two integers in [1, MAX_NUMBER] and the symbol that
    makes `first_number <symbol> second_number` true.
    """
    if number_of_rounds < MIN_ROUNDS or number_of_rounds > MAX_ROUNDS:
        raise ValueError(f"number_of_rounds must be between {MIN_ROUNDS} and {MAX_ROUNDS}")

    rounds = []
    for round_number in range(1, number_of_rounds + 1):
        first_number = random.randint(1, MAX_NUMBER)
        second_number = random.randint(1, MAX_NUMBER)
        rounds.append({
            "round_number": round_number,
            "first_number": first_number,
            "second_number": second_number,
            "correct_symbol": compare_numbers(first_number, second_number),
        })
    return rounds


def generate_battle_code():
    return "".join(random.choice(BATTLE_CODE_ALPHABET) for _ in range(BATTLE_CODE_LENGTH))
