import random

from engine.cards import build_deck, cards_to_card_ids
from engine.shuffle import seed_hash, seeded_shuffle, shuffle_unseeded


def test_seed_hash_matches_java_string_hash():
    assert seed_hash("") == 0
    assert seed_hash("a") == 97
    assert seed_hash("abc") == 96354
    assert seed_hash("hello") == 99162322
    # Wraps exactly like a signed 32-bit int.
    assert seed_hash("polygenelubricants") == -2147483648


def test_seed_hash_uses_utf16_code_units():
    # U+1F0A1 is a surrogate pair: 0xD83C 0xDCA1.
    assert seed_hash("\U0001F0A1") == 0xD83C * 31 + 0xDCA1


def test_seeded_shuffle_is_deterministic():
    deck = build_deck()
    first = seeded_shuffle(deck, "local-1700000000000")
    second = seeded_shuffle(build_deck(), "local-1700000000000")
    assert first == second


def test_seeded_shuffle_first_draw():
    # "a" hashes to 97; the first LCG step gives 18374, so index 51 swaps with 4.
    shuffled = cards_to_card_ids(seeded_shuffle(build_deck(), "a"))
    assert shuffled[51] == "6H"


def test_seeded_shuffle_is_a_permutation_and_pure():
    deck = build_deck()
    before = list(deck)
    for seed in ["", "a", "seed-1", "polygenelubricants", "🂡🂢"]:
        shuffled = seeded_shuffle(deck, seed)
        assert sorted(cards_to_card_ids(shuffled)) == sorted(cards_to_card_ids(deck))
        assert len(set(cards_to_card_ids(shuffled))) == 52
    assert deck == before


def test_different_seeds_give_different_orders():
    assert seeded_shuffle(build_deck(), "seed-1") != seeded_shuffle(build_deck(), "seed-2")


def test_seeded_shuffle_handles_tiny_decks():
    assert seeded_shuffle([], "x") == []
    assert seeded_shuffle(["only"], "x") == ["only"]


def test_shuffle_unseeded_is_a_permutation():
    deck = build_deck()
    shuffled = shuffle_unseeded(deck, random.Random(3))
    assert sorted(cards_to_card_ids(shuffled)) == sorted(cards_to_card_ids(deck))
    assert cards_to_card_ids(deck)[0] == "2H"


def test_shuffle_unseeded_accepts_default_rng():
    assert len(shuffle_unseeded(build_deck())) == 52
