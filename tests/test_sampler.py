import random
from collections import Counter

from repertoire_trainer.core.position_generator import Candidate
from repertoire_trainer.core.sampler import sample_candidate, sample_collection


def make_candidates(n):
    return [Candidate(ply=i, position_before_move=f"fen-{i}", expected_move=f"m{i}",
                      preceding_moves=[]) for i in range(n)]


class TestSampleCandidate:

    def test_empty_means_nothing_to_practice(self):
        assert sample_candidate([], random.Random(1)) is None

    def test_single_candidate(self):
        only = make_candidates(1)
        assert sample_candidate(only, random.Random(1)) is only[0]

    def test_roughly_uniform(self):
        rng = random.Random(42)
        candidates = make_candidates(4)
        counts = Counter(sample_candidate(candidates, rng).ply for _ in range(8000))
        assert set(counts) == {0, 1, 2, 3}
        for count in counts.values():
            assert abs(count / 8000 - 0.25) < 0.03


class TestSampleCollection:

    def test_empty_collection(self):
        assert sample_collection([], make_candidates, random.Random(1)) is None

    def test_member_without_candidates(self):
        member, candidate = sample_collection([0], make_candidates, random.Random(1))
        assert member == 0
        assert candidate is None

    def test_lines_are_equally_likely_regardless_of_length(self):
        # 一條 2 ply（1 個己方局面）與一條 40 ply（20 個己方局面）的路線
        members = ["short", "long"]
        sizes = {"short": 1, "long": 20}
        rng = random.Random(2024)
        counts = Counter(
            sample_collection(members, lambda m: make_candidates(sizes[m]), rng)[0]
            for _ in range(10000)
        )
        assert abs(counts["short"] / 10000 - 0.5) < 0.03
        assert abs(counts["long"] / 10000 - 0.5) < 0.03

    def test_only_chosen_member_is_built(self):
        built = []

        def build(member):
            built.append(member)
            return make_candidates(2)

        sample_collection(["a", "b", "c"], build, random.Random(7))
        assert len(built) == 1
