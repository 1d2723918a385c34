"""Test subdomain generation."""

import random

from alfred_core.core.validation import is_valid_subdomain
from alfred_core.provisioning.subdomain import (
    ADJECTIVES,
    NOUNS,
    generate_random_subdomain,
    generate_subdomain,
)


class TestSubdomainGenerator:

    def test_random_subdomain_shape(self):
        rng = random.Random(7)

        for _ in range(50):
            subdomain = generate_random_subdomain(rng)
            adjective, noun = subdomain.split("-")
            assert adjective in ADJECTIVES
            assert noun in NOUNS
            assert is_valid_subdomain(subdomain)

    def test_first_free_candidate_wins(self):
        taken = set()

        def claim(candidate):
            if candidate in taken:
                return False
            taken.add(candidate)
            return True

        first = generate_subdomain(claim, rng=random.Random(1))

        assert first in taken

    def test_skips_taken_candidates(self):
        seen = []

        def claim(candidate):
            seen.append(candidate)
            return len(seen) == 3

        result = generate_subdomain(claim, rng=random.Random(1))

        assert result == seen[-1]
        assert len(seen) == 3

    def test_suffix_after_max_attempts(self):
        calls = []

        def claim(candidate):
            calls.append(candidate)
            return candidate.count("-") == 2

        result = generate_subdomain(claim, max_attempts=5, rng=random.Random(3))

        assert len(calls) == 6
        suffix = result.rsplit("-", 1)[1]
        assert len(suffix) == 4
        assert is_valid_subdomain(result)
