# alfred_core/provisioning/subdomain.py
"""Adjective-noun subdomains (e.g., "cozy-peanut") for new VMs."""

import logging
import random
import string
from typing import Callable, Optional

logger = logging.getLogger(__name__)


ADJECTIVES = [
    'agile', 'azure', 'bold', 'brave', 'bright', 'calm', 'clear', 'clever',
    'cosmic', 'cozy', 'crisp', 'daring', 'deft', 'eager', 'epic', 'fair',
    'fancy', 'fast', 'fierce', 'fine', 'fleet', 'fluffy', 'fresh', 'gentle',
    'gleam', 'gold', 'grand', 'great', 'green', 'happy', 'hardy', 'hasty',
    'humble', 'icy', 'jade', 'jolly', 'keen', 'kind', 'lemon', 'light',
    'lime', 'lively', 'lucky', 'magic', 'merry', 'mild', 'mint', 'misty',
    'neat', 'nice', 'noble', 'novel', 'olive', 'orange', 'pale', 'peace',
    'pearl', 'perky', 'pine', 'pink', 'plum', 'polar', 'prime', 'proud',
    'pure', 'quick', 'quiet', 'rapid', 'rare', 'red', 'rich', 'rocky',
    'rosy', 'royal', 'ruby', 'rusty', 'sage', 'sandy', 'sharp', 'shiny',
    'silent', 'silver', 'sleek', 'slim', 'smart', 'smooth', 'snowy', 'soft',
    'solar', 'solid', 'spicy', 'spring', 'steel', 'still', 'stone', 'stormy',
    'sunny', 'super', 'sweet', 'swift', 'teal', 'tender', 'tidy', 'tiny',
    'vivid', 'warm', 'wavy', 'wild', 'wise', 'witty', 'young', 'zesty',
]

NOUNS = [
    'acorn', 'apple', 'arrow', 'badge', 'beach', 'bear', 'bee', 'bell',
    'berry', 'bird', 'bloom', 'boat', 'book', 'brook', 'bunny', 'cake',
    'candle', 'cave', 'cedar', 'cherry', 'cliff', 'cloud', 'clover', 'coral',
    'crane', 'creek', 'crown', 'daisy', 'dawn', 'deer', 'delta', 'dew',
    'dove', 'dream', 'dune', 'eagle', 'elm', 'ember', 'falcon', 'fawn',
    'fern', 'finch', 'flame', 'flare', 'flora', 'forest', 'fox', 'frost',
    'gem', 'glade', 'grove', 'harbor', 'hawk', 'heart', 'heron', 'hill',
    'honey', 'island', 'ivy', 'jade', 'jay', 'jewel', 'lake', 'lark',
    'leaf', 'lily', 'lotus', 'maple', 'marsh', 'meadow', 'moon', 'moss',
    'nest', 'nova', 'oak', 'ocean', 'olive', 'otter', 'owl', 'palm',
    'panda', 'peach', 'peak', 'peanut', 'pearl', 'pebble', 'phoenix', 'pine',
    'planet', 'pond', 'rain', 'raven', 'reef', 'ridge', 'river', 'robin',
    'rose', 'sage', 'seed', 'shore', 'sky', 'snow', 'spark', 'spring',
    'star', 'stone', 'storm', 'stream', 'sun', 'swan', 'thunder', 'tiger',
    'trail', 'tree', 'tulip', 'valley', 'wave', 'willow', 'wind', 'wolf',
]


def generate_random_subdomain(rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    return f"{rng.choice(ADJECTIVES)}-{rng.choice(NOUNS)}"


def generate_subdomain(
    claim: Callable[[str], bool],
    max_attempts: int = 100,
    rng: Optional[random.Random] = None,
) -> str:
    """
    Pick a subdomain that `claim` accepts.

    Args:
        claim: Called with each candidate; returns True if it was free and is
            now taken (e.g., repository.reserve_subdomain bound to a user)
        max_attempts: Plain adjective-noun tries before adding a suffix
        rng: Random source (seeded in tests)

    Returns:
        The claimed subdomain
    """
    rng = rng or random

    for _ in range(max_attempts):
        candidate = generate_random_subdomain(rng)
        if claim(candidate):
            return candidate

    logger.warning(
        f"No free adjective-noun subdomain after {max_attempts} attempts, adding suffix"
    )

    while True:
        suffix = "".join(rng.choice(string.ascii_lowercase + string.digits) for _ in range(4))
        candidate = f"{generate_random_subdomain(rng)}-{suffix}"
        if claim(candidate):
            return candidate
