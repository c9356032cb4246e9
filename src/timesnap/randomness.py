from __future__ import annotations

import json
import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Union

from .errors import InjectionError
from .host import HostPage

logger = logging.getLogger(__name__)

UnrandomizeOption = Union[bool, int, Sequence[int], str, None]

DEFAULT_SEED = (10, 0x2F6B_4A1D, 0x5A3C_9E27, 0x1B87_3D55)
RANDOM_SEED_MODE = "random-seed"

_MASK32 = 0xFFFF_FFFF

# xoshiro128** over four 32-bit words. The first outputs of a sparse seed are
# poorly mixed, so the generator is stepped a few times before use.
_RANDOM_SOURCE = r"""
(seed) => {
  let a = seed[0] >>> 0;
  let b = seed[1] >>> 0;
  let c = seed[2] >>> 0;
  let d = seed[3] >>> 0;
  const rotl = (x, k) => (x << k) | (x >>> (32 - k));
  const next = () => {
    const result = Math.imul(rotl(Math.imul(b, 5), 7), 9) >>> 0;
    const t = b << 9;
    c ^= a;
    d ^= b;
    b ^= c;
    a ^= d;
    c ^= t;
    d = rotl(d, 11);
    return result / 4294967296;
  };
  for (let i = 0; i < 16; i++) {
    next();
  }
  Math.random = next;
}
"""


class RandomMode(str, Enum):
    NATIVE = "native"
    SEEDED = "seeded"


@dataclass(slots=True, frozen=True)
class RandomSetting:
    mode: RandomMode
    seed: tuple[int, int, int, int] | None = None


def expand_seed(value: int) -> tuple[int, int, int, int]:
    """Spread a single integer over four generator words using splitmix32."""

    state = value & _MASK32
    words: list[int] = []
    for _ in range(4):
        state = (state + 0x9E37_79B9) & _MASK32
        z = state
        z = ((z ^ (z >> 16)) * 0x85EB_CA6B) & _MASK32
        z = ((z ^ (z >> 13)) * 0xC2B2_AE35) & _MASK32
        words.append((z ^ (z >> 16)) & _MASK32)
    return (words[0], words[1], words[2], words[3])


def resolve_random_setting(option: UnrandomizeOption) -> RandomSetting:
    if option is None or option is False:
        return RandomSetting(mode=RandomMode.NATIVE)
    if option is True:
        return RandomSetting(mode=RandomMode.SEEDED, seed=DEFAULT_SEED)
    if isinstance(option, str):
        if option != RANDOM_SEED_MODE:
            msg = f"Unsupported unrandomize mode: {option!r}"
            raise ValueError(msg)
        return RandomSetting(mode=RandomMode.SEEDED, seed=expand_seed(secrets.randbits(32)))
    if isinstance(option, int):
        return RandomSetting(mode=RandomMode.SEEDED, seed=expand_seed(option))

    words = tuple(int(word) & _MASK32 for word in option)
    if len(words) != 4:
        msg = "unrandomize seed lists must contain exactly four integers"
        raise ValueError(msg)
    if not any(words):
        msg = "unrandomize seed must not be all zeros"
        raise ValueError(msg)
    return RandomSetting(mode=RandomMode.SEEDED, seed=words)  # type: ignore[arg-type]


def render_random_script(seed: Sequence[int]) -> str:
    return f"({_RANDOM_SOURCE})({json.dumps(list(seed))});"


def overwrite_random(page: HostPage, option: UnrandomizeOption) -> RandomSetting:
    """Install the deterministic generator before navigation.

    A rejected injection is raised as ``InjectionError``; the run must not go
    on with native randomness when determinism was requested.
    """

    setting = resolve_random_setting(option)
    if setting.mode is RandomMode.NATIVE or setting.seed is None:
        logger.info("Leaving Math.random untouched")
        return setting

    try:
        page.inject_before_load(render_random_script(setting.seed))
    except InjectionError:
        raise
    except Exception as exc:
        msg = f"Could not install seeded Math.random: {exc}"
        raise InjectionError(msg) from exc

    if option == RANDOM_SEED_MODE:
        logger.info("Generated seed: %s", ", ".join(str(word) for word in setting.seed))
    logger.info("Math.random overwritten with seeded generator (seed %s)", list(setting.seed))
    return setting
