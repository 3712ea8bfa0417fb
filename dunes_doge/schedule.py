"""Height-dependent minimum name schedule.

Short names unlock gradually: before activation only names of thirteen or more
letters may be etched, and over ``SUBSIDY_HALVING_INTERVAL_10X`` blocks the
threshold decays one letter per interval until every name is available.
"""

from __future__ import annotations

from .names import ValidationError, name_to_string

# STEPS[n] is the value of the first name with n + 1 letters ("A" * (n + 1)).
STEPS = (
    0,
    26,
    702,
    18278,
    475254,
    12356630,
    321272406,
    8353082582,
    217180147158,
    5646683826134,
    146813779479510,
    3817158266467286,
    99246114928149462,
    2580398988131886038,
    67090373691429037014,
    1744349715977154962390,
    45353092615406029022166,
    1179180408000556754576342,
    30658690608014475618984918,
    797125955808376366093607894,
    20725274851017785518433805270,
    538857146126462423479278937046,
    14010285799288023010461252363222,
    364267430781488598271992561443798,
    9470953200318703555071806597538774,
    246244783208286292431866971536008150,
    6402364363415443603228541259936211926,
    166461473448801533683942072758341510102,
)

SUBSIDY_HALVING_INTERVAL_10X = 2_100_000
FIRST_DUNE_HEIGHT = 5_084_000
UNLOCK_STEPS = 12
INTERVAL = SUBSIDY_HALVING_INTERVAL_10X // UNLOCK_STEPS


def minimum_at_height(height: int) -> int:
    """Return the smallest name value that may be etched at ``height``."""

    offset = int(height) + 1
    start = FIRST_DUNE_HEIGHT
    end = start + SUBSIDY_HALVING_INTERVAL_10X

    if offset < start:
        return STEPS[UNLOCK_STEPS]
    if offset >= end:
        return 0

    progress = offset - start
    length = UNLOCK_STEPS - progress // INTERVAL
    start_value = STEPS[length]
    end_value = STEPS[length - 1]
    remainder = progress % INTERVAL
    return start_value - (start_value - end_value) * remainder // INTERVAL


def is_name_mintable(name: int, height: int) -> bool:
    return int(name) >= minimum_at_height(height)


def ensure_name_available(name: int, height: int) -> None:
    """Raise :class:`ValidationError` when ``name`` is still locked at ``height``."""

    if not is_name_mintable(name, height):
        minimum = minimum_at_height(height)
        raise ValidationError(
            "Dune characters are invalid at current height "
            f"{height}: {name_to_string(name)} is below {name_to_string(minimum)}"
        )
