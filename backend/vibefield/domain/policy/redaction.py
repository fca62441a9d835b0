"""Position redaction applied to accepted broadcasts."""
from vibefield.domain.common.geo import Position
from vibefield.domain.policy.models import RedactionLevel

# 4 decimal places is roughly 11 m of latitude
BANDED_DECIMALS = 4


def redact_position(position: Position, level: RedactionLevel, decimals: int = BANDED_DECIMALS) -> Position:
    if level == RedactionLevel.RAW:
        return position
    if level == RedactionLevel.SUPPRESSED:
        raise ValueError("Suppressed decisions carry no position")
    return Position(lat=round(position.lat, decimals), lng=round(position.lng, decimals))
