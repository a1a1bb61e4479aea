import random
import re
import string
from datetime import datetime, timezone

TICKET_PREFIX = "BOL"
TICKET_ALPHABET = string.ascii_uppercase + string.digits
TICKET_SUFFIX_LENGTH = 6
TICKET_CODE_RE = re.compile(r"^BOL-\d{4}-[A-Z0-9]{6}$")

_rng = random.SystemRandom()


def generate_ticket_code(now: datetime | None = None) -> str:
    """Return a code like ``BOL-2025-7QK2ZD``.

    36**6 suffixes per year: collisions are rare but possible and are caught by
    the unique index on insert, not here.
    """
    year = (now or datetime.now(timezone.utc)).year
    suffix = "".join(_rng.choices(TICKET_ALPHABET, k=TICKET_SUFFIX_LENGTH))
    return f"{TICKET_PREFIX}-{year}-{suffix}"


def is_ticket_code(value: str) -> bool:
    return bool(TICKET_CODE_RE.match(value))
