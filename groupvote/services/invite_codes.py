from __future__ import annotations

import logging
import random
from typing import Optional, Sequence

from sqlmodel import Session, select

from ..config import settings
from ..errors import InternalError
from ..models.group import Group

logger = logging.getLogger(__name__)

_system_rng = random.SystemRandom()


def generate_code(rng: random.Random, alphabet: Sequence[str], length: int) -> str:
    """
    Pure code generator: `length` symbols drawn independently from `alphabet`.
    """
    if length < 1:
        raise ValueError("length must be >= 1")
    if not alphabet:
        raise ValueError("alphabet must not be empty")
    return "".join(rng.choice(alphabet) for _ in range(length))


def code_in_use(session: Session, code: str) -> bool:
    return session.exec(select(Group.id).where(Group.invite_code == code)).first() is not None


def allocate_invite_code(
    session: Session,
    *,
    rng: Optional[random.Random] = None,
    alphabet: Optional[str] = None,
    length: Optional[int] = None,
    max_attempts: Optional[int] = None,
) -> str:
    """
    Draw codes until one is not present in the groups table.

    Bounded: after max_attempts collisions we fail closed with InternalError.
    This is a pre-check only; the unique index on groups.invite_code still
    decides races between concurrent creators.
    """
    rng = rng or _system_rng
    alphabet = alphabet or settings.invite_code_alphabet
    length = length or settings.invite_code_length
    max_attempts = max_attempts or settings.invite_code_max_attempts

    for attempt in range(1, max_attempts + 1):
        code = generate_code(rng, alphabet, length)
        if not code_in_use(session, code):
            return code
        logger.warning("Invite code collision (attempt %s/%s)", attempt, max_attempts)

    raise InternalError("Could not allocate a unique invite code")
