"""Collision-free synthetic identities for account lifecycle scenarios.

Local parts combine the base label, a millisecond timestamp that is forced
strictly monotonic within the process, and a short random base-36 suffix,
so identities generated back to back in the same millisecond (or from
parallel workers on different machines) never share an email address.
Boundary-length local parts keep the stamp and suffix behind "A" padding.
"""

import logging
import random
import re
import string
import threading
import time
from typing import Optional

from .models import DateOfBirth, Identity

logger = logging.getLogger(__name__)

DEFAULT_DOMAIN = "test.com"
DEFAULT_PASSWORD = "Test@1234"
INTERNATIONAL_NAMES = ("Jörg", "Müller")

_BASE36 = string.digits + string.ascii_lowercase
_LABEL_SPLIT = re.compile(r"[._\-\s]+")


def random_suffix(length: int = 6, alphabet: str = _BASE36) -> str:
    return "".join(random.choices(alphabet, k=length))


def random_letters(length: int = 10) -> str:
    return random_suffix(length, string.ascii_lowercase)


def to_base36(number: int) -> str:
    digits = []
    while True:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
        if not number:
            return "".join(reversed(digits))


def names_from_label(base_label: str):
    """Derive a first/last name pair from a label like ``john.doe``"""
    parts = [part for part in _LABEL_SPLIT.split(base_label) if part]
    if not parts:
        return "Test", "User"
    if len(parts) == 1:
        return parts[0].capitalize(), "User"
    return parts[0].capitalize(), " ".join(part.capitalize() for part in parts[1:])


class IdentityGenerator:
    """Produces synthetic users whose email is unique within the process.

    Every issued address is remembered for the life of the generator, so a
    long-lived instance grows with the number of identities; call ``reset``
    between independent runs to release them.
    """

    def __init__(self, domain: str = DEFAULT_DOMAIN, password: str = DEFAULT_PASSWORD, clock=None):
        self.domain = domain
        self.password = password
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._lock = threading.Lock()
        self._last_stamp = 0
        self._issued = set()

    def _next_stamp(self) -> int:
        with self._lock:
            stamp = max(self._clock(), self._last_stamp + 1)
            self._last_stamp = stamp
            return stamp

    def _claim(self, email: str) -> bool:
        with self._lock:
            key = email.lower()
            if key in self._issued:
                return False
            self._issued.add(key)
            return True

    def reset(self):
        """Forget issued addresses; stamps stay monotonic"""
        with self._lock:
            self._issued.clear()

    def padded_local_part(self, length: int, tag: Optional[str] = None) -> str:
        """A local part of exactly ``length`` characters for boundary tests.

        "A" padding fills the front; the tail is the base-36 stamp plus a
        random suffix, and ``+tag`` counts toward the length.
        """
        tail = f"{to_base36(self._next_stamp())}{random_suffix()}"
        if tag:
            tail = f"{tail}+{tag}"
        if length < len(tail):
            raise ValueError(f"pad_to={length} leaves no room for the unique tail {tail!r}")
        return "A" * (length - len(tail)) + tail

    def generate(
            self,
            base_label: str,
            *,
            uppercase: bool = False,
            tag: Optional[str] = None,
            international: bool = False,
            pad_to: Optional[int] = None,
            domain: Optional[str] = None,
            first_name: Optional[str] = None,
            last_name: Optional[str] = None,
            password: Optional[str] = None,
            gender: Optional[int] = None,
            date_of_birth: Optional[DateOfBirth] = None
    ) -> Identity:
        if not base_label or not base_label.strip():
            raise ValueError("base_label must be non-empty")

        label = base_label.strip()
        email_domain = domain or self.domain

        while True:
            local_part = self._local_part(label, pad_to, tag)
            if self._claim(f"{local_part}@{email_domain}"):
                break

        derived_first, derived_last = names_from_label(label)
        if international:
            derived_first, derived_last = INTERNATIONAL_NAMES

        if uppercase:
            local_part = local_part.upper()
            email_domain = email_domain.upper()

        identity = Identity(
            email_local_part=local_part,
            email_domain=email_domain,
            first_name=first_name or derived_first,
            last_name=last_name or derived_last,
            password=password or self.password,
            gender=gender,
            date_of_birth=date_of_birth
        )
        logger.debug("Generated identity %s for label %r", identity.email, label)
        return identity

    def _local_part(self, label: str, pad_to: Optional[int], tag: Optional[str]) -> str:
        if pad_to:
            return self.padded_local_part(pad_to, tag)
        prefix = re.sub(r"\s+", ".", label.lower())
        local_part = f"{prefix}{self._next_stamp()}{random_suffix()}"
        if tag:
            local_part = f"{local_part}+{tag}"
        return local_part
