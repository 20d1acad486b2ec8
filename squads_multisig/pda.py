"""
Program-derived addresses for Squads v4 accounts.

A PDA is sha256(seeds || bump || program_id || "ProgramDerivedAddress")
for the highest bump whose digest is not a valid Ed25519 point, so no
private key exists for it.
"""

import hashlib
import logging
import struct
from typing import Sequence

from .codec import address_to_bytes, bytes_to_address
from .config import SQUADS_V4_PROGRAM
from .errors import AddressDerivationExhausted, InvalidSeeds

logger = logging.getLogger(__name__)

PDA_MARKER = b"ProgramDerivedAddress"
MAX_SEED_LENGTH = 32
MAX_SEEDS = 16

SEED_PREFIX = b"multisig"
SEED_MULTISIG = b"multisig"
SEED_VAULT = b"vault"
SEED_TRANSACTION = b"transaction"
SEED_PROPOSAL = b"proposal"
SEED_PROGRAM_CONFIG = b"program_config"

# Edwards25519: -x^2 + y^2 = 1 + d x^2 y^2 over GF(2^255 - 19)
_P = 2**255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P


def is_on_curve(point: bytes) -> bool:
    """True when `point` decompresses to a point on the Ed25519 curve."""
    y = int.from_bytes(point, "little") & ((1 << 255) - 1)
    y %= _P
    y2 = y * y % _P
    u = (y2 - 1) % _P
    v = (_D * y2 + 1) % _P
    x2 = u * pow(v, _P - 2, _P) % _P
    return x2 == 0 or pow(x2, (_P - 1) // 2, _P) == 1


def _check_seeds(seeds: Sequence[bytes]) -> None:
    if len(seeds) > MAX_SEEDS:
        raise InvalidSeeds(f"{len(seeds)} seeds given, at most {MAX_SEEDS} allowed")
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise InvalidSeeds(f"Seed of {len(seed)} bytes exceeds {MAX_SEED_LENGTH}")


def _hash_seeds(seeds: Sequence[bytes], program_key: bytes) -> bytes:
    return hashlib.sha256(b"".join(seeds) + program_key + PDA_MARKER).digest()


def create_program_address(seeds: Sequence[bytes], program_id: str) -> str:
    _check_seeds(seeds)
    digest = _hash_seeds(seeds, address_to_bytes(program_id))
    if is_on_curve(digest):
        raise InvalidSeeds("Seeds hash to a point on the Ed25519 curve")
    return bytes_to_address(digest)


def find_program_address(seeds: Sequence[bytes], program_id: str) -> tuple[str, int]:
    """Return (address, bump) for the first bump from 255 down that is off-curve."""
    # the bump is one more seed
    _check_seeds([*seeds, b"\x00"])
    program_key = address_to_bytes(program_id)
    for bump in range(255, -1, -1):
        digest = _hash_seeds([*seeds, bytes([bump])], program_key)
        if not is_on_curve(digest):
            address = bytes_to_address(digest)
            logger.debug(f"Derived {address} (bump {bump}) under {program_id}")
            return address, bump
    raise AddressDerivationExhausted(list(seeds), program_id)


def get_multisig_pda(create_key: str, program_id: str = SQUADS_V4_PROGRAM) -> tuple[str, int]:
    return find_program_address([SEED_PREFIX, SEED_MULTISIG, address_to_bytes(create_key)], program_id)


def get_vault_pda(multisig: str, vault_index: int = 0, program_id: str = SQUADS_V4_PROGRAM) -> tuple[str, int]:
    return find_program_address(
        [SEED_PREFIX, address_to_bytes(multisig), SEED_VAULT, struct.pack("<B", vault_index)],
        program_id,
    )


def _transaction_seeds(multisig: str, transaction_index: int) -> list[bytes]:
    return [SEED_PREFIX, address_to_bytes(multisig), SEED_TRANSACTION, struct.pack("<Q", transaction_index)]


def get_transaction_pda(
    multisig: str, transaction_index: int, program_id: str = SQUADS_V4_PROGRAM
) -> tuple[str, int]:
    return find_program_address(_transaction_seeds(multisig, transaction_index), program_id)


def get_proposal_pda(
    multisig: str, transaction_index: int, program_id: str = SQUADS_V4_PROGRAM
) -> tuple[str, int]:
    return find_program_address([*_transaction_seeds(multisig, transaction_index), SEED_PROPOSAL], program_id)


def get_program_config_pda(program_id: str = SQUADS_V4_PROGRAM) -> tuple[str, int]:
    return find_program_address([SEED_PREFIX, SEED_PROGRAM_CONFIG], program_id)
