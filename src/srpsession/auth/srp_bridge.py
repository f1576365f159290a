"""SRP-6a proof derivation.

The bridge turns a username, a password and the server's login challenge
into the client's ephemeral value and proof, plus a check for the proof the
server must send back. It performs no I/O; the SRP arithmetic is delegated
to the :mod:`srp` library.

Server-supplied parameters are sanity-checked before any arithmetic. A
failed check raises :class:`~srpsession.exceptions.CryptoError`, which is
always fatal to the current login attempt.
"""

from __future__ import annotations

import base64
import binascii
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Union

import srp

from srpsession.exceptions import CryptoError, ProtocolError
from srpsession.models import AuthInfoResponse

logger = logging.getLogger(__name__)

SRP_GENERATOR = 2
SUPPORTED_AUTH_VERSIONS = frozenset({4})


def decode_base64_field(value: str, field_name: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ProtocolError(f"{field_name} is not valid base64") from exc


@dataclass(frozen=True)
class LoginChallenge:
    """Server parameters for one SRP attempt, decoded from the info response."""

    version: int
    salt: bytes
    modulus: bytes
    server_ephemeral: bytes
    session_info_id: str

    @classmethod
    def from_info(cls, info: AuthInfoResponse) -> LoginChallenge:
        """Decode the base64 fields of an info response.

        Raises:
            ProtocolError: If a binary field is not valid base64.
        """
        return cls(
            version=info.version,
            salt=decode_base64_field(info.salt, "Salt"),
            modulus=decode_base64_field(info.modulus, "Modulus"),
            server_ephemeral=decode_base64_field(info.server_ephemeral, "ServerEphemeral"),
            session_info_id=info.srp_session,
        )

    def __repr__(self) -> str:
        return (
            f"LoginChallenge(version={self.version}, "
            f"modulus_bits={int.from_bytes(self.modulus, 'big').bit_length()}, "
            f"session_info_id={self.session_info_id!r})"
        )


class ClientProof:
    """The client's half of the SRP exchange.

    Holds the ephemeral value and proof to submit, and verifies the proof
    the server returns. Use it as a context manager so the buffers are
    overwritten however the block exits::

        with bridge.derive_proof(username, password, challenge) as proof:
            submit(proof.client_ephemeral, proof.client_proof)
            ok = proof.verify_server_proof(server_proof)
    """

    def __init__(
        self,
        client_ephemeral: bytes,
        client_proof: bytes,
        server_proof_check: Callable[[bytes], bool],
    ) -> None:
        self._ephemeral = bytearray(client_ephemeral)
        self._proof = bytearray(client_proof)
        self._check: Optional[Callable[[bytes], bool]] = server_proof_check

    @property
    def client_ephemeral(self) -> bytes:
        return bytes(self._ephemeral)

    @property
    def client_proof(self) -> bytes:
        return bytes(self._proof)

    @property
    def cleared(self) -> bool:
        return self._check is None

    def encoded(self) -> tuple[str, str]:
        """Return ``(ClientEphemeral, ClientProof)`` as base64 strings."""
        return (
            base64.b64encode(bytes(self._ephemeral)).decode("ascii"),
            base64.b64encode(bytes(self._proof)).decode("ascii"),
        )

    def verify_server_proof(self, server_proof: bytes) -> bool:
        """Return ``True`` if *server_proof* matches the expected value.

        Raises:
            CryptoError: If the proof material was already cleared.
        """
        if self._check is None:
            raise CryptoError("Proof material has been cleared")
        return self._check(server_proof)

    def clear(self) -> None:
        """Overwrite the proof buffers and drop the SRP state."""
        for buf in (self._ephemeral, self._proof):
            for i in range(len(buf)):
                buf[i] = 0
        self._check = None

    def __enter__(self) -> ClientProof:
        return self

    def __exit__(self, *args: object) -> None:
        self.clear()

    def __repr__(self) -> str:
        return f"ClientProof(cleared={self.cleared})"


class SRPBridge(ABC):
    """Derives SRP client proofs. Implementations must be pure (no I/O)."""

    @abstractmethod
    def derive_proof(
        self,
        username: str,
        password: Union[str, bytes, bytearray],
        challenge: LoginChallenge,
    ) -> ClientProof:
        """Compute the client proof for *challenge*.

        Raises:
            CryptoError: If the challenge parameters are unsafe or rejected.
        """
        ...


class PySRPBridge(SRPBridge):
    """SRP-6a over SHA-256 using the :mod:`srp` library.

    The group is the server-supplied modulus with generator 2.

    Args:
        min_modulus_bits: Smallest modulus accepted from the server.
        max_modulus_bits: Largest modulus accepted from the server.
        auth_versions: Auth versions whose password derivation this bridge
            implements. Challenges of any other version are rejected.
    """

    def __init__(
        self,
        min_modulus_bits: int = 2048,
        max_modulus_bits: int = 8192,
        auth_versions: frozenset[int] = SUPPORTED_AUTH_VERSIONS,
    ) -> None:
        self.min_modulus_bits = min_modulus_bits
        self.max_modulus_bits = max_modulus_bits
        self.auth_versions = frozenset(auth_versions)

    def check_challenge(self, challenge: LoginChallenge) -> None:
        """Reject server parameters that would make the exchange unsafe."""
        if challenge.version not in self.auth_versions:
            raise CryptoError(
                f"Auth version {challenge.version} is not supported "
                f"(expected one of {sorted(self.auth_versions)})"
            )
        n = int.from_bytes(challenge.modulus, "big")
        bits = n.bit_length()
        if not self.min_modulus_bits <= bits <= self.max_modulus_bits:
            raise CryptoError(
                f"Modulus size {bits} bits is outside "
                f"[{self.min_modulus_bits}, {self.max_modulus_bits}]"
            )
        if n % 2 == 0:
            raise CryptoError("Modulus is even")
        if not challenge.salt:
            raise CryptoError("Salt is empty")
        if int.from_bytes(challenge.server_ephemeral, "big") % n == 0:
            raise CryptoError("Server ephemeral is zero modulo N")

    def derive_proof(
        self,
        username: str,
        password: Union[str, bytes, bytearray],
        challenge: LoginChallenge,
    ) -> ClientProof:
        self.check_challenge(challenge)

        if isinstance(password, str):
            secret = password.encode("utf-8")
        else:
            secret = bytes(password)

        user = srp.User(
            username.encode("utf-8"),
            secret,
            hash_alg=srp.SHA256,
            ng_type=srp.NG_CUSTOM,
            n_hex=challenge.modulus.hex().encode("ascii"),
            g_hex=format(SRP_GENERATOR, "x").encode("ascii"),
        )
        _, client_ephemeral = user.start_authentication()
        client_proof = user.process_challenge(challenge.salt, challenge.server_ephemeral)
        if client_proof is None:
            raise CryptoError("SRP library rejected the server challenge")

        state = {"user": user}

        def check(server_proof: bytes) -> bool:
            usr = state.pop("user", None)
            if usr is None:
                return False
            usr.verify_session(server_proof)
            return bool(usr.authenticated())

        logger.debug("Derived SRP proof for challenge version %d", challenge.version)
        return ClientProof(client_ephemeral, client_proof, check)
