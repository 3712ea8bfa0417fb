"""Dogecoin keys, Base58Check and address helpers.

Private keys are handled with ``cryptography``'s secp256k1 implementation.
Addresses are legacy Base58Check P2PKH/P2SH strings.
"""

from __future__ import annotations

import binascii
import hashlib
from dataclasses import dataclass
from typing import List

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
    encode_dss_signature,
)

from .script import p2pkh_script, p2sh_script

b58_digits = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


class AddressError(ValueError):
    """Raised when a key or address cannot be parsed."""


@dataclass(frozen=True)
class Network:
    name: str
    pubkey_hash: int
    script_hash: int
    wif: int


MAINNET = Network(name="mainnet", pubkey_hash=0x1E, script_hash=0x16, wif=0x9E)
TESTNET = Network(name="testnet", pubkey_hash=0x71, script_hash=0xC4, wif=0xF1)


def network_for(testnet: bool) -> Network:
    return TESTNET if testnet else MAINNET


def double_sha256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def hash160(data: bytes) -> bytes:
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def base58_check_encode(payload: bytes, version: bytes) -> str:
    """Encode bytes into a Base58Check string with the provided version byte."""

    data = version + payload
    address_bytes = data + double_sha256(data)[:4]

    value = int("0x0" + binascii.hexlify(address_bytes).decode("utf8"), 16)

    output: List[str] = []
    while value > 0:
        value, remainder = divmod(value, 58)
        output.append(b58_digits[remainder])
    encoded = "".join(output[::-1])

    leading_zero_count = 0
    for byte in address_bytes:
        if byte == 0:
            leading_zero_count += 1
        else:
            break

    return b58_digits[0] * leading_zero_count + encoded


def base58_check_decode(value: str) -> tuple[int, bytes]:
    """Decode a Base58Check string into ``(version, payload)``.

    The checksum is verified; a mismatch raises :class:`AddressError`.
    """

    number = 0
    for character in value:
        if character not in b58_digits:
            raise AddressError(f"Invalid Base58 character: {character}")
        number = number * 58 + b58_digits.index(character)

    padding = len(value) - len(value.lstrip(b58_digits[0]))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    decoded = b"\x00" * padding + body
    if len(decoded) < 5:
        raise AddressError(f"Base58Check string too short: {value}")

    data, checksum = decoded[:-4], decoded[-4:]
    if double_sha256(data)[:4] != checksum:
        raise AddressError(f"Invalid Base58Check checksum: {value}")
    return data[0], data[1:]


def script_for_address(address: str, network: Network = MAINNET) -> bytes:
    """Return the output script paying ``address``."""

    version, payload = base58_check_decode(address)
    if len(payload) != 20:
        raise AddressError(f"Unexpected address payload length for {address}")
    if version == network.pubkey_hash:
        return p2pkh_script(payload)
    if version == network.script_hash:
        return p2sh_script(payload)
    raise AddressError(f"Address {address} does not belong to {network.name}")


class PrivateKey:
    """A secp256k1 signing key with its compressed public key."""

    def __init__(self, secret: int, compressed: bool = True) -> None:
        if not 0 < secret < SECP256K1_ORDER:
            raise AddressError("Private key out of range")
        self.secret = secret
        self.compressed = compressed
        self._key = ec.derive_private_key(secret, ec.SECP256K1())

    @classmethod
    def generate(cls) -> "PrivateKey":
        key = ec.generate_private_key(ec.SECP256K1())
        return cls(key.private_numbers().private_value)

    @classmethod
    def from_wif(cls, wif: str, network: Network | None = None) -> "PrivateKey":
        version, payload = base58_check_decode(wif)
        if network is not None and version != network.wif:
            raise AddressError(f"WIF key does not belong to {network.name}")
        if len(payload) == 33 and payload[-1] == 0x01:
            return cls(int.from_bytes(payload[:32], "big"), compressed=True)
        if len(payload) == 32:
            return cls(int.from_bytes(payload, "big"), compressed=False)
        raise AddressError("Malformed WIF private key")

    def to_wif(self, network: Network = MAINNET) -> str:
        payload = self.secret.to_bytes(32, "big")
        if self.compressed:
            payload += b"\x01"
        return base58_check_encode(payload, bytes([network.wif]))

    @property
    def public_key(self) -> bytes:
        fmt = (
            serialization.PublicFormat.CompressedPoint
            if self.compressed
            else serialization.PublicFormat.UncompressedPoint
        )
        return self._key.public_key().public_bytes(serialization.Encoding.X962, fmt)

    def address(self, network: Network = MAINNET) -> str:
        return base58_check_encode(hash160(self.public_key), bytes([network.pubkey_hash]))

    def sign_digest(self, digest: bytes) -> bytes:
        """Return a low-S DER signature over a precomputed 32-byte digest."""

        der = self._key.sign(digest, ec.ECDSA(Prehashed(hashes.SHA256())))
        r, s = decode_dss_signature(der)
        if s > SECP256K1_ORDER // 2:
            s = SECP256K1_ORDER - s
        return encode_dss_signature(r, s)


def verify_digest(public_key: bytes, digest: bytes, signature: bytes) -> bool:
    """Check a DER signature against ``public_key``."""

    key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), public_key)
    try:
        key.verify(signature, digest, ec.ECDSA(Prehashed(hashes.SHA256())))
    except InvalidSignature:
        return False
    return True
