"""
Copyright 2017-2019 Government of Canada - Public Services and Procurement Canada - buyandsell.gc.ca

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""


import hashlib
import logging

from typing import Sequence, Tuple

from base58 import b58decode, b58encode
from ecdsa import BadSignatureError, MalformedPointError, SECP256k1, SigningKey, VerifyingKey
from ecdsa.util import sigdecode_string, sigencode_string

from zkp_kyc.field import FIELD_BYTES


LOGGER = logging.getLogger(__name__)


def _message(commitment: int) -> bytes:
    return int(commitment).to_bytes(FIELD_BYTES, 'big')


class IssuerKey:
    """
    Issuer signing key over secp256k1: binds credential commitments to the issuer public key.
    """

    def __init__(self, signing_key: SigningKey) -> None:
        """
        Initializer. Actuators should prefer from_seed() or generate().

        :param signing_key: ecdsa signing key on secp256k1
        """

        self._signing_key = signing_key
        point = signing_key.get_verifying_key().pubkey.point
        self._public_key = (str(point.x()), str(point.y()))

    @staticmethod
    def from_seed(seed: str) -> 'IssuerKey':
        """
        Derive signing key deterministically from seed, so a configured issuer survives restarts.

        :param seed: issuer seed
        :return: issuer key
        """

        secexp = int.from_bytes(hashlib.sha256(seed.encode()).digest(), 'big') % (SECP256k1.order - 1) + 1
        return IssuerKey(SigningKey.from_secret_exponent(secexp, curve=SECP256k1, hashfunc=hashlib.sha256))

    @staticmethod
    def generate() -> 'IssuerKey':
        """
        Generate random signing key.

        :return: issuer key
        """

        return IssuerKey(SigningKey.generate(curve=SECP256k1, hashfunc=hashlib.sha256))

    @property
    def public_key(self) -> Tuple[str, str]:
        """
        Accessor for public key as its two curve point coordinates, in decimal.

        :return: public key (x, y)
        """

        return self._public_key

    def sign(self, commitment: int) -> str:
        """
        Sign commitment deterministically (RFC 6979); return base58 signature.

        :param commitment: credential commitment
        :return: base58-encoded 64-byte (r, s) signature
        """

        sig = self._signing_key.sign_deterministic(
            _message(commitment),
            hashfunc=hashlib.sha256,
            sigencode=sigencode_string)
        return b58encode(sig).decode('ascii')

    def __repr__(self) -> str:
        """
        Return representation; never exposes the signing key.

        :return: string representation
        """

        return 'IssuerKey({})'.format(self.public_key)


def verify_signature(public_key: Sequence[str], commitment: int, signature: str) -> bool:
    """
    Verify issuer signature on commitment; return False for any bad signature, key, or encoding.

    :param public_key: issuer public key (x, y) in decimal
    :param commitment: credential commitment
    :param signature: base58-encoded signature
    :return: whether signature is good
    """

    try:
        raw_key = b''.join(int(coord).to_bytes(FIELD_BYTES, 'big') for coord in public_key)
        verifying_key = VerifyingKey.from_string(raw_key, curve=SECP256k1, hashfunc=hashlib.sha256)
        return verifying_key.verify(
            b58decode(signature),
            _message(commitment),
            hashfunc=hashlib.sha256,
            sigdecode=sigdecode_string)
    except (BadSignatureError, MalformedPointError, ValueError, OverflowError, TypeError) as x_sig:
        LOGGER.debug('verify_signature <!< bad signature: %s', x_sig)
        return False
