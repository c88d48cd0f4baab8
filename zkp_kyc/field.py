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
import re

from enum import Enum
from typing import Any, Sequence

from zkp_kyc.error import ValidationError


LOGGER = logging.getLogger(__name__)

# BN254 (alt_bn128) scalar field order: circuit signals and hashes live here
FIELD_MODULUS = 0x30644e72e131a029b85045b68181585d2833e84879b9709143e1f593f0000001
FIELD_BYTES = 32


class VerificationType(Enum):
    """
    Verification types: each has a nullifier type tag, a circuit, and an attribute rendering.
    """

    AGE = 'age'
    CREDENTIAL_VALIDITY = 'credentialValidity'
    REGION = 'region'

    @staticmethod
    def get(token: str) -> 'VerificationType':
        """
        Return verification type for input value, None for no such type.

        :param token: verification type value, as per 'age', 'credentialValidity', 'region'
        :return: verification type enum member or None
        """

        for vtype in VerificationType:
            if vtype.value == token:
                return vtype
        return None

    @property
    def tag(self) -> int:
        """
        Accessor for nullifier type tag: hashing it into the nullifier base separates nullifiers by type.

        :return: type tag
        """

        return {
            VerificationType.AGE: 1,
            VerificationType.CREDENTIAL_VALIDITY: 2,
            VerificationType.REGION: 3
        }[self]

    @property
    def circuit(self) -> str:
        """
        Accessor for name of circuit that proves predicate for verification type.

        :return: circuit name
        """

        return {
            VerificationType.AGE: 'age_verification',
            VerificationType.CREDENTIAL_VALIDITY: 'credential_validity',
            VerificationType.REGION: 'region_verification'
        }[self]

    def attribute(self, public_signals: Sequence[str]) -> str:
        """
        Render human-readable attribute that a successful proof establishes.

        :param public_signals: proof public signals
        :return: attribute string
        """

        param = str(public_signals[Signal.PARAMETER]) if len(public_signals) > Signal.PARAMETER else ''
        if self == VerificationType.AGE:
            return 'age >= {}'.format(int(param) if re.fullmatch('[0-9]+', param) and int(param) else 18)
        if self == VerificationType.REGION:
            return 'resident_of_region_{}'.format(param)
        return 'valid_credential'


class Signal:
    """
    Fixed indices into public signals, common to all circuits: [predicate, parameter, nullifier].
    """

    PREDICATE = 0
    PARAMETER = 1
    NULLIFIER = 2
    COUNT = 3


class Hasher:
    """
    Base class for one-way, collision-resistant hash of field elements to a field element.
    Implementations must be pure and total.
    """

    def hash(self, elements: Sequence[int]) -> int:
        """
        Hash input field elements to a field element.

        :param elements: field elements
        :return: field element
        """

        raise NotImplementedError


class Sha256Hasher(Hasher):
    """
    SHA-256 hasher over fixed-width big-endian field elements, domain-separated by arity,
    reduced into the scalar field.
    """

    def __init__(self, domain: bytes = b'zkp_kyc') -> None:
        """
        Initializer.

        :param domain: domain separation prefix
        """

        self._domain = domain

    def hash(self, elements: Sequence[int]) -> int:
        digest = hashlib.sha256()
        digest.update(self._domain)
        digest.update(len(elements).to_bytes(2, 'big'))
        for element in elements:
            digest.update((int(element) % FIELD_MODULUS).to_bytes(FIELD_BYTES, 'big'))
        return int.from_bytes(digest.digest(), 'big') % FIELD_MODULUS


def to_field(value: Any) -> int:
    """
    Normalize input int or decimal string into the scalar field.

    Raise ValidationError for value that is not an integer or decimal string.

    :param value: int or decimal string
    :return: field element
    """

    if isinstance(value, bool):
        raise ValidationError('Boolean {} is not a field element'.format(value))
    if isinstance(value, int):
        return value % FIELD_MODULUS
    if isinstance(value, str) and re.fullmatch('[0-9]+', value):
        return int(value) % FIELD_MODULUS
    raise ValidationError('Value {} is not a field element'.format(value))


def commit(hasher: Hasher, dob: Sequence[int], digits: Sequence[int]) -> int:
    """
    Compute credential commitment over date of birth and identity number digits:
    H(H(year, month, day), H(digits[0:6]), H(digits[6:12])).

    Identical attributes always yield identical commitments.

    :param hasher: field hasher
    :param dob: date of birth as (year, month, day)
    :param digits: identity number digits
    :return: commitment
    """

    half = len(digits) // 2
    return hasher.hash([
        hasher.hash(list(dob)),
        hasher.hash(list(digits[:half])),
        hasher.hash(list(digits[half:]))])


def nullifier_base(hasher: Hasher, commitment: int, salt: int) -> int:
    """
    Derive nullifier base from commitment and per-issuance salt.

    :param hasher: field hasher
    :param commitment: credential commitment
    :param salt: issuance salt
    :return: nullifier base
    """

    return hasher.hash([commitment, salt])


def derive_nullifier(hasher: Hasher, base: int, vtype: VerificationType) -> int:
    """
    Derive nullifier for verification type from nullifier base: one credential yields a distinct,
    unlinkable nullifier per type, and the same nullifier on each attempt of a type.

    :param hasher: field hasher
    :param base: nullifier base
    :param vtype: verification type
    :return: nullifier
    """

    rv = hasher.hash([base, vtype.tag])
    LOGGER.debug('derive_nullifier <<< type %s', vtype.value)
    return rv
