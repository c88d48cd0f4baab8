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

import pytest

from zkp_kyc.error import ValidationError
from zkp_kyc.field import (
    FIELD_MODULUS,
    Sha256Hasher,
    Signal,
    VerificationType,
    commit,
    derive_nullifier,
    nullifier_base,
    to_field)
from zkp_kyc.frill import Ink


DOB = (1990, 5, 14)
DIGITS = [2, 3, 4, 5, 6, 7, 8, 9, 0, 1, 2, 3]


@pytest.mark.asyncio
async def test_verification_type():
    print(Ink.YELLOW('\n\n== Testing verification type properties =='))

    assert VerificationType.get('age') == VerificationType.AGE
    assert VerificationType.get('credentialValidity') == VerificationType.CREDENTIAL_VALIDITY
    assert VerificationType.get('region') == VerificationType.REGION
    assert VerificationType.get('height') is None

    assert [vtype.tag for vtype in VerificationType] == [1, 2, 3]
    assert VerificationType.AGE.circuit == 'age_verification'
    assert VerificationType.CREDENTIAL_VALIDITY.circuit == 'credential_validity'
    assert VerificationType.REGION.circuit == 'region_verification'

    assert VerificationType.AGE.attribute(['1', '21', '99']) == 'age >= 21'
    assert VerificationType.AGE.attribute(['1', '0', '99']) == 'age >= 18'
    assert VerificationType.CREDENTIAL_VALIDITY.attribute(['1', '0', '99']) == 'valid_credential'
    assert VerificationType.REGION.attribute(['1', '56', '99']) == 'resident_of_region_56'
    assert Signal.COUNT == 3
    print('\n\n== Verification types map to tags, circuits, and attributes as expected')


@pytest.mark.asyncio
async def test_hasher():
    print(Ink.YELLOW('\n\n== Testing field hasher =='))

    hasher = Sha256Hasher()
    assert hasher.hash([1, 2, 3]) == hasher.hash([1, 2, 3])
    assert hasher.hash([1, 2, 3]) != hasher.hash([3, 2, 1])
    assert hasher.hash([1]) != hasher.hash([1, 0])  # arity separates
    assert hasher.hash([FIELD_MODULUS + 5]) == hasher.hash([5])
    assert Sha256Hasher(b'other').hash([1]) != hasher.hash([1])
    assert all(0 <= hasher.hash([i]) < FIELD_MODULUS for i in range(32))
    print('\n\n== Field hasher is deterministic, arity-separated, and reduced into the field')


@pytest.mark.asyncio
async def test_commit():
    print(Ink.YELLOW('\n\n== Testing commitment derivation =='))

    hasher = Sha256Hasher()
    commitment = commit(hasher, DOB, DIGITS)
    assert commitment == commit(Sha256Hasher(), list(DOB), list(DIGITS))
    assert commitment != commit(hasher, (1990, 5, 15), DIGITS)
    assert commitment != commit(hasher, DOB, DIGITS[:-1] + [4])
    assert commitment == hasher.hash([hasher.hash(list(DOB)), hasher.hash(DIGITS[:6]), hasher.hash(DIGITS[6:])])
    print('\n\n== Commitment depends deterministically on content: {}...'.format(str(commitment)[:16]))


@pytest.mark.asyncio
async def test_nullifiers():
    print(Ink.YELLOW('\n\n== Testing nullifier derivation =='))

    hasher = Sha256Hasher()
    commitment = commit(hasher, DOB, DIGITS)
    base = nullifier_base(hasher, commitment, 123456789)
    assert base != nullifier_base(hasher, commitment, 123456790)  # salt makes issuances unlinkable

    nullifiers = {vtype: derive_nullifier(hasher, base, vtype) for vtype in VerificationType}
    assert len(set(nullifiers.values())) == len(VerificationType)
    assert all(derive_nullifier(hasher, base, vtype) == nullifiers[vtype] for vtype in VerificationType)
    print('\n\n== Nullifiers are distinct by type and stable across attempts')


@pytest.mark.asyncio
async def test_to_field():
    print(Ink.YELLOW('\n\n== Testing field normalization =='))

    assert to_field(42) == 42
    assert to_field('42') == 42
    assert to_field(FIELD_MODULUS) == 0
    assert to_field(str(FIELD_MODULUS + 1)) == 1
    for bad in ('-1', '0x10', '', 'abc', '\u00b2', '\u0664\u0662', 1.5, None, True):
        with pytest.raises(ValidationError):
            to_field(bad)
    print('\n\n== Field normalization accepts ints and decimal strings only')
