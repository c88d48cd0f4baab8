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

from sqlalchemy import select

from zkp_kyc.anchor import CredentialIssuer
from zkp_kyc.error import AbsentCredential, NoIssuerAvailable, ValidationError
from zkp_kyc.field import commit
from zkp_kyc.frill import Ink
from zkp_kyc.signer import IssuerKey
from zkp_kyc.store import Credential, Issuer
from zkp_kyc.witness import DateParts


@pytest.mark.asyncio
async def test_issue(issuer, issuer_key, hasher, store, attrs, today, clock):
    print(Ink.YELLOW('\n\n== Testing credential issuance =='))

    issued = await issuer.issue(attrs)
    assert issued.commitment == str(commit(hasher, (1990, 5, 14), [int(d) for d in attrs['identityNumber']]))
    assert issued.issued_at == clock()
    assert issued.expires_at == clock() + 365 * 86400
    assert issued.issuer['name'] == 'Gov ID Authority'

    witness = issued.private_witness
    assert witness.dob == DateParts(1990, 5, 14)
    assert witness.age == 35
    assert witness.postal_code == 560001
    assert witness.region_code == 56
    assert 0 <= witness.salt < 2**128
    assert witness.nullifier_base == hasher.hash([int(issued.commitment), witness.salt])

    assertion = issued.public_assertion
    assert assertion['commitment'] == issued.commitment
    assert assertion['issuerPubKey'] == list(issuer_key.public_key)
    assert assertion['currentDate'] == today
    assert CredentialIssuer.verify_assertion(assertion)
    assert not CredentialIssuer.verify_assertion({**assertion, 'commitment': str(int(issued.commitment) + 1)})
    assert not CredentialIssuer.verify_assertion({'commitment': issued.commitment})

    as_dict = issued.to_dict()
    assert as_dict['privateWitness']['nullifierBase'] == str(witness.nullifier_base)
    assert as_dict['credentialId'] == issued.credential_id
    print('\n\n== Issued credential {} on commitment {}...'.format(issued.credential_id, issued.commitment[:16]))

    with store.transaction() as session:
        rows = session.execute(select(Credential)).scalars().all()
        assert len(rows) == 1
        assert rows[0].commitment == issued.commitment
        assert rows[0].credential_type == 'identity'
        stored = {str(getattr(rows[0], c.name)) for c in Credential.__table__.columns}
    assert not any(secret in value for value in stored for secret in ('Asha', '234567890123', '1990-05-14'))
    print('\n\n== Store holds commitment and issuance particulars only')


@pytest.mark.asyncio
async def test_issue_twice(issuer, attrs):
    print(Ink.YELLOW('\n\n== Testing reissuance on the same attributes =='))

    first = await issuer.issue(attrs)
    second = await issuer.issue(attrs)
    assert second.credential_id == first.credential_id
    assert second.commitment == first.commitment
    assert second.private_witness.salt != first.private_witness.salt
    assert second.private_witness.nullifier_base != first.private_witness.nullifier_base
    print('\n\n== Reissuance reuses stored credential with fresh salt')


@pytest.mark.asyncio
async def test_issue_bad_attributes(issuer, attrs):
    print(Ink.YELLOW('\n\n== Testing issuance on bad attributes =='))

    for bad in (
            {**attrs, 'name': ''},
            {**attrs, 'dateOfBirth': '1990-02-30'},
            {**attrs, 'dateOfBirth': '2030-01-01'},
            {**attrs, 'identityNumber': '12345'},
            {**attrs, 'postalCode': 'SW1A'},
            {}):
        with pytest.raises(ValidationError):
            await issuer.issue(bad)
    print('\n\n== Issuance rejects bad attributes')


@pytest.mark.asyncio
async def test_no_issuer(store, hasher, issuer_key, clock, attrs):
    print(Ink.YELLOW('\n\n== Testing issuance without an available issuer =='))

    keyless = CredentialIssuer(store, hasher, None, clock)
    with pytest.raises(NoIssuerAvailable):
        await keyless.issue(attrs)  # no issuer registered at all

    issuer = CredentialIssuer(store, hasher, None, clock)
    issuer_id = await issuer.register_issuer('Gov ID Authority', issuer_key)
    with pytest.raises(NoIssuerAvailable):
        await keyless.issue(attrs)  # registered, but service holds no key for it
    assert (await issuer.issue(attrs)).issuer['id'] == issuer_id

    await issuer.deactivate_issuer(issuer_id)
    assert await issuer.issuers() == []
    with pytest.raises(NoIssuerAvailable):
        await issuer.issue(attrs)
    with pytest.raises(NoIssuerAvailable):
        await issuer.deactivate_issuer('no-such-issuer')
    print('\n\n== Issuance needs an active issuer on a held key')


@pytest.mark.asyncio
async def test_issuers(issuer, issuer_key, store, clock):
    print(Ink.YELLOW('\n\n== Testing issuer registration and listing =='))

    issuers = await issuer.issuers()
    assert len(issuers) == 1
    assert issuers[0]['publicKey'] == list(issuer_key.public_key)
    assert issuers[0]['createdAt'] == clock()

    assert await issuer.register_issuer('Renamed', issuer_key) == issuers[0]['id']  # idempotent on key
    clock.advance(1)
    other_id = await issuer.register_issuer('Second Authority', IssuerKey.from_seed('000000000000000000000000Issuer02'))
    assert [i['id'] for i in await issuer.issuers()] == [issuers[0]['id'], other_id]

    with store.transaction() as session:
        assert len(session.execute(select(Issuer)).scalars().all()) == 2
    print('\n\n== Issuer registration is idempotent on public key')


@pytest.mark.asyncio
async def test_check_commitment(issuer, attrs, attrs_minor, clock):
    print(Ink.YELLOW('\n\n== Testing commitment status check and revocation =='))

    issued = await issuer.issue(attrs)
    status = await issuer.check_commitment(issued.commitment)
    assert status == {'valid': True, 'issuedAt': issued.issued_at, 'expiresAt': issued.expires_at, 'revoked': False}
    assert await issuer.check_commitment('12345') == {'valid': False}

    other = await issuer.issue(attrs_minor)
    await issuer.revoke(other.commitment)
    status = await issuer.check_commitment(other.commitment)
    assert not status['valid']
    assert status['revoked']
    with pytest.raises(AbsentCredential):
        await issuer.revoke('12345')

    clock.advance(366 * 86400)
    status = await issuer.check_commitment(issued.commitment)
    assert not status['valid']
    assert not status['revoked']
    print('\n\n== Commitment status reflects presence, revocation, and expiry')
