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

from zkp_kyc.error import DuplicateNullifier, NullifierReuse, RequestNotFound
from zkp_kyc.frill import Ink
from zkp_kyc.ledger import VerificationRecord


def _record(nullifier, verified_at, vtype='age', time_ms=40, metadata=None):
    return VerificationRecord(vtype, str(nullifier), ['1', '18', str(nullifier)], verified_at, time_ms, metadata)


@pytest.mark.asyncio
async def test_append_exists(ledger, clock):
    print(Ink.YELLOW('\n\n== Testing ledger append and replay guard =='))

    assert not await ledger.exists('101')
    verification_id = await ledger.append(_record(101, clock()))
    assert verification_id
    assert await ledger.exists('101')
    assert await ledger.total() == 1

    with pytest.raises(DuplicateNullifier) as x_dup:
        await ledger.append(_record(101, clock() + 1, 'region'))
    assert isinstance(x_dup.value, NullifierReuse)
    assert x_dup.value.code == 'NULLIFIER_REUSE'
    assert await ledger.total() == 1
    print('\n\n== Ledger holds each nullifier at most once')


@pytest.mark.asyncio
async def test_append_finalize(ledger, clock):
    print(Ink.YELLOW('\n\n== Testing ledger append with finalization in the same transaction =='))

    seen = []

    def finalize_ok(session, verification_id):
        seen.append(verification_id)

    verification_id = await ledger.append(_record(201, clock()), finalize_ok)
    assert seen == [verification_id]

    def finalize_bad(session, verification_id):
        raise RequestNotFound('No verification request XYZ')

    with pytest.raises(RequestNotFound):
        await ledger.append(_record(202, clock()), finalize_bad)
    assert not await ledger.exists('202')  # rolled back together
    assert await ledger.total() == 1
    print('\n\n== Finalization failure rolls back its ledger entry')


@pytest.mark.asyncio
async def test_paginate_aggregate(ledger, clock):
    print(Ink.YELLOW('\n\n== Testing ledger pagination and statistics =='))

    for i in range(5):
        await ledger.append(_record(300 + i, clock() + i, 'age', 10 * (i + 1)))
    await ledger.append(_record(400, clock() + 10, 'region', 50, {'requiredRegion': '56'}))

    page = await ledger.paginate(3, 0)
    assert [r.nullifier for r in page] == ['400', '304', '303']
    assert page[0].metadata == {'requiredRegion': '56'}
    assert page[0].public_signals == ['1', '18', '400']
    assert [r.nullifier for r in await ledger.paginate(3, 3)] == ['302', '301', '300']
    assert await ledger.paginate(3, 6) == []

    entry = page[0].to_dict()
    assert set(entry) == {'id', 'type', 'result', 'verifiedAt', 'verificationTimeMs', 'metadata'}
    assert entry['type'] == 'region'
    assert entry['result'] is True

    stats = await ledger.aggregate_by_type()
    assert stats['age']['count'] == 5
    assert stats['age']['successRate'] == 1.0
    assert stats['age']['avgVerifyTimeMs'] == pytest.approx(30.0)
    assert stats['region'] == {'count': 1, 'successRate': 1.0, 'avgVerifyTimeMs': 50.0}
    assert 'credentialValidity' not in stats
    assert await ledger.total() == 6
    print('\n\n== Ledger pages newest first and aggregates by type')
