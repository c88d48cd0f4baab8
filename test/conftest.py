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

import logging

import pytest
import pytest_asyncio

from zkp_kyc.anchor import CredentialIssuer, RequestOrchestrator, VerificationGateway
from zkp_kyc.field import Sha256Hasher
from zkp_kyc.ledger import VerificationLedger
from zkp_kyc.proofsys import SimulatedProofSystem
from zkp_kyc.signer import IssuerKey
from zkp_kyc.store import Store


logging.basicConfig(level=logging.WARNING, format='%(levelname)-8s | %(name)-12s | %(message)s')
logging.getLogger('test.conftest').setLevel(logging.INFO)
logging.getLogger('asyncio').setLevel(logging.WARNING)
logging.getLogger('zkp_kyc').setLevel(logging.WARNING)
logging.getLogger('sqlalchemy').setLevel(logging.WARNING)


EPOCH = 1760000000.0  # 2025-10-09 08:53:20 UTC
TODAY = {'year': 2025, 'month': 10, 'day': 9}


class FakeClock:
    """
    Settable clock, in epoch seconds.
    """

    def __init__(self, now: float = EPOCH):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def today():
    return dict(TODAY)


@pytest.fixture
def hasher():
    return Sha256Hasher()


@pytest.fixture
def proof_system(hasher):
    return SimulatedProofSystem('test-secret', hasher, delay=0.01)


@pytest.fixture
def issuer_key():
    return IssuerKey.from_seed('000000000000000000000000Issuer01')


@pytest.fixture
def attrs():
    return {
        'name': 'Asha Rao',
        'dateOfBirth': '1990-05-14',
        'identityNumber': '234567890123',
        'postalCode': '560001'
    }


@pytest.fixture
def attrs_minor():
    return {
        'name': 'Ravi Menon',
        'dateOfBirth': '2010-01-20',
        'identityNumber': '345678901234',
        'postalCode': '682001'
    }


@pytest_asyncio.fixture
async def store(tmp_path):
    logger = logging.getLogger(__name__)
    logger.debug('store: >>> tmp_path: %s', tmp_path)

    async with Store('sqlite:///{}'.format(tmp_path.joinpath('zkp_kyc.db'))) as rv:
        logger.debug('store: yield: %r', rv)
        yield rv

    logger.debug('store: <<<')


@pytest_asyncio.fixture
async def issuer(store, hasher, issuer_key, clock):
    rv = CredentialIssuer(store, hasher, None, clock)
    await rv.register_issuer('Gov ID Authority', issuer_key)
    return rv


@pytest.fixture
def ledger(store):
    return VerificationLedger(store)


@pytest.fixture
def gateway(ledger, proof_system, clock):
    return VerificationGateway(ledger, proof_system, clock)


@pytest.fixture
def orchestrator(store, gateway, clock):
    return RequestOrchestrator(store, gateway, clock, 600)
