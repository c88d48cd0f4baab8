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

from zkp_kyc.error import MalformedRequest
from zkp_kyc.frill import Ink
from zkp_kyc.payload import PAYLOAD_JSON_SCHEMA, validate


SUBMISSION = {
    'proof': {'protocol': 'groth16'},
    'publicSignals': ['1', '18', '12345'],
    'nullifier': '12345'
}


@pytest.mark.asyncio
async def test_validate_ok():
    print(Ink.YELLOW('\n\n== Testing form validation on good forms =='))

    forms = [
        {'type': 'credential-issue', 'data': {'name': 'Asha Rao', 'dateOfBirth': '1990-05-14', 'identityNumber': '234567890123'}},
        {'type': 'credential-issue', 'data': {}},  # attribute checks belong to the issuer
        {'type': 'credential-check', 'data': {'commitment': '123456'}},
        {'type': 'issuer-list', 'data': {}},
        {'type': 'proof-verify', 'data': {'verificationType': 'age', **SUBMISSION}},
        {'type': 'proof-verify', 'data': {'verificationType': 'region', **SUBMISSION, 'metadata': {'requiredRegion': 56}}},
        {'type': 'proof-verify', 'data': {'verificationType': 'age', **SUBMISSION, 'publicSignals': [1, 18, 12345]}},
        {'type': 'verification-history', 'data': {'limit': 10, 'offset': 20}},
        {'type': 'request-create', 'data': {'verificationType': 'credentialValidity', 'verifierName': 'Acme Bank'}},
        {'type': 'request-get', 'data': {'requestId': 'AbC12345'}},
        {'type': 'request-complete', 'data': {'requestId': 'AbC12345', **SUBMISSION}},
        {'type': 'circuit-status', 'data': {}},
        {'type': 'proof-generate', 'data': {'verificationType': 'age', 'privateWitness': {}, 'publicWitness': {}}}
    ]
    for form in forms:
        validate(form)
    assert {form['type'] for form in forms} == set(PAYLOAD_JSON_SCHEMA)
    print('\n\n== Good forms validate for all {} form types'.format(len(PAYLOAD_JSON_SCHEMA)))


@pytest.mark.asyncio
async def test_validate_bad():
    print(Ink.YELLOW('\n\n== Testing form validation on bad forms =='))

    forms = [
        None,
        {},
        {'data': {}},
        {'type': 'no-such-form', 'data': {}},
        {'type': 'issuer-list'},
        {'type': 'issuer-list', 'data': {}, 'extra': True},
        {'type': 'credential-issue', 'data': {'postalCode': '\u00b2\u00b2'}},
        {'type': 'credential-check', 'data': {}},
        {'type': 'credential-check', 'data': {'commitment': '0x12'}},
        {'type': 'proof-verify', 'data': {'verificationType': 'height', **SUBMISSION}},
        {'type': 'proof-verify', 'data': {'verificationType': 'age', **SUBMISSION, 'publicSignals': ['1', '18']}},
        {'type': 'proof-verify', 'data': {'verificationType': 'age', **SUBMISSION, 'nullifier': 'abc'}},
        {'type': 'proof-verify', 'data': {'verificationType': 'age', 'proof': {}, 'publicSignals': ['1', '18', '5']}},
        {'type': 'verification-history', 'data': {'limit': 0}},
        {'type': 'verification-history', 'data': {'offset': -1}},
        {'type': 'request-create', 'data': {'verifierName': 'Acme Bank'}},
        {'type': 'request-get', 'data': {'requestId': ''}},
        {'type': 'request-complete', 'data': {'requestId': 'AbC12345', 'proof': {}}},
        {'type': 'proof-generate', 'data': {'verificationType': 'age'}}
    ]
    for form in forms:
        with pytest.raises(MalformedRequest):
            validate(form)
    print('\n\n== Bad forms raise MalformedRequest')
