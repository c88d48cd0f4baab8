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


import jsonschema

from zkp_kyc.error import MalformedRequest
from zkp_kyc.field import VerificationType


VERIFICATION_TYPES = [vtype.value for vtype in VerificationType]

_SIGNAL = {
    'type': ['string', 'integer'],
    'pattern': '^[0-9]+$'
}

_PROOF_SUBMISSION = {
    'proof': {
        'type': 'object'
    },
    'publicSignals': {
        'type': 'array',
        'items': _SIGNAL,
        'minItems': 3
    },
    'nullifier': _SIGNAL,
    'metadata': {
        'type': 'object',
        'properties': {
            'requiredRegion': {
                'type': ['string', 'integer']
            }
        }
    }
}


def _form(form_type: str, properties: dict, required: list = None) -> dict:
    """
    Return JSON schema for tagged form on type and data properties.

    :param form_type: form type
    :param properties: schema properties for form data
    :param required: required data properties
    :return: JSON schema
    """

    data = {
        'type': 'object',
        'properties': properties,
        'additionalProperties': False
    }
    if required:
        data['required'] = required
    return {
        '$schema': 'http://json-schema.org/draft-04/schema',
        'type': 'object',
        'properties': {
            'type': {
                'type': 'string',
                'pattern': '^{}$'.format(form_type)
            },
            'data': data
        },
        'required': ['type', 'data'],
        'additionalProperties': False
    }


PAYLOAD_JSON_SCHEMA = {
    'credential-issue': _form(
        'credential-issue',
        {
            'name': {
                'type': 'string'
            },
            'dateOfBirth': {
                'type': 'string'
            },
            'identityNumber': {
                'type': 'string'
            },
            'postalCode': {
                'type': 'string',
                'pattern': '^[0-9]*$'
            }
        }),

    'credential-check': _form(
        'credential-check',
        {
            'commitment': {
                'type': 'string',
                'pattern': '^[0-9]+$'
            }
        },
        ['commitment']),

    'issuer-list': _form('issuer-list', {}),

    'proof-verify': _form(
        'proof-verify',
        {
            'verificationType': {
                'enum': VERIFICATION_TYPES
            },
            **_PROOF_SUBMISSION
        },
        ['verificationType', 'proof', 'publicSignals', 'nullifier']),

    'verification-history': _form(
        'verification-history',
        {
            'limit': {
                'type': 'integer',
                'minimum': 1,
                'maximum': 500
            },
            'offset': {
                'type': 'integer',
                'minimum': 0
            }
        }),

    'request-create': _form(
        'request-create',
        {
            'verificationType': {
                'enum': VERIFICATION_TYPES
            },
            'verifierName': {
                'type': 'string'
            }
        },
        ['verificationType']),

    'request-get': _form(
        'request-get',
        {
            'requestId': {
                'type': 'string',
                'minLength': 1
            }
        },
        ['requestId']),

    'request-complete': _form(
        'request-complete',
        {
            'requestId': {
                'type': 'string',
                'minLength': 1
            },
            **_PROOF_SUBMISSION
        },
        ['requestId', 'proof', 'publicSignals', 'nullifier']),

    'circuit-status': _form('circuit-status', {}),

    'proof-generate': _form(
        'proof-generate',
        {
            'verificationType': {
                'enum': VERIFICATION_TYPES
            },
            'privateWitness': {
                'type': 'object'
            },
            'publicWitness': {
                'type': 'object'
            }
        },
        ['verificationType', 'privateWitness'])
}


def validate(form: dict) -> None:
    """
    Validate input form; raise MalformedRequest on non-compliance or silently pass.

    :param form: input form decoded from json
    """

    if not isinstance(form, dict) or 'type' not in form:
        raise MalformedRequest("Bad form: missing 'type' key")
    if form['type'] not in PAYLOAD_JSON_SCHEMA:
        raise MalformedRequest("Bad form: type '{}' unsupported".format(form['type']))
    try:
        jsonschema.validate(form, PAYLOAD_JSON_SCHEMA[form['type']])
    except jsonschema.ValidationError as x_valid:
        raise MalformedRequest('JSON validation error on {} form: {}'.format(form['type'], x_valid.message))
    except jsonschema.SchemaError as x_schema:
        raise MalformedRequest('JSON schema error on {} form: {}'.format(form['type'], x_schema.message))
