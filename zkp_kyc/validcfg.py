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

from zkp_kyc.error import JSONValidation


# Settings from ini files arrive as strings: numeric and boolean settings take either form
_COUNT = {
    'type': ['integer', 'string'],
    'pattern': '^[0-9]+$',
    'minimum': 1
}
_SECONDS = {
    'type': ['number', 'string'],
    'pattern': r'^[0-9]+(\.[0-9]+)?$',
    'minimum': 0
}
_FLAG = {
    'type': ['boolean', 'string'],
    'pattern': '^(true|false|True|False|yes|no|on|off|1|0)$'
}

CONFIG_JSON_SCHEMA = {
    'store': {
        '$schema': 'http://json-schema.org/draft-04/schema',
        'type': 'object',
        'properties': {
            'url': {
                'type': 'string',
                'minLength': 1
            },
            'echo': _FLAG
        },
        'additionalProperties': False
    },
    'issuer': {
        '$schema': 'http://json-schema.org/draft-04/schema',
        'type': 'object',
        'properties': {
            'name': {
                'type': 'string',
                'minLength': 1
            },
            'seed': {
                'type': 'string',
                'minLength': 1
            },
            'credential-validity-days': _COUNT
        },
        'additionalProperties': False
    },
    'orchestrator': {
        '$schema': 'http://json-schema.org/draft-04/schema',
        'type': 'object',
        'properties': {
            'request-ttl': _SECONDS,
            'share-url-base': {
                'type': 'string'
            }
        },
        'additionalProperties': False
    },
    'proof-system': {
        '$schema': 'http://json-schema.org/draft-04/schema',
        'type': 'object',
        'properties': {
            'kind': {
                'enum': ['snarkjs', 'simulated']
            },
            'dir-circuits': {
                'type': 'string'
            },
            'timeout': _SECONDS,
            'secret': {
                'type': 'string'
            },
            'snarkjs': {
                'type': 'string',
                'minLength': 1
            }
        },
        'additionalProperties': False
    }
}


def validate_config(key: str, config: dict) -> None:
    """
    Call jsonschema validation to raise JSONValidation on non-compliance or silently pass.

    :param key: validation schema key of interest
    :param config: configuration dict to validate
    """

    try:
        jsonschema.validate(config, CONFIG_JSON_SCHEMA[key])
    except jsonschema.ValidationError as x_valid:
        raise JSONValidation('JSON validation error on {} configuration: {}'.format(key, x_valid.message))
    except jsonschema.SchemaError as x_schema:
        raise JSONValidation('JSON schema error on {} configuration: {}'.format(key, x_schema.message))


def flag(value) -> bool:
    """
    Return boolean for configured flag, native or as ini string.

    :param value: configured value
    :return: boolean value
    """

    if isinstance(value, str):
        return value.strip().lower() in ('true', 'yes', 'on', '1')
    return bool(value)
