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
import re

from datetime import date, datetime
from typing import NamedTuple, Sequence

from zkp_kyc.error import ValidationError


LOGGER = logging.getLogger(__name__)

IDENTITY_NUMBER_PATTERN = '[0-9]{12}'
POSTAL_CODE_PATTERN = '[0-9]+'


class DateParts(NamedTuple):
    """
    Calendar date as circuit inputs.
    """

    year: int
    month: int
    day: int

    @staticmethod
    def of(day: date) -> 'DateParts':
        return DateParts(day.year, day.month, day.day)


class Attributes(NamedTuple):
    """
    Validated raw attributes, as parsed from issuance input. Never persisted.
    """

    name: str
    dob: DateParts
    digits: Sequence[int]
    postal_code: str


class PrivateWitness(NamedTuple):
    """
    Private witness bundle that the prover holds: attribute values, salt, and nullifier base.
    """

    dob: DateParts
    digits: Sequence[int]
    age: int
    postal_code: int
    region_code: int
    salt: int
    nullifier_base: int

    def to_dict(self) -> dict:
        """
        Return dict representation, large integers as decimal strings.

        :return: dict representation
        """

        return {
            'dateOfBirth': self.dob._asdict(),
            'identityDigits': list(self.digits),
            'age': self.age,
            'postalCode': self.postal_code,
            'regionCode': self.region_code,
            'salt': str(self.salt),
            'nullifierBase': str(self.nullifier_base)
        }

    @staticmethod
    def from_dict(value: dict) -> 'PrivateWitness':
        """
        Return private witness from its dict representation.

        :param value: dict representation, as per to_dict()
        :return: private witness
        """

        return PrivateWitness(
            DateParts(**value['dateOfBirth']),
            list(value['identityDigits']),
            int(value['age']),
            int(value['postalCode']),
            int(value['regionCode']),
            int(value['salt']),
            int(value['nullifierBase']))


def parse_dob(value: str, today: date) -> DateParts:
    """
    Parse date of birth; raise ValidationError unless it is a real calendar date (YYYY-MM-DD)
    no later than today.

    :param value: date of birth string
    :param today: current date
    :return: date of birth parts
    """

    try:
        dob = datetime.strptime(value or '', '%Y-%m-%d').date()
    except (TypeError, ValueError):
        LOGGER.debug('parse_dob <!< Bad date of birth %s', value)
        raise ValidationError('Invalid date of birth format: use a real calendar date YYYY-MM-DD')
    if dob > today:
        LOGGER.debug('parse_dob <!< Date of birth %s is in the future', value)
        raise ValidationError('Date of birth cannot be in the future')
    return DateParts.of(dob)


def parse_identity_number(value: str) -> list:
    """
    Parse identity number into digits; raise ValidationError unless it has exactly 12 digits.

    :param value: identity number string
    :return: list of digits
    """

    if not isinstance(value, str) or not re.fullmatch(IDENTITY_NUMBER_PATTERN, value):
        raise ValidationError('Invalid identity number format: must be 12 digits')
    return [int(d) for d in value]


def parse_attributes(raw: dict, today: date) -> Attributes:
    """
    Validate and parse raw credential attributes.

    :param raw: raw attributes dict on keys 'name', 'dateOfBirth', 'identityNumber', and optional 'postalCode'
    :param today: current date, bounding date of birth
    :return: validated attributes
    """

    name = raw.get('name') or ''
    if not isinstance(name, str):
        raise ValidationError('Invalid name: must be a string')
    name = name.strip()
    if not name:
        raise ValidationError('Missing required attribute: name')

    postal_code = str(raw.get('postalCode') or '').strip()
    if postal_code and not re.fullmatch(POSTAL_CODE_PATTERN, postal_code):
        raise ValidationError('Invalid postal code {}: must be numeric'.format(postal_code))

    return Attributes(
        name,
        parse_dob(raw.get('dateOfBirth'), today),
        parse_identity_number(raw.get('identityNumber')),
        postal_code)


def age_on(dob: DateParts, today: DateParts) -> int:
    """
    Return age in whole years on a given day.

    :param dob: date of birth
    :param today: day of interest
    :return: age in years
    """

    rv = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        rv -= 1
    return rv


def region_code(postal_code: str) -> int:
    """
    Return region code from postal code: its leading two digits mark its region; 0 for none.

    :param postal_code: postal code
    :return: region code
    """

    if not postal_code or len(postal_code) < 2:
        return 0
    return int(postal_code[:2])
