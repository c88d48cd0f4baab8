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
import secrets

from datetime import datetime, timezone
from time import time
from typing import Callable, List, NamedTuple, Sequence

from sqlalchemy import select, update

from zkp_kyc.error import AbsentCredential, NoIssuerAvailable
from zkp_kyc.field import Hasher, commit, nullifier_base
from zkp_kyc.signer import IssuerKey, verify_signature
from zkp_kyc.store import Credential, Issuer, Store
from zkp_kyc.witness import DateParts, PrivateWitness, age_on, parse_attributes, region_code


LOGGER = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400
SALT_BITS = 128


class IssuedCredential(NamedTuple):
    """
    Issuance output for the prover: the private witness goes to the prover alone.
    """

    credential_id: str
    commitment: str
    private_witness: PrivateWitness
    public_assertion: dict
    issuer: dict
    issued_at: float
    expires_at: float

    def to_dict(self) -> dict:
        return {
            'credentialId': self.credential_id,
            'commitment': self.commitment,
            'privateWitness': self.private_witness.to_dict(),
            'publicAssertion': self.public_assertion,
            'issuer': self.issuer,
            'issuedAt': self.issued_at,
            'expiresAt': self.expires_at
        }


class CredentialIssuer:
    """
    Credential issuance service. Turns raw identity attributes into a commitment that the store
    keeps, and a private witness that only the prover keeps; the issuer signs the commitment.
    """

    def __init__(
            self,
            store: Store,
            hasher: Hasher,
            keys: Sequence[IssuerKey] = None,
            clock: Callable[[], float] = None,
            validity_days: int = 365) -> None:
        """
        Initializer. Retain signing keys for issuers that this service may act for.

        :param store: durable store
        :param hasher: field hasher
        :param keys: issuer signing keys
        :param clock: callable returning current epoch seconds (default time.time)
        :param validity_days: credential lifetime in days
        """

        LOGGER.debug(
            'CredentialIssuer.__init__ >>> store: %s, hasher: %s, keys: %s, clock: %s, validity_days: %s',
            store,
            hasher,
            keys,
            clock,
            validity_days)

        self._store = store
        self._hasher = hasher
        self._keys = {key.public_key: key for key in (keys or [])}
        self._clock = clock or time
        self._validity = validity_days * SECONDS_PER_DAY

        LOGGER.debug('CredentialIssuer.__init__ <<<')

    async def register_issuer(self, name: str, key: IssuerKey) -> str:
        """
        Register issuer on name and signing key, and hold the key for issuance. Registration
        is idempotent on public key: return identifier of any existing issuer on it.

        :param name: issuer name
        :param key: issuer signing key
        :return: issuer identifier
        """

        LOGGER.debug('CredentialIssuer.register_issuer >>> name: %s, key: %s', name, key)

        (x, y) = key.public_key
        self._keys[key.public_key] = key
        with self._store.transaction() as session:
            row = session.execute(
                select(Issuer).where(Issuer.public_key_x == x, Issuer.public_key_y == y)
            ).scalar_one_or_none()
            if row is None:
                row = Issuer(name=name, public_key_x=x, public_key_y=y, active=True, created_at=self._clock())
                session.add(row)
                session.flush()
                LOGGER.info('Registered issuer %s on public key %s', name, key.public_key)
            rv = row.id

        LOGGER.debug('CredentialIssuer.register_issuer <<< %s', rv)
        return rv

    async def deactivate_issuer(self, issuer_id: str) -> None:
        """
        Deactivate issuer; credentials already issued stand. Raise NoIssuerAvailable for no such issuer.

        :param issuer_id: issuer identifier
        """

        LOGGER.debug('CredentialIssuer.deactivate_issuer >>> issuer_id: %s', issuer_id)

        with self._store.transaction() as session:
            count = session.execute(update(Issuer).where(Issuer.id == issuer_id).values(active=False)).rowcount
        if not count:
            LOGGER.debug('CredentialIssuer.deactivate_issuer <!< No such issuer %s', issuer_id)
            raise NoIssuerAvailable('No such issuer {}'.format(issuer_id))

        LOGGER.debug('CredentialIssuer.deactivate_issuer <<<')

    async def issuers(self) -> List[dict]:
        """
        Return active issuers, oldest first.

        :return: list of dicts on id, name, publicKey [x, y], createdAt
        """

        LOGGER.debug('CredentialIssuer.issuers >>>')

        with self._store.transaction() as session:
            rows = session.execute(
                select(Issuer).where(Issuer.active.is_(True)).order_by(Issuer.created_at, Issuer.id)
            ).scalars().all()
            rv = [
                {
                    'id': row.id,
                    'name': row.name,
                    'publicKey': [row.public_key_x, row.public_key_y],
                    'createdAt': row.created_at
                } for row in rows
            ]

        LOGGER.debug('CredentialIssuer.issuers <<< %s', rv)
        return rv

    async def issue(self, raw_attrs: dict) -> IssuedCredential:
        """
        Issue credential on raw attributes; e.g.,

        ::

            {
                'name': 'Asha Rao',
                'dateOfBirth': '1990-05-14',
                'identityNumber': '234567890123',
                'postalCode': '560001'
            }

        Raise ValidationError for bad attributes, NoIssuerAvailable if no active issuer is on
        a signing key that this service holds.

        Store only the commitment and its issuance particulars, never the attributes. Issuing twice
        on the same attributes yields the same commitment: return the existing credential identifier,
        with a fresh salt and nullifier base.

        :param raw_attrs: raw attributes
        :return: issued credential
        """

        LOGGER.debug('CredentialIssuer.issue >>>')  # raw attributes stay out of the log

        now = self._clock()
        day = datetime.fromtimestamp(now, timezone.utc).date()
        today = DateParts.of(day)
        attrs = parse_attributes(raw_attrs or {}, day)

        commitment = commit(self._hasher, attrs.dob, attrs.digits)
        salt = secrets.randbits(SALT_BITS)
        witness = PrivateWitness(
            attrs.dob,
            list(attrs.digits),
            age_on(attrs.dob, today),
            int(attrs.postal_code or 0),
            region_code(attrs.postal_code),
            salt,
            nullifier_base(self._hasher, commitment, salt))

        with self._store.transaction() as session:
            issuer = None
            for row in session.execute(
                    select(Issuer).where(Issuer.active.is_(True)).order_by(Issuer.created_at, Issuer.id)).scalars():
                if (row.public_key_x, row.public_key_y) in self._keys:
                    issuer = row
                    break
            if issuer is None:
                LOGGER.debug('CredentialIssuer.issue <!< No active issuer on a held signing key')
                raise NoIssuerAvailable('No active issuer available')

            credential = session.execute(
                select(Credential).where(Credential.commitment == str(commitment))
            ).scalar_one_or_none()
            if credential is None:
                credential = Credential(
                    issuer_id=issuer.id,
                    commitment=str(commitment),
                    credential_type='identity',
                    issued_at=now,
                    expires_at=now + self._validity,
                    revoked=False)
                session.add(credential)
                session.flush()
            else:
                LOGGER.info('Commitment already on credential %s: reissuing witness only', credential.id)

            key = self._keys[(issuer.public_key_x, issuer.public_key_y)]
            rv = IssuedCredential(
                credential.id,
                str(commitment),
                witness,
                {
                    'commitment': str(commitment),
                    'issuerPubKey': list(key.public_key),
                    'signature': key.sign(commitment),
                    'currentDate': today._asdict()
                },
                {'id': issuer.id, 'name': issuer.name},
                credential.issued_at,
                credential.expires_at)

        LOGGER.debug('CredentialIssuer.issue <<< credential %s', rv.credential_id)
        return rv

    async def check_commitment(self, commitment: str) -> dict:
        """
        Return credential status on commitment: valid iff credential exists, is not revoked,
        and is not expired.

        :param commitment: credential commitment
        :return: dict on valid and, for an existing credential, issuedAt, expiresAt, revoked
        """

        LOGGER.debug('CredentialIssuer.check_commitment >>> commitment: %s', commitment)

        with self._store.transaction() as session:
            row = session.execute(
                select(Credential).where(Credential.commitment == str(commitment))
            ).scalar_one_or_none()
            if row is None:
                rv = {'valid': False}
            else:
                rv = {
                    'valid': not row.revoked and (row.expires_at is None or row.expires_at > self._clock()),
                    'issuedAt': row.issued_at,
                    'expiresAt': row.expires_at,
                    'revoked': row.revoked
                }

        LOGGER.debug('CredentialIssuer.check_commitment <<< %s', rv)
        return rv

    async def revoke(self, commitment: str) -> None:
        """
        Revoke credential on commitment. Verifications already on the ledger stand: the ledger
        does not link them to credentials. Raise AbsentCredential for no such credential.

        :param commitment: credential commitment
        """

        LOGGER.debug('CredentialIssuer.revoke >>> commitment: %s', commitment)

        with self._store.transaction() as session:
            count = session.execute(
                update(Credential).where(Credential.commitment == str(commitment)).values(revoked=True)
            ).rowcount
        if not count:
            LOGGER.debug('CredentialIssuer.revoke <!< No credential on commitment %s', commitment)
            raise AbsentCredential('No credential on commitment {}'.format(commitment))

        LOGGER.info('Revoked credential on commitment %s', commitment)
        LOGGER.debug('CredentialIssuer.revoke <<<')

    @staticmethod
    def verify_assertion(assertion: dict) -> bool:
        """
        Return whether issuer signature on public assertion is good.

        :param assertion: public assertion, as per issue() output
        :return: whether signature verifies against the issuer public key and commitment
        """

        try:
            return verify_signature(
                assertion['issuerPubKey'],
                int(assertion['commitment']),
                assertion['signature'])
        except (KeyError, TypeError, ValueError):
            return False
