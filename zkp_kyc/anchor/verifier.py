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

from time import time
from typing import Callable, NamedTuple, Sequence

from sqlalchemy.orm import Session

from zkp_kyc.error import MalformedRequest, NullifierReuse, ValidationError
from zkp_kyc.field import Signal, VerificationType, to_field
from zkp_kyc.frill import Stopwatch
from zkp_kyc.ledger import VerificationLedger, VerificationRecord
from zkp_kyc.proofsys import ProofSystem


LOGGER = logging.getLogger(__name__)

# Metadata keys that each verification type records with its ledger entry
METADATA_KEYS = {
    VerificationType.AGE: (),
    VerificationType.CREDENTIAL_VALIDITY: (),
    VerificationType.REGION: ('requiredRegion',)
}


class VerificationResult(NamedTuple):
    """
    Outcome of a proof verification. A negative outcome is a result, not an error.
    """

    verified: bool
    attribute: str = None
    verification_id: str = None
    time_ms: int = None

    def to_dict(self) -> dict:
        return {
            'verified': self.verified,
            'attribute': self.attribute,
            'verificationId': self.verification_id,
            'timeMs': self.time_ms
        }


class VerificationGateway:
    """
    Gateway through which every proof submission passes: it screens nullifiers against the ledger,
    calls out to the proof system, and records only successful verifications.
    """

    def __init__(self, ledger: VerificationLedger, proof_system: ProofSystem, clock: Callable[[], float] = None) -> None:
        """
        Initializer.

        :param ledger: verification ledger
        :param proof_system: proof system
        :param clock: callable returning current epoch seconds (default time.time)
        """

        self._ledger = ledger
        self._proof_system = proof_system
        self._clock = clock or time

    @property
    def ledger(self) -> VerificationLedger:
        """
        Accessor for verification ledger.

        :return: verification ledger
        """

        return self._ledger

    @property
    def proof_system(self) -> ProofSystem:
        """
        Accessor for proof system.

        :return: proof system
        """

        return self._proof_system

    @staticmethod
    def _screen(vtype: VerificationType, proof: dict, public_signals: Sequence, nullifier: str) -> (list, str):
        """
        Check submission form; return public signals and nullifier as decimal strings.
        Raise MalformedRequest for missing or ill-formed content.
        """

        if vtype is None:
            raise MalformedRequest('Unknown verification type')
        if not proof or not isinstance(proof, dict):
            raise MalformedRequest('Missing proof')
        if not isinstance(public_signals, (list, tuple)) or len(public_signals) < Signal.COUNT:
            raise MalformedRequest('Public signals must list at least {} values'.format(Signal.COUNT))
        if nullifier is None or nullifier == '':
            raise MalformedRequest('Missing nullifier')

        try:
            signals = [str(to_field(s)) for s in public_signals]
            nullifier = str(to_field(nullifier))
        except ValidationError as x_field:
            raise MalformedRequest('Public signals do not parse: {}'.format(x_field.message))

        if signals[Signal.NULLIFIER] != nullifier:
            raise MalformedRequest('Nullifier does not match the nullifier that the proof commits to')
        return (signals, nullifier)

    async def verify(
            self,
            vtype: VerificationType,
            proof: dict,
            public_signals: Sequence[str],
            nullifier: str,
            metadata: dict = None,
            finalize: Callable[[Session, str], None] = None) -> VerificationResult:
        """
        Verify proof of predicate for verification type. On success, record it on the ledger,
        consuming its nullifier; on a valid proof of a false predicate or a cryptographically
        invalid proof, return a negative result and record nothing.

        Raise NullifierReuse if nullifier is already consumed, including where a concurrent
        verification consumes it first (DuplicateNullifier); MalformedRequest for bad submission;
        CircuitUnavailable or ProofTimeout from the proof system.

        :param vtype: verification type
        :param proof: proof
        :param public_signals: public signals, as per [predicate, parameter, nullifier]
        :param nullifier: nullifier that the proof commits to
        :param metadata: verification metadata; only keys that the type records are kept
        :param finalize: callable on session and verification identifier, to commit with the ledger entry
        :return: verification result
        """

        LOGGER.debug(
            'VerificationGateway.verify >>> vtype: %s, public_signals: %s, nullifier: %s, metadata: %s',
            vtype,
            public_signals,
            nullifier,
            metadata)

        try:
            (signals, nullifier) = VerificationGateway._screen(vtype, proof, public_signals, nullifier)
        except MalformedRequest as x_malformed:
            LOGGER.debug('VerificationGateway.verify <!< %s', x_malformed.message)
            raise

        if await self._ledger.exists(nullifier):
            LOGGER.info('Rejecting %s proof: nullifier %s already used', vtype.value, nullifier)
            LOGGER.debug('VerificationGateway.verify <!< Nullifier %s already used', nullifier)
            raise NullifierReuse('Nullifier {} already used: proof already submitted'.format(nullifier))

        stopwatch = Stopwatch()
        crypto_valid = await self._proof_system.verify(vtype.circuit, proof, signals)
        time_ms = stopwatch.elapsed_ms()
        predicate = signals[Signal.PREDICATE] == '1'

        if not (crypto_valid and predicate):
            rv = VerificationResult(False, None, None, time_ms)
            LOGGER.debug(
                'VerificationGateway.verify <<< %s (crypto valid: %s, predicate: %s)',
                rv,
                crypto_valid,
                predicate)
            return rv

        record = VerificationRecord(
            vtype.value,
            nullifier,
            signals,
            self._clock(),
            time_ms,
            {k: (metadata or {})[k] for k in METADATA_KEYS[vtype] if k in (metadata or {})})
        verification_id = await self._ledger.append(record, finalize)  # DuplicateNullifier if a race is lost

        rv = VerificationResult(True, vtype.attribute(signals), verification_id, time_ms)
        LOGGER.debug('VerificationGateway.verify <<< %s', rv)
        return rv
