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

from enum import Enum
from time import time
from typing import Callable, List, NamedTuple, Sequence

from base58 import BITCOIN_ALPHABET
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from zkp_kyc.anchor.verifier import VerificationGateway, VerificationResult
from zkp_kyc.error import (
    AlreadyFinalized,
    MalformedRequest,
    NullifierReuse,
    RequestExpired,
    RequestNotFound,
    StoreState)
from zkp_kyc.field import VerificationType
from zkp_kyc.store import Store, VerificationRequest


LOGGER = logging.getLogger(__name__)

CODE_ALPHABET = BITCOIN_ALPHABET.decode('ascii')
CODE_LENGTH = 8
CODE_ATTEMPTS = 8
DEFAULT_VERIFIER_NAME = 'Anonymous Verifier'


class RequestStatus(Enum):
    """
    Verification request status: pending until exactly one transition to a terminal status.
    """

    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'
    EXPIRED = 'expired'

    @staticmethod
    def get(token: str) -> 'RequestStatus':
        """
        Return status for input value, None for no such status.

        :param token: status value
        :return: status enum member or None
        """

        for status in RequestStatus:
            if status.value == token:
                return status
        return None

    def terminal(self) -> bool:
        """
        Return whether status is terminal.

        :return: whether status is other than pending
        """

        return self != RequestStatus.PENDING


class RequestInfo(NamedTuple):
    """
    Verification request as its verifier and prover see it.
    """

    id: str
    verification_type: str
    verifier_name: str
    status: RequestStatus
    created_at: float
    expires_at: float
    completed_at: float = None
    verification_id: str = None

    @staticmethod
    def of(row: VerificationRequest, now: float = None) -> 'RequestInfo':
        """
        Return request info for stored row, projecting a pending request past expiry as expired
        if current time is given.

        :param row: stored verification request
        :param now: current epoch seconds
        :return: request info
        """

        status = RequestStatus.get(row.status)
        if status == RequestStatus.PENDING and now is not None and now >= row.expires_at:
            status = RequestStatus.EXPIRED
        return RequestInfo(
            row.id,
            row.verification_type,
            row.verifier_name,
            status,
            row.created_at,
            row.expires_at,
            row.completed_at,
            row.verification_id)

    def to_dict(self) -> dict:
        return {
            'requestId': self.id,
            'type': self.verification_type,
            'verifierName': self.verifier_name,
            'status': self.status.value,
            'createdAt': self.created_at,
            'expiresAt': self.expires_at,
            'completedAt': self.completed_at,
            'verificationId': self.verification_id
        }


class RequestOrchestrator:
    """
    Asynchronous verification request handshake. A verifier creates a request and shares its
    short code out of band; a prover with no live connection to the verifier fetches it, proves,
    and submits. Each request reaches exactly one terminal status.
    """

    def __init__(
            self,
            store: Store,
            gateway: VerificationGateway,
            clock: Callable[[], float] = None,
            ttl: float = 600,
            share_url_base: str = None) -> None:
        """
        Initializer.

        :param store: durable store
        :param gateway: verification gateway for proof submissions
        :param clock: callable returning current epoch seconds (default time.time)
        :param ttl: request lifetime in seconds
        :param share_url_base: base URL for shareable codes, None for bare request identifiers
        """

        LOGGER.debug(
            'RequestOrchestrator.__init__ >>> store: %s, gateway: %s, clock: %s, ttl: %s, share_url_base: %s',
            store,
            gateway,
            clock,
            ttl,
            share_url_base)

        self._store = store
        self._gateway = gateway
        self._clock = clock or time
        self._ttl = ttl
        self._share_url_base = share_url_base

        LOGGER.debug('RequestOrchestrator.__init__ <<<')

    @property
    def ttl(self) -> float:
        """
        Accessor for request lifetime in seconds.

        :return: request lifetime
        """

        return self._ttl

    def share_code(self, request_id: str) -> str:
        """
        Return shareable code for request: URL on configured base, else the bare request identifier.

        :param request_id: request identifier
        :return: shareable code
        """

        if not self._share_url_base:
            return request_id
        return '{}/{}'.format(self._share_url_base.rstrip('/'), request_id)

    async def create(self, vtype: VerificationType, verifier_name: str = None) -> RequestInfo:
        """
        Create pending verification request of input type on a fresh short code.

        :param vtype: verification type
        :param verifier_name: verifier name, default 'Anonymous Verifier'
        :return: request info
        """

        LOGGER.debug('RequestOrchestrator.create >>> vtype: %s, verifier_name: %s', vtype, verifier_name)

        if vtype is None:
            LOGGER.debug('RequestOrchestrator.create <!< Unknown verification type')
            raise MalformedRequest('Unknown verification type')

        now = self._clock()
        for attempt in range(CODE_ATTEMPTS):
            request_id = ''.join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
            try:
                with self._store.transaction() as session:
                    row = VerificationRequest(
                        id=request_id,
                        verification_type=vtype.value,
                        verifier_name=(verifier_name or '').strip() or DEFAULT_VERIFIER_NAME,
                        status=RequestStatus.PENDING.value,
                        created_at=now,
                        expires_at=now + self._ttl)
                    session.add(row)
                    session.flush()
                    rv = RequestInfo.of(row)
                break
            except IntegrityError:
                LOGGER.warning('Request code collision on attempt %s: retrying', attempt + 1)
        else:
            LOGGER.debug('RequestOrchestrator.create <!< No free request code after %s attempts', CODE_ATTEMPTS)
            raise StoreState('No free request code after {} attempts'.format(CODE_ATTEMPTS))

        LOGGER.debug('RequestOrchestrator.create <<< %s', rv)
        return rv

    def _row(self, session: Session, request_id: str) -> VerificationRequest:
        row = session.get(VerificationRequest, request_id)
        if row is None:
            LOGGER.debug('RequestOrchestrator._row <!< No verification request %s', request_id)
            raise RequestNotFound('No verification request {}'.format(request_id))
        return row

    @staticmethod
    def _transition(session: Session, request_id: str, status: RequestStatus, **values) -> None:
        """
        Move pending request to terminal status. Raise AlreadyFinalized if it is no longer pending:
        a concurrent call finalized it first.
        """

        count = session.execute(
            update(VerificationRequest)
                .where(VerificationRequest.id == request_id)
                .where(VerificationRequest.status == RequestStatus.PENDING.value)
                .values(status=status.value, **values)
                .execution_options(synchronize_session=False)
        ).rowcount
        if not count:
            LOGGER.info('Request %s already finalized: not marking %s', request_id, status.value)
            raise AlreadyFinalized('Verification request {} already finalized'.format(request_id))

    def _finalize(self, request_id: str, status: RequestStatus) -> None:
        with self._store.transaction() as session:
            RequestOrchestrator._transition(session, request_id, status, completed_at=self._clock())

    async def get(self, request_id: str) -> RequestInfo:
        """
        Return verification request, as pending until its expiry and then as expired, whether or not
        any operation has yet recorded its expiry. Raise RequestNotFound for no such request.

        :param request_id: request identifier
        :return: request info
        """

        LOGGER.debug('RequestOrchestrator.get >>> request_id: %s', request_id)

        with self._store.transaction() as session:
            rv = RequestInfo.of(self._row(session, request_id), self._clock())

        LOGGER.debug('RequestOrchestrator.get <<< %s', rv)
        return rv

    async def complete(
            self,
            request_id: str,
            proof: dict,
            public_signals: Sequence[str],
            nullifier: str,
            metadata: dict = None) -> VerificationResult:
        """
        Complete verification request on proof submission, verifying through the gateway for the
        request's own verification type.

        A successful verification marks the request completed in the same transaction that records
        the verification; a negative result or a used nullifier marks it failed. Fatal errors
        (CircuitUnavailable, ProofTimeout, MalformedRequest) propagate and leave it pending.

        Raise RequestNotFound for no such request, AlreadyFinalized if it is terminal or a concurrent
        call finalizes it first, RequestExpired if its lifetime has elapsed, NullifierReuse on a used
        nullifier.

        :param request_id: request identifier
        :param proof: proof
        :param public_signals: public signals
        :param nullifier: nullifier
        :param metadata: verification metadata
        :return: verification result
        """

        LOGGER.debug(
            'RequestOrchestrator.complete >>> request_id: %s, public_signals: %s, nullifier: %s, metadata: %s',
            request_id,
            public_signals,
            nullifier,
            metadata)

        with self._store.transaction() as session:
            row = self._row(session, request_id)
            (status, expires_at, vtype) = (row.status, row.expires_at, VerificationType.get(row.verification_type))

        if status != RequestStatus.PENDING.value:
            LOGGER.debug('RequestOrchestrator.complete <!< Request %s already %s', request_id, status)
            raise AlreadyFinalized('Verification request {} already {}'.format(request_id, status))

        if self._clock() >= expires_at:
            self._finalize(request_id, RequestStatus.EXPIRED)
            LOGGER.info('Request %s expired before completion', request_id)
            LOGGER.debug('RequestOrchestrator.complete <!< Request %s expired', request_id)
            raise RequestExpired('Verification request {} expired'.format(request_id))

        def finalize(session: Session, verification_id: str) -> None:
            RequestOrchestrator._transition(
                session,
                request_id,
                RequestStatus.COMPLETED,
                completed_at=self._clock(),
                verification_id=verification_id)

        try:
            rv = await self._gateway.verify(vtype, proof, public_signals, nullifier, metadata, finalize)
        except NullifierReuse as x_reuse:
            self._finalize(request_id, RequestStatus.FAILED)  # AlreadyFinalized if a concurrent call won
            LOGGER.debug('RequestOrchestrator.complete <!< %s', x_reuse.message)
            raise

        if not rv.verified:
            self._finalize(request_id, RequestStatus.FAILED)

        LOGGER.debug('RequestOrchestrator.complete <<< %s', rv)
        return rv

    async def pending(self, verifier_name: str) -> List[RequestInfo]:
        """
        Return live pending requests for verifier, most recent first.

        :param verifier_name: verifier name
        :return: list of request info
        """

        LOGGER.debug('RequestOrchestrator.pending >>> verifier_name: %s', verifier_name)

        now = self._clock()
        with self._store.transaction() as session:
            rows = session.execute(
                select(VerificationRequest)
                    .where(VerificationRequest.verifier_name == verifier_name)
                    .where(VerificationRequest.status == RequestStatus.PENDING.value)
                    .where(VerificationRequest.expires_at > now)
                    .order_by(VerificationRequest.created_at.desc(), VerificationRequest.id)
            ).scalars().all()
            rv = [RequestInfo.of(row, now) for row in rows]

        LOGGER.debug('RequestOrchestrator.pending <<< %s requests', len(rv))
        return rv

    async def prune(self, grace: float = 0) -> int:
        """
        Delete requests that never completed and whose expiry passed over grace seconds ago.

        :param grace: seconds past expiry to retain requests
        :return: number of requests deleted
        """

        LOGGER.debug('RequestOrchestrator.prune >>> grace: %s', grace)

        with self._store.transaction() as session:
            rv = session.execute(
                delete(VerificationRequest)
                    .where(VerificationRequest.status.in_([RequestStatus.PENDING.value, RequestStatus.EXPIRED.value]))
                    .where(VerificationRequest.expires_at < self._clock() - grace)
                    .execution_options(synchronize_session=False)
            ).rowcount

        LOGGER.info('Pruned %s stale verification requests', rv)
        LOGGER.debug('RequestOrchestrator.prune <<< %s', rv)
        return rv
