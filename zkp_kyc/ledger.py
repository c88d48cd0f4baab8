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

from typing import Callable, List, NamedTuple, Sequence
from uuid import uuid4

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from zkp_kyc.error import DuplicateNullifier
from zkp_kyc.store import Store, Verification


LOGGER = logging.getLogger(__name__)


class VerificationRecord(NamedTuple):
    """
    Ledger record of an accepted verification.
    """

    verification_type: str
    nullifier: str
    public_signals: Sequence[str]
    verified_at: float
    verification_time_ms: int = None
    metadata: dict = None
    result: bool = True
    id: str = None

    @staticmethod
    def of(row: Verification) -> 'VerificationRecord':
        return VerificationRecord(
            row.verification_type,
            row.nullifier,
            list(row.public_signals),
            row.verified_at,
            row.verification_time_ms,
            dict(row.meta or {}),
            bool(row.result),
            row.id)

    def to_dict(self) -> dict:
        """
        Return history entry for verifiers: no nullifier, no public signals.

        :return: dict representation
        """

        return {
            'id': self.id,
            'type': self.verification_type,
            'result': self.result,
            'verifiedAt': self.verified_at,
            'verificationTimeMs': self.verification_time_ms,
            'metadata': self.metadata or {}
        }


class VerificationLedger:
    """
    Append-only ledger of accepted verifications keyed by nullifier: the source of replay
    protection and verification statistics.
    """

    def __init__(self, store: Store) -> None:
        """
        Initializer.

        :param store: durable store
        """

        self._store = store

    async def exists(self, nullifier: str) -> bool:
        """
        Return whether a verification on input nullifier is on the ledger. A fast path only:
        append() enforces uniqueness authoritatively.

        :param nullifier: nullifier
        :return: whether nullifier is consumed
        """

        LOGGER.debug('VerificationLedger.exists >>> nullifier: %s', nullifier)

        with self._store.transaction() as session:
            rv = session.execute(
                select(Verification.id).where(Verification.nullifier == str(nullifier)).limit(1)
            ).scalar() is not None

        LOGGER.debug('VerificationLedger.exists <<< %s', rv)
        return rv

    async def append(self, record: VerificationRecord, finalize: Callable[[Session, str], None] = None) -> str:
        """
        Append verification record; return its identifier. Raise DuplicateNullifier if the ledger
        already holds its nullifier.

        Any finalize callable runs in the same transaction as the append, on the session and
        the new verification identifier; if it raises, the append rolls back with it.

        :param record: verification record
        :param finalize: callable to commit atomically with the append
        :return: verification identifier
        """

        LOGGER.debug('VerificationLedger.append >>> record: %s, finalize: %s', record, finalize)

        rv = record.id or uuid4().hex
        try:
            with self._store.transaction() as session:
                session.add(Verification(
                    id=rv,
                    verification_type=record.verification_type,
                    nullifier=str(record.nullifier),
                    public_signals=[str(s) for s in record.public_signals],
                    verified_at=record.verified_at,
                    verification_time_ms=record.verification_time_ms,
                    result=record.result,
                    meta=record.metadata or {}))
                session.flush()
                if finalize:
                    finalize(session, rv)
        except IntegrityError as x_integrity:
            LOGGER.debug(
                'VerificationLedger.append <!< Nullifier %s already on ledger: %s',
                record.nullifier,
                x_integrity.orig)
            raise DuplicateNullifier('Nullifier {} already on ledger'.format(record.nullifier))

        LOGGER.debug('VerificationLedger.append <<< %s', rv)
        return rv

    async def paginate(self, limit: int = 50, offset: int = 0) -> List[VerificationRecord]:
        """
        Return page of verification records, most recent first.

        :param limit: maximum number of records
        :param offset: number of records to skip
        :return: list of verification records
        """

        LOGGER.debug('VerificationLedger.paginate >>> limit: %s, offset: %s', limit, offset)

        with self._store.transaction() as session:
            rows = session.execute(
                select(Verification)
                    .order_by(Verification.verified_at.desc(), Verification.id)
                    .limit(max(limit, 0))
                    .offset(max(offset, 0))
            ).scalars().all()
            rv = [VerificationRecord.of(row) for row in rows]

        LOGGER.debug('VerificationLedger.paginate <<< %s records', len(rv))
        return rv

    async def aggregate_by_type(self) -> dict:
        """
        Return statistics by verification type; e.g.,

        ::

            {
                'age': {
                    'count': 3,
                    'successRate': 1.0,
                    'avgVerifyTimeMs': 41.3
                },
                ...
            }

        :return: dict mapping verification types to their statistics
        """

        LOGGER.debug('VerificationLedger.aggregate_by_type >>>')

        with self._store.transaction() as session:
            rows = session.execute(
                select(
                    Verification.verification_type,
                    func.count(Verification.id),
                    func.sum(case((Verification.result.is_(True), 1), else_=0)),
                    func.avg(Verification.verification_time_ms))
                .group_by(Verification.verification_type)
            ).all()

        rv = {
            vtype: {
                'count': count,
                'successRate': (successes or 0) / count if count else 0.0,
                'avgVerifyTimeMs': float(avg_ms) if avg_ms is not None else None
            } for (vtype, count, successes, avg_ms) in rows
        }

        LOGGER.debug('VerificationLedger.aggregate_by_type <<< %s', rv)
        return rv

    async def total(self) -> int:
        """
        Return number of verifications on the ledger.

        :return: record count
        """

        with self._store.transaction() as session:
            return session.execute(select(func.count(Verification.id))).scalar()
