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

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from zkp_kyc.error import StoreState
from zkp_kyc.store.schema import Base


LOGGER = logging.getLogger(__name__)


class Store:
    """
    Durable store over a SQLAlchemy engine. Its uniqueness constraints, not any in-process state,
    are authoritative for nullifier consumption and request finalization.
    """

    DEFAULT_URL = 'sqlite:///zkp_kyc.db'

    def __init__(self, url: str = None, echo: bool = False) -> None:
        """
        Initializer. Retain configuration; do not connect.

        :param url: SQLAlchemy database URL (default local SQLite file zkp_kyc.db)
        :param echo: whether to echo SQL to the sqlalchemy.engine logger
        """

        LOGGER.debug('Store.__init__ >>> url: %s, echo: %s', url, echo)

        self._url = url or Store.DEFAULT_URL
        if self._url.startswith('postgres://'):  # some providers hand out the deprecated scheme
            self._url = self._url.replace('postgres://', 'postgresql://', 1)
        self._echo = echo
        self._engine = None
        self._sessionmaker = None

        LOGGER.debug('Store.__init__ <<<')

    @property
    def url(self) -> str:
        """
        Accessor for database URL.

        :return: database URL
        """

        return self._url

    @property
    def opened(self) -> bool:
        """
        Accessor for whether store is open.

        :return: whether store is open
        """

        return self._engine is not None

    @property
    def engine(self) -> Engine:
        """
        Accessor for engine; raise StoreState if store is closed.

        :return: SQLAlchemy engine
        """

        if not self._engine:
            LOGGER.debug('Store.engine <!< Store %s is closed', self.url)
            raise StoreState('Store {} is closed'.format(self.url))
        return self._engine

    async def __aenter__(self) -> 'Store':
        """
        Context manager entry. Open store, for closure on context manager exit.

        :return: current object
        """

        LOGGER.debug('Store.__aenter__ >>>')

        rv = await self.open()

        LOGGER.debug('Store.__aenter__ <<<')
        return rv

    async def open(self) -> 'Store':
        """
        Explicit entry. Connect and create any missing tables. Raise StoreState if already open.

        :return: current object
        """

        LOGGER.debug('Store.open >>>')

        if self._engine:
            LOGGER.debug('Store.open <!< Store %s is already open', self.url)
            raise StoreState('Store {} is already open'.format(self.url))

        kwargs = {'echo': self._echo}
        if self._url.startswith('sqlite'):
            kwargs['connect_args'] = {'check_same_thread': False}
            if self._url in ('sqlite://', 'sqlite:///:memory:'):
                kwargs['poolclass'] = StaticPool  # one shared connection keeps the in-memory database alive

        self._engine = create_engine(self._url, **kwargs)
        self._sessionmaker = sessionmaker(bind=self._engine, expire_on_commit=False)
        Base.metadata.create_all(bind=self._engine)

        LOGGER.debug('Store.open <<<')
        return self

    async def __aexit__(self, exc_type, exc, traceback) -> None:
        """
        Context manager exit. Close store.

        :param exc_type:
        :param exc:
        :param traceback:
        """

        LOGGER.debug('Store.__aexit__ >>>')

        await self.close()

        LOGGER.debug('Store.__aexit__ <<<')

    async def close(self) -> None:
        """
        Explicit exit. Dispose of engine and its connection pool.
        """

        LOGGER.debug('Store.close >>>')

        if self._engine:
            self._engine.dispose()
        self._engine = None
        self._sessionmaker = None

        LOGGER.debug('Store.close <<<')

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Yield session in a transaction: commit on normal exit, roll back on exception.

        Callers must not await inside the transaction; each transaction then runs to completion
        within one step of the event loop.

        :return: session in transaction
        """

        if not self._sessionmaker:
            LOGGER.debug('Store.transaction <!< Store %s is closed', self.url)
            raise StoreState('Store {} is closed'.format(self.url))

        with self._sessionmaker.begin() as session:
            yield session

    def __repr__(self) -> str:
        """
        Return representation.

        :return: string representation evaluating to construction call
        """

        return 'Store({}, {})'.format(self.url, self._echo)
