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


import json
import logging

from datetime import datetime, timezone
from time import time
from typing import Callable

from zkp_kyc.anchor import CredentialIssuer, RequestOrchestrator, VerificationGateway
from zkp_kyc.error import JSONValidation, NoIssuerAvailable, NullifierReuse
from zkp_kyc.field import Hasher, Sha256Hasher, Signal, VerificationType
from zkp_kyc.ledger import VerificationLedger
from zkp_kyc.payload import validate
from zkp_kyc.proofsys import ProofSystem, SimulatedProofSystem, SnarkjsProofSystem
from zkp_kyc.signer import IssuerKey
from zkp_kyc.store import Store
from zkp_kyc.validcfg import flag, validate_config
from zkp_kyc.witness import DateParts


LOGGER = logging.getLogger(__name__)

DEFAULT_ISSUER_NAME = 'zkp_kyc issuer'


class KycService:
    """
    Service wiring the issuer, gateway, ledger, and request orchestrator over one store, hasher,
    proof system, and clock. It exposes their operations as tagged forms for any transport to wrap.
    """

    def __init__(
            self,
            config: dict = None,
            store: Store = None,
            hasher: Hasher = None,
            proof_system: ProofSystem = None,
            clock: Callable[[], float] = None) -> None:
        """
        Initializer. Validate configuration and build components; do not open store.

        :param config: configuration dict by section; e.g.,

        ::

            {
                'store': {
                    'url': 'sqlite:////var/lib/zkp_kyc/zkp_kyc.db',
                    'echo': False
                },
                'issuer': {
                    'name': 'Gov ID Authority',
                    'seed': 'issuer-seed-00000000000000000001',
                    'credential-validity-days': 365
                },
                'orchestrator': {
                    'request-ttl': 600,
                    'share-url-base': 'https://kyc.example.org/verify'
                },
                'proof-system': {
                    'kind': 'snarkjs',
                    'dir-circuits': '/opt/zkp_kyc/circuits',
                    'timeout': 30
                }
            }

        :param store: store, overriding configuration
        :param hasher: field hasher (default Sha256Hasher)
        :param proof_system: proof system, overriding configuration
        :param clock: callable returning current epoch seconds (default time.time)
        """

        LOGGER.debug(
            'KycService.__init__ >>> config: %s, store: %s, hasher: %s, proof_system: %s, clock: %s',
            {k: v for (k, v) in (config or {}).items() if k != 'issuer'},  # issuer seed stays out of the log
            store,
            hasher,
            proof_system,
            clock)

        self._config = config or {}
        for (section, value) in self._config.items():
            if section not in ('store', 'issuer', 'orchestrator', 'proof-system'):
                LOGGER.debug('KycService.__init__ <!< Unsupported configuration section %s', section)
                raise JSONValidation('Unsupported configuration section {}'.format(section))
            validate_config(section, value)

        cfg_store = self._config.get('store', {})
        cfg_issuer = self._config.get('issuer', {})
        cfg_orchestrator = self._config.get('orchestrator', {})

        self._clock = clock or time
        self._hasher = hasher or Sha256Hasher()
        self._store = store or Store(cfg_store.get('url', None), flag(cfg_store.get('echo', False)))
        self._proof_system = proof_system or KycService._proof_system_from_config(
            self._config.get('proof-system', {}),
            self._hasher)
        if isinstance(self._proof_system, SnarkjsProofSystem) and isinstance(self._hasher, Sha256Hasher):
            LOGGER.warning(
                'Compiled circuits hash with Poseidon: inject a matching Hasher, or commitments and nullifiers '
                'from issuance will not match proofs')

        self._issuer_key = IssuerKey.from_seed(cfg_issuer['seed']) if 'seed' in cfg_issuer else None
        self._issuer_name = cfg_issuer.get('name', DEFAULT_ISSUER_NAME)
        self._issuer = CredentialIssuer(
            self._store,
            self._hasher,
            [self._issuer_key] if self._issuer_key else None,
            self._clock,
            int(cfg_issuer.get('credential-validity-days', 365)))
        self._ledger = VerificationLedger(self._store)
        self._gateway = VerificationGateway(self._ledger, self._proof_system, self._clock)
        self._orchestrator = RequestOrchestrator(
            self._store,
            self._gateway,
            self._clock,
            float(cfg_orchestrator.get('request-ttl', 600)),
            cfg_orchestrator.get('share-url-base', None) or None)

        LOGGER.debug('KycService.__init__ <<<')

    @staticmethod
    def _proof_system_from_config(cfg: dict, hasher: Hasher) -> ProofSystem:
        """
        Return proof system per configuration: snarkjs over compiled circuits by default.

        :param cfg: proof-system configuration section
        :param hasher: field hasher, for simulated proofs
        :return: proof system
        """

        if cfg.get('kind', 'snarkjs') == 'simulated':
            if not cfg.get('secret', None):
                LOGGER.debug('KycService._proof_system_from_config <!< Simulated proof system needs secret')
                raise JSONValidation('Simulated proof system configuration needs secret')
            LOGGER.warning('Using simulated proof system: proofs are not zero-knowledge')
            return SimulatedProofSystem(cfg['secret'], hasher)
        return SnarkjsProofSystem(
            cfg.get('dir-circuits', 'circuits'),
            float(cfg.get('timeout', 30)),
            cfg.get('snarkjs', 'snarkjs'))

    @property
    def store(self) -> Store:
        """
        Accessor for store.

        :return: store
        """

        return self._store

    @property
    def issuer(self) -> CredentialIssuer:
        """
        Accessor for credential issuer.

        :return: credential issuer
        """

        return self._issuer

    @property
    def ledger(self) -> VerificationLedger:
        """
        Accessor for verification ledger.

        :return: verification ledger
        """

        return self._ledger

    @property
    def gateway(self) -> VerificationGateway:
        """
        Accessor for verification gateway.

        :return: verification gateway
        """

        return self._gateway

    @property
    def orchestrator(self) -> RequestOrchestrator:
        """
        Accessor for request orchestrator.

        :return: request orchestrator
        """

        return self._orchestrator

    @property
    def proof_system(self) -> ProofSystem:
        """
        Accessor for proof system.

        :return: proof system
        """

        return self._proof_system

    async def __aenter__(self) -> 'KycService':
        """
        Context manager entry. Open store, for closure on context manager exit.

        :return: current object
        """

        LOGGER.debug('KycService.__aenter__ >>>')

        rv = await self.open()

        LOGGER.debug('KycService.__aenter__ <<<')
        return rv

    async def open(self) -> 'KycService':
        """
        Explicit entry. Open store if it is not yet open.

        :return: current object
        """

        LOGGER.debug('KycService.open >>>')

        if not self._store.opened:
            await self._store.open()

        LOGGER.debug('KycService.open <<<')
        return self

    async def __aexit__(self, exc_type, exc, traceback) -> None:
        """
        Context manager exit. Close store.

        :param exc_type:
        :param exc:
        :param traceback:
        """

        LOGGER.debug('KycService.__aexit__ >>>')

        await self.close()

        LOGGER.debug('KycService.__aexit__ <<<')

    async def close(self) -> None:
        """
        Explicit exit. Close store.
        """

        LOGGER.debug('KycService.close >>>')

        await self._store.close()

        LOGGER.debug('KycService.close <<<')

    async def bootstrap(self) -> str:
        """
        Register configured issuer, if not yet registered. Raise NoIssuerAvailable if configuration
        specifies no issuer seed.

        :return: issuer identifier
        """

        LOGGER.debug('KycService.bootstrap >>>')

        if not self._issuer_key:
            LOGGER.debug('KycService.bootstrap <!< Configuration specifies no issuer seed')
            raise NoIssuerAvailable('Configuration specifies no issuer seed')
        rv = await self._issuer.register_issuer(self._issuer_name, self._issuer_key)

        LOGGER.debug('KycService.bootstrap <<< %s', rv)
        return rv

    async def history(self, limit: int = 50, offset: int = 0) -> dict:
        """
        Return page of verification history with statistics by type and pagination particulars.

        :param limit: page size
        :param offset: number of verifications to skip
        :return: dict on verifications, stats, pagination
        """

        LOGGER.debug('KycService.history >>> limit: %s, offset: %s', limit, offset)

        rv = {
            'verifications': [record.to_dict() for record in await self._ledger.paginate(limit, offset)],
            'stats': await self._ledger.aggregate_by_type(),
            'pagination': {
                'limit': limit,
                'offset': offset,
                'total': await self._ledger.total()
            }
        }

        LOGGER.debug('KycService.history <<< %s verifications', len(rv['verifications']))
        return rv

    async def generate_proof(self, vtype: VerificationType, private_witness: dict, public_witness: dict = None) -> dict:
        """
        Generate proof on private witness from issuance. For age proofs, public witness defaults to
        today's date and minimum age 18.

        :param vtype: verification type
        :param private_witness: private witness, as per issuance output
        :param public_witness: public witness for circuit
        :return: dict on proof, publicSignals, nullifier
        """

        LOGGER.debug('KycService.generate_proof >>> vtype: %s', vtype)  # private witness stays out of the log

        public_witness = dict(public_witness or {})
        if vtype == VerificationType.AGE:
            today = DateParts.of(datetime.fromtimestamp(self._clock(), timezone.utc).date())
            public_witness.setdefault('currentDate', today._asdict())
            public_witness.setdefault('minimumAge', 18)

        rv = await self._proof_system.prove(vtype.circuit, private_witness, public_witness)
        rv['nullifier'] = rv['publicSignals'][Signal.NULLIFIER]

        LOGGER.debug('KycService.generate_proof <<< public signals: %s', rv['publicSignals'])
        return rv

    async def process_post(self, form: dict) -> str:
        """
        Take a request from service wrapper POST and dispatch the applicable operation.
        Return (json) response arising from processing.

        Raise MalformedRequest for a form that does not validate; let other domain errors
        propagate, except that a used nullifier on proof verification or request completion
        yields a negative result bearing code NULLIFIER_REUSE.

        :param form: request form on which to operate, as per {'type': ..., 'data': {...}}
        :return: json response
        """

        LOGGER.debug('KycService.process_post >>> form type: %s', form.get('type', None) if isinstance(form, dict) else None)

        validate(form)
        data = form['data']

        if form['type'] == 'credential-issue':
            rv = (await self._issuer.issue(data)).to_dict()

        elif form['type'] == 'credential-check':
            rv = await self._issuer.check_commitment(data['commitment'])

        elif form['type'] == 'issuer-list':
            rv = {'issuers': await self._issuer.issuers()}

        elif form['type'] == 'proof-verify':
            try:
                rv = (await self._gateway.verify(
                    VerificationType.get(data['verificationType']),
                    data['proof'],
                    data['publicSignals'],
                    data['nullifier'],
                    data.get('metadata', None))).to_dict()
            except NullifierReuse as x_reuse:
                rv = {'verified': False, 'code': x_reuse.code, 'message': x_reuse.message}

        elif form['type'] == 'verification-history':
            rv = await self.history(data.get('limit', 50), data.get('offset', 0))

        elif form['type'] == 'request-create':
            info = await self._orchestrator.create(
                VerificationType.get(data['verificationType']),
                data.get('verifierName', None))
            rv = {**info.to_dict(), 'shareableCode': self._orchestrator.share_code(info.id)}

        elif form['type'] == 'request-get':
            rv = (await self._orchestrator.get(data['requestId'])).to_dict()

        elif form['type'] == 'request-complete':
            try:
                result = (await self._orchestrator.complete(
                    data['requestId'],
                    data['proof'],
                    data['publicSignals'],
                    data['nullifier'],
                    data.get('metadata', None))).to_dict()
            except NullifierReuse as x_reuse:  # request is failed by now
                result = {'verified': False, 'code': x_reuse.code, 'message': x_reuse.message}
            rv = {**result, 'requestId': data['requestId']}

        elif form['type'] == 'circuit-status':
            rv = {'circuits': self._proof_system.status()}

        else:  # 'proof-generate'; validate() admits no other type
            rv = await self.generate_proof(
                VerificationType.get(data['verificationType']),
                data['privateWitness'],
                data.get('publicWitness', None))

        LOGGER.debug('KycService.process_post <<< %s', form['type'])
        return json.dumps(rv)

    def __repr__(self) -> str:
        """
        Return representation.

        :return: string representation
        """

        return 'KycService({}, {})'.format(self._store, self._proof_system.__class__.__name__)
