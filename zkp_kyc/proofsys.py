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


import asyncio
import hashlib
import hmac
import json
import logging

from os.path import isfile, join
from tempfile import TemporaryDirectory
from typing import Sequence

from zkp_kyc.error import CircuitUnavailable, MalformedRequest, ProofTimeout
from zkp_kyc.field import Hasher, Sha256Hasher, VerificationType, commit, derive_nullifier
from zkp_kyc.witness import DateParts, PrivateWitness, age_on


LOGGER = logging.getLogger(__name__)

CIRCUITS = tuple(vtype.circuit for vtype in VerificationType)


def circuit2type(circuit: str) -> VerificationType:
    """
    Return verification type that input circuit proves; raise CircuitUnavailable for no such circuit.

    :param circuit: circuit name
    :return: verification type
    """

    for vtype in VerificationType:
        if vtype.circuit == circuit:
            return vtype
    raise CircuitUnavailable('No such circuit {}'.format(circuit))


def circuit_input(circuit: str, private_witness: dict, public_witness: dict) -> dict:
    """
    Map private and public witness onto circuit input signals.

    Public witness keys by circuit:
      - age_verification: 'currentDate' {year, month, day}, 'minimumAge' (default 18)
      - credential_validity: 'commitment'
      - region_verification: 'requiredRegion'

    :param circuit: circuit name
    :param private_witness: private witness as per PrivateWitness.to_dict()
    :param public_witness: public witness
    :return: circuit input signals
    """

    try:
        witness = PrivateWitness.from_dict(private_witness)
        if circuit == VerificationType.AGE.circuit:
            today = DateParts(**public_witness['currentDate'])
            return {
                'birthYear': witness.dob.year,
                'birthMonth': witness.dob.month,
                'birthDay': witness.dob.day,
                'nullifierBase': str(witness.nullifier_base),
                'currentYear': today.year,
                'currentMonth': today.month,
                'currentDay': today.day,
                'minimumAge': int(public_witness.get('minimumAge', 18))
            }
        if circuit == VerificationType.CREDENTIAL_VALIDITY.circuit:
            return {
                'identity': list(witness.digits),
                'nullifierBase': str(witness.nullifier_base),
                'credentialCommitment': str(public_witness.get('commitment', '0'))
            }
        if circuit == VerificationType.REGION.circuit:
            return {
                'postalCode': witness.postal_code,
                'nullifierBase': str(witness.nullifier_base),
                'requiredRegion': int(public_witness['requiredRegion'])
            }
    except (KeyError, TypeError, ValueError) as x_input:
        LOGGER.debug('circuit_input <!< bad witness for circuit %s: %s', circuit, x_input)
        raise MalformedRequest('Bad witness for circuit {}: {}'.format(circuit, x_input))

    raise CircuitUnavailable('No such circuit {}'.format(circuit))


class ProofSystem:
    """
    Base class for the external zk-SNARK prove/verify capability.
    """

    async def prove(self, circuit: str, private_witness: dict, public_witness: dict) -> dict:
        """
        Generate proof; return dict on 'proof' and 'publicSignals'. Raise CircuitUnavailable
        if circuit artifacts are absent.

        :param circuit: circuit name
        :param private_witness: private witness, as per PrivateWitness.to_dict()
        :param public_witness: public witness
        :return: {'proof': dict, 'publicSignals': list of str}
        """

        raise NotImplementedError

    async def verify(self, circuit: str, proof: dict, public_signals: Sequence[str]) -> bool:
        """
        Verify proof against public signals. Raise CircuitUnavailable if circuit artifacts
        are absent, or MalformedRequest for inputs that do not parse as a proof.

        :param circuit: circuit name
        :param proof: proof
        :param public_signals: public signals
        :return: whether proof is cryptographically valid
        """

        raise NotImplementedError

    def status(self) -> dict:
        """
        Return readiness by circuit, as per {circuit: {'ready': bool, ...}}.

        :return: circuit status dict
        """

        raise NotImplementedError

    def ready(self, circuit: str) -> bool:
        """
        Return whether circuit is provisioned.

        :param circuit: circuit name
        :return: whether circuit is ready
        """

        return self.status().get(circuit, {}).get('ready', False)


class SimulatedProofSystem(ProofSystem):
    """
    Proof system simulation for demonstration and test, where no circuit is compiled.
    It evaluates each predicate directly on the witness and binds the resulting public
    signals to the circuit with an HMAC under its secret. It proves nothing to a party
    without the secret.
    """

    def __init__(
            self,
            secret: str,
            hasher: Hasher = None,
            circuits: Sequence[str] = None,
            delay: float = 0.0) -> None:
        """
        Initializer.

        :param secret: HMAC secret shared by proving and verifying sides
        :param hasher: field hasher for nullifiers and commitments (default Sha256Hasher)
        :param circuits: provisioned circuits (default all)
        :param delay: seconds to yield to the event loop in each verify call
        """

        self._secret = secret.encode()
        self._hasher = hasher or Sha256Hasher()
        self._circuits = set(CIRCUITS if circuits is None else circuits)
        self._delay = delay

    def _digest(self, circuit: str, public_signals: Sequence[str]) -> str:
        return hmac.new(
            self._secret,
            json.dumps([circuit, [str(s) for s in public_signals]]).encode(),
            hashlib.sha256).hexdigest()

    def _check(self, circuit: str) -> None:
        if circuit not in self._circuits:
            LOGGER.debug('SimulatedProofSystem._check <!< Circuit %s is not provisioned', circuit)
            raise CircuitUnavailable('Circuit {} is not provisioned'.format(circuit))

    async def prove(self, circuit: str, private_witness: dict, public_witness: dict) -> dict:
        LOGGER.debug('SimulatedProofSystem.prove >>> circuit: %s', circuit)

        self._check(circuit)
        vtype = circuit2type(circuit)
        inputs = circuit_input(circuit, private_witness, public_witness)
        witness = PrivateWitness.from_dict(private_witness)

        if vtype == VerificationType.AGE:
            today = DateParts(inputs['currentYear'], inputs['currentMonth'], inputs['currentDay'])
            predicate = age_on(witness.dob, today) >= inputs['minimumAge']
            param = inputs['minimumAge']
        elif vtype == VerificationType.CREDENTIAL_VALIDITY:
            digits = inputs['identity']
            predicate = len(digits) == 12 and all(0 <= d <= 9 for d in digits) and digits[0] not in (0, 1)
            if inputs['credentialCommitment'] != '0':
                predicate = predicate and (
                    str(commit(self._hasher, witness.dob, digits)) == inputs['credentialCommitment'])
            param = inputs['credentialCommitment']
        else:
            predicate = witness.region_code == inputs['requiredRegion']
            param = inputs['requiredRegion']

        signals = [
            '1' if predicate else '0',
            str(param),
            str(derive_nullifier(self._hasher, witness.nullifier_base, vtype))]
        rv = {
            'proof': {
                'protocol': 'simulated',
                'circuit': circuit,
                'digest': self._digest(circuit, signals)
            },
            'publicSignals': signals
        }

        LOGGER.debug('SimulatedProofSystem.prove <<< predicate: %s', predicate)
        return rv

    async def verify(self, circuit: str, proof: dict, public_signals: Sequence[str]) -> bool:
        LOGGER.debug('SimulatedProofSystem.verify >>> circuit: %s, public_signals: %s', circuit, public_signals)

        self._check(circuit)
        if not isinstance(proof, dict) or not isinstance(proof.get('digest', None), str):
            LOGGER.debug('SimulatedProofSystem.verify <!< Proof does not parse: %s', proof)
            raise MalformedRequest('Proof does not parse as simulated proof')
        await asyncio.sleep(self._delay)

        rv = hmac.compare_digest(proof['digest'], self._digest(circuit, public_signals))
        LOGGER.debug('SimulatedProofSystem.verify <<< %s', rv)
        return rv

    def status(self) -> dict:
        return {circuit: {'ready': circuit in self._circuits, 'simulated': True} for circuit in CIRCUITS}


class SnarkjsProofSystem(ProofSystem):
    """
    Groth16 proof system through the snarkjs command line, over compiled circuit artifacts
    in a directory:

    ::

        <dir-circuits>/
            <circuit>_js/<circuit>.wasm
            <circuit>.zkey
            <circuit>_vkey.json

    """

    def __init__(self, dir_circuits: str, timeout: float = 30.0, snarkjs: str = 'snarkjs') -> None:
        """
        Initializer.

        :param dir_circuits: directory holding compiled circuit artifacts
        :param timeout: seconds to allow each snarkjs invocation
        :param snarkjs: snarkjs executable
        """

        self._dir_circuits = dir_circuits
        self._timeout = timeout
        self._snarkjs = snarkjs

    @property
    def dir_circuits(self) -> str:
        """
        Accessor for circuit artifact directory.

        :return: circuit artifact directory
        """

        return self._dir_circuits

    def paths(self, circuit: str) -> dict:
        """
        Return artifact paths for circuit.

        :param circuit: circuit name
        :return: dict mapping 'wasm', 'zkey', 'vkey' to paths
        """

        return {
            'wasm': join(self._dir_circuits, '{}_js'.format(circuit), '{}.wasm'.format(circuit)),
            'zkey': join(self._dir_circuits, '{}.zkey'.format(circuit)),
            'vkey': join(self._dir_circuits, '{}_vkey.json'.format(circuit))
        }

    def status(self) -> dict:
        rv = {}
        for circuit in CIRCUITS:
            present = {k: isfile(path) for (k, path) in self.paths(circuit).items()}
            rv[circuit] = {**present, 'ready': all(present.values())}
        return rv

    def _check(self, circuit: str, artifacts: Sequence[str]) -> dict:
        if circuit not in CIRCUITS:
            raise CircuitUnavailable('No such circuit {}'.format(circuit))
        paths = self.paths(circuit)
        absent = [k for k in artifacts if not isfile(paths[k])]
        if absent:
            LOGGER.debug('SnarkjsProofSystem._check <!< Circuit %s lacks %s in %s', circuit, absent, self._dir_circuits)
            raise CircuitUnavailable('Circuit {} is not compiled: missing {}'.format(circuit, ', '.join(absent)))
        return paths

    async def _run(self, *args: str) -> (int, str):
        """
        Run snarkjs with input arguments; return exit code and combined output.

        Raise ProofTimeout if it runs past the timeout, or CircuitUnavailable if snarkjs is not installed.

        :param args: snarkjs arguments
        :return: exit code and output text
        """

        LOGGER.debug('SnarkjsProofSystem._run >>> args: %s', args)

        try:
            proc = await asyncio.create_subprocess_exec(
                self._snarkjs,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT)
        except FileNotFoundError:
            LOGGER.debug('SnarkjsProofSystem._run <!< No snarkjs executable %s', self._snarkjs)
            raise CircuitUnavailable('No snarkjs executable {}'.format(self._snarkjs))

        try:
            (out, _) = await asyncio.wait_for(proc.communicate(), self._timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            LOGGER.debug('SnarkjsProofSystem._run <!< snarkjs %s timed out after %ss', args[:2], self._timeout)
            raise ProofTimeout('snarkjs {} timed out after {}s'.format(' '.join(args[:2]), self._timeout))

        rv = (proc.returncode, out.decode(errors='replace'))
        LOGGER.debug('SnarkjsProofSystem._run <<< %s', rv)
        return rv

    async def prove(self, circuit: str, private_witness: dict, public_witness: dict) -> dict:
        LOGGER.debug('SnarkjsProofSystem.prove >>> circuit: %s', circuit)

        paths = self._check(circuit, ('wasm', 'zkey'))
        inputs = circuit_input(circuit, private_witness, public_witness)
        with TemporaryDirectory() as dir_work:
            (path_input, path_proof, path_public) = (
                join(dir_work, name) for name in ('input.json', 'proof.json', 'public.json'))
            with open(path_input, 'w') as fh_input:
                json.dump(inputs, fh_input)
            (code, out) = await self._run(
                'groth16',
                'fullprove',
                path_input,
                paths['wasm'],
                paths['zkey'],
                path_proof,
                path_public)
            if code != 0 or not isfile(path_proof):
                LOGGER.debug('SnarkjsProofSystem.prove <!< snarkjs failed on witness: %s', out)
                raise MalformedRequest('Proof generation failed on circuit {}'.format(circuit))
            with open(path_proof) as fh_proof, open(path_public) as fh_public:
                rv = {'proof': json.load(fh_proof), 'publicSignals': json.load(fh_public)}

        LOGGER.debug('SnarkjsProofSystem.prove <<<')
        return rv

    async def verify(self, circuit: str, proof: dict, public_signals: Sequence[str]) -> bool:
        LOGGER.debug('SnarkjsProofSystem.verify >>> circuit: %s, public_signals: %s', circuit, public_signals)

        paths = self._check(circuit, ('vkey',))
        with TemporaryDirectory() as dir_work:
            (path_proof, path_public) = (join(dir_work, name) for name in ('proof.json', 'public.json'))
            with open(path_proof, 'w') as fh_proof, open(path_public, 'w') as fh_public:
                json.dump(proof, fh_proof)
                json.dump([str(s) for s in public_signals], fh_public)
            (code, out) = await self._run('groth16', 'verify', paths['vkey'], path_public, path_proof)

        if 'OK!' in out and code == 0:
            rv = True
        elif 'Invalid proof' in out:
            rv = False
        else:
            LOGGER.debug('SnarkjsProofSystem.verify <!< snarkjs could not parse inputs: %s', out)
            raise MalformedRequest('Proof or public signals do not parse for circuit {}'.format(circuit))

        LOGGER.debug('SnarkjsProofSystem.verify <<< %s', rv)
        return rv
