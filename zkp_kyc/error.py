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


import re

from enum import IntEnum


class ErrorCode(IntEnum):
    """
    Error codes particular to zkp_kyc operation.
    """

    Success = 0

    # Caller-fixable input defects
    ValidationError = 1000
    MalformedRequest = 1001
    AbsentCredential = 1002

    # Provisioning and resource errors: fatal, not user-fixable
    NoIssuerAvailable = 2000
    CircuitUnavailable = 2001
    ProofTimeout = 2002

    # Replay protection
    NullifierReuse = 3000
    DuplicateNullifier = 3001

    # Verification request state machine
    RequestNotFound = 4000
    AlreadyFinalized = 4001
    RequestExpired = 4002

    # Storage
    StoreState = 5000

    # JSON validation
    JSONValidation = 9000

    def token(self) -> str:
        """
        Return upper snake-case token for error code, as reported to verifiers; e.g., NULLIFIER_REUSE.

        :return: code token
        """

        return re.sub('(?<!^)(?=[A-Z])', '_', self.name).upper().replace('J_S_O_N', 'JSON')


class ZkpKycError(Exception):
    """
    Error class for zkp_kyc operation.
    """

    def __init__(self, error_code: ErrorCode, message: str):
        """
        Initialize on code and message.

        :param error_code: error code
        :param message: error message
        """

        super().__init__(message)
        self.error_code = error_code
        self.message = message

    @property
    def code(self) -> str:
        """
        Accessor for error code token.

        :return: error code token
        """

        return self.error_code.token()

    def __str__(self):
        """
        String representation of error.
        """

        return '({}) {}'.format(self.error_code, self.message)


class ValidationError(ZkpKycError):
    """
    Raw credential attributes fail validation: empty name, date of birth that is not a real
    calendar date, identity number off its fixed-length numeric pattern, etc.
    """

    def __init__(self, message: str):
        """
        Initialize on message.

        :param message: error message
        """

        super().__init__(ErrorCode.ValidationError, message)


class MalformedRequest(ZkpKycError):
    """
    Request form or proof submission is missing required content or does not parse.
    """

    def __init__(self, message: str):
        """
        Initialize on message.

        :param message: error message
        """

        super().__init__(ErrorCode.MalformedRequest, message)


class AbsentCredential(ZkpKycError):
    """
    No credential exists on commitment.
    """

    def __init__(self, message: str):
        """
        Initialize on message.

        :param message: error message
        """

        super().__init__(ErrorCode.AbsentCredential, message)


class NoIssuerAvailable(ZkpKycError):
    """
    No active issuer for which the service holds a signing key.
    """

    def __init__(self, message: str):
        """
        Initialize on message.

        :param message: error message
        """

        super().__init__(ErrorCode.NoIssuerAvailable, message)


class CircuitUnavailable(ZkpKycError):
    """
    Circuit artifacts (wasm, proving key, verification key) are not provisioned for verification type.
    """

    def __init__(self, message: str):
        """
        Initialize on message.

        :param message: error message
        """

        super().__init__(ErrorCode.CircuitUnavailable, message)


class ProofTimeout(ZkpKycError):
    """
    External prove or verify call ran past its time allowance.
    """

    def __init__(self, message: str):
        """
        Initialize on message.

        :param message: error message
        """

        super().__init__(ErrorCode.ProofTimeout, message)


class NullifierReuse(ZkpKycError):
    """
    Nullifier already consumed by a successful verification: replay or stale resubmission.
    """

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.NullifierReuse):
        """
        Initialize on message.

        :param message: error message
        :param error_code: error code, for specialization
        """

        super().__init__(error_code, message)

    @property
    def code(self) -> str:
        """
        Accessor for error code token; all specializations report as nullifier reuse.

        :return: error code token
        """

        return ErrorCode.NullifierReuse.token()


class DuplicateNullifier(NullifierReuse):
    """
    Ledger uniqueness constraint rejected append on nullifier: a concurrent verification won the race.
    """

    def __init__(self, message: str):
        """
        Initialize on message.

        :param message: error message
        """

        super().__init__(message, ErrorCode.DuplicateNullifier)


class RequestNotFound(ZkpKycError):
    """
    No verification request exists on identifier.
    """

    def __init__(self, message: str):
        """
        Initialize on message.

        :param message: error message
        """

        super().__init__(ErrorCode.RequestNotFound, message)


class AlreadyFinalized(ZkpKycError):
    """
    Verification request already reached a terminal state.
    """

    def __init__(self, message: str):
        """
        Initialize on message.

        :param message: error message
        """

        super().__init__(ErrorCode.AlreadyFinalized, message)


class RequestExpired(ZkpKycError):
    """
    Verification request lifetime elapsed before completion.
    """

    def __init__(self, message: str):
        """
        Initialize on message.

        :param message: error message
        """

        super().__init__(ErrorCode.RequestExpired, message)


class StoreState(ZkpKycError):
    """
    Store is in the wrong state (closed, already open) for operation.
    """

    def __init__(self, message: str):
        """
        Initialize on message.

        :param message: error message
        """

        super().__init__(ErrorCode.StoreState, message)


class JSONValidation(ZkpKycError):
    """
    Configuration does not validate against its JSON schema.
    """

    def __init__(self, message: str):
        """
        Initialize on message.

        :param message: error message
        """

        super().__init__(ErrorCode.JSONValidation, message)
