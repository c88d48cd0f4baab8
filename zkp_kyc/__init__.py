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


from .anchor.issuer import CredentialIssuer, IssuedCredential
from .anchor.orchestrator import RequestInfo, RequestOrchestrator, RequestStatus
from .anchor.verifier import VerificationGateway, VerificationResult
from .field import Hasher, Sha256Hasher, VerificationType
from .ledger import VerificationLedger, VerificationRecord
from .proofsys import ProofSystem, SimulatedProofSystem, SnarkjsProofSystem
from .service import KycService
from .store import Store
