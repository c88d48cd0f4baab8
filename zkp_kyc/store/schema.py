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


from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import declarative_base


Base = declarative_base()


def _uuid() -> str:
    return uuid4().hex


class Issuer(Base):
    __tablename__ = 'issuers'

    id = Column(String(32), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    public_key_x = Column(String(80), nullable=False)
    public_key_y = Column(String(80), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(Float, nullable=False)

    __table_args__ = (Index('ix_issuers_public_key', 'public_key_x', 'public_key_y', unique=True),)


class Credential(Base):
    """
    Issued credential: commitment only, never raw attributes.
    """

    __tablename__ = 'credentials'

    id = Column(String(32), primary_key=True, default=_uuid)
    issuer_id = Column(String(32), ForeignKey('issuers.id'), nullable=False)
    commitment = Column(String(80), unique=True, index=True, nullable=False)
    credential_type = Column(String(32), nullable=False, default='identity')
    issued_at = Column(Float, nullable=False)
    expires_at = Column(Float, nullable=True)
    revoked = Column(Boolean, nullable=False, default=False)


class Verification(Base):
    """
    Accepted verification, keyed by nullifier. Append-only; deliberately unlinked from credentials.
    """

    __tablename__ = 'verifications'

    id = Column(String(32), primary_key=True, default=_uuid)
    verification_type = Column(String(32), index=True, nullable=False)
    nullifier = Column(String(80), unique=True, index=True, nullable=False)
    public_signals = Column(JSON, nullable=False)
    verified_at = Column(Float, index=True, nullable=False)
    verification_time_ms = Column(Integer, nullable=True)
    result = Column(Boolean, nullable=False, default=True)
    meta = Column('metadata', JSON, nullable=False, default=dict)


class VerificationRequest(Base):
    __tablename__ = 'verification_requests'

    id = Column(String(16), primary_key=True)
    verification_type = Column(String(32), nullable=False)
    verifier_name = Column(String(255), nullable=False)
    status = Column(String(16), index=True, nullable=False, default='pending')
    created_at = Column(Float, nullable=False)
    expires_at = Column(Float, index=True, nullable=False)
    completed_at = Column(Float, nullable=True)
    verification_id = Column(String(32), ForeignKey('verifications.id'), nullable=True)
