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

from time import time

from sqlalchemy import create_engine, text

from zkp_kyc.frill import Ink
from zkp_kyc.op import prune


def test_prune(tmp_path, capsys):
    print(Ink.YELLOW('\n\n== Testing prune operation =='))

    db = tmp_path.joinpath('op.db')
    ini = tmp_path.joinpath('zkp_kyc.ini')
    ini.write_text('[store]\nurl=sqlite:///{}\n'.format(db))

    assert prune.main([str(ini)]) == 0  # creates tables on empty store
    assert 'Pruned 0 stale verification requests' in capsys.readouterr().out

    now = time()
    engine = create_engine('sqlite:///{}'.format(db))
    try:
        with engine.begin() as conn:
            for (request_id, status, expires_at) in (
                    ('STALE001', 'pending', now - 7200),
                    ('STALE002', 'expired', now - 7200),
                    ('RECENT01', 'pending', now - 60),
                    ('LIVE0001', 'pending', now + 600),
                    ('FAILED01', 'failed', now - 7200)):
                conn.execute(
                    text(
                        'INSERT INTO verification_requests '
                        '(id, verification_type, verifier_name, status, created_at, expires_at) '
                        'VALUES (:id, :vtype, :name, :status, :created, :expires)'),
                    {
                        'id': request_id,
                        'vtype': 'age',
                        'name': 'Acme Bank',
                        'status': status,
                        'created': expires_at - 600,
                        'expires': expires_at
                    })

        assert prune.main([str(ini), '3600']) == 0
        assert 'Pruned 2 stale verification requests' in capsys.readouterr().out

        with engine.connect() as conn:
            remaining = {row[0] for row in conn.execute(text('SELECT id FROM verification_requests'))}
        assert remaining == {'RECENT01', 'LIVE0001', 'FAILED01'}
    finally:
        engine.dispose()
    print('\n\n== Prune deletes stale requests past grace only')


def test_prune_bad_args(capsys):
    print(Ink.YELLOW('\n\n== Testing prune operation on bad arguments =='))

    assert prune.main([]) == 1
    assert prune.main(['a.ini', 'soon']) == 1
    assert prune.main(['a.ini', '1', '2']) == 1
    assert 'Usage: prune.py <config-ini> [grace-seconds]' in capsys.readouterr().out
    print('\n\n== Prune reports bad arguments')
