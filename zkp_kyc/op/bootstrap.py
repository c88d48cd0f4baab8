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
import sys

from sys import exit as sys_exit
from typing import Sequence

from zkp_kyc.error import ZkpKycError
from zkp_kyc.frill import do_wait, inis2dict
from zkp_kyc.service import KycService


def usage() -> None:
    """
    Print usage advice.
    """

    print()
    print('Usage: bootstrap.py <config-ini>')
    print()
    print('where <config-ini> represents the path to the configuration file.')
    print()
    print('The operation creates any missing tables in the store and registers')
    print('the configured issuer, if the store does not have it already.')
    print()
    print('The configuration file has sections and entries as follows:')
    print('  * section [store]:')
    print('    - url: (default sqlite:///zkp_kyc.db) the SQLAlchemy database URL')
    print('    - echo: (default false) whether to log SQL statements')
    print('  * section [issuer]:')
    print("    - name: the issuer's name")
    print("    - seed: the issuer's seed, from which to derive its signing key")
    print('    - credential-validity-days: (default 365) credential lifetime')
    print()


async def bootstrap(ini_path: str) -> int:
    """
    Set configuration. Open store, creating tables as needed, and register configured issuer.

    :param ini_path: path to configuration file
    :return: 0 for OK, 1 for failure
    """

    config = inis2dict(ini_path)
    config = {k: v for (k, v) in config.items() if k in ('store', 'issuer')}

    async with KycService(config) as service:
        issuer_id = await service.bootstrap()
        logging.getLogger(__name__).info('Issuer %s registered as %s', config.get('issuer', {}).get('name'), issuer_id)

    return 0


def main(args: Sequence[str] = None) -> int:
    """
    Main line for script: check arguments and dispatch operation to bootstrap store and issuer.

    :param args: command-line arguments
    :return: 0 for OK, 1 for failure
    """

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)-15s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S')
    logging.getLogger('zkp_kyc').setLevel(logging.WARNING)
    logging.getLogger(__name__).setLevel(logging.INFO)

    if args is None:
        args = sys.argv[1:]

    if len(args) == 1:
        try:
            return do_wait(bootstrap(args[0]))
        except ZkpKycError as x_kyc:
            print(str(x_kyc))
            return 1
    else:
        usage()
        return 1

if __name__ == '__main__':
    sys_exit(main())
