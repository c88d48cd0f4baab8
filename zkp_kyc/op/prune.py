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
    print('Usage: prune.py <config-ini> [grace-seconds]')
    print()
    print('where:')
    print('  * <config-ini> represents the path to the configuration file')
    print('  * [grace-seconds] (default 0) represents how long past expiry to retain')
    print('      verification requests that never completed.')
    print()
    print('The operation deletes stale verification requests from the store.')
    print()
    print('The configuration file has sections and entries as follows:')
    print('  * section [store]:')
    print('    - url: (default sqlite:///zkp_kyc.db) the SQLAlchemy database URL')
    print('    - echo: (default false) whether to log SQL statements')
    print()


async def prune(ini_path: str, grace: float = 0) -> int:
    """
    Set configuration. Open store and delete verification requests that expired over grace seconds ago
    without completing.

    :param ini_path: path to configuration file
    :param grace: seconds past expiry to retain stale requests
    :return: 0 for OK, 1 for failure
    """

    config = inis2dict(ini_path)
    config = {k: v for (k, v) in config.items() if k == 'store'}

    async with KycService(config) as service:
        count = await service.orchestrator.prune(grace)
        print('Pruned {} stale verification request{}'.format(count, '' if count == 1 else 's'))

    return 0


def main(args: Sequence[str] = None) -> int:
    """
    Main line for script: check arguments and dispatch operation to prune stale requests.

    :param args: command-line arguments
    :return: 0 for OK, 1 for failure
    """

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)-15s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S')
    logging.getLogger('zkp_kyc').setLevel(logging.WARNING)

    if args is None:
        args = sys.argv[1:]

    if len(args) in (1, 2):
        try:
            grace = float(args[1]) if len(args) == 2 else 0
        except ValueError:
            usage()
            return 1
        try:
            return do_wait(prune(args[0], grace))
        except ZkpKycError as x_kyc:
            print(str(x_kyc))
            return 1
    else:
        usage()
        return 1

if __name__ == '__main__':
    sys_exit(main())
