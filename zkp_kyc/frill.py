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
import re

from configparser import ConfigParser
from enum import IntEnum
from os.path import expandvars, isfile
from time import perf_counter
from typing import Any, Awaitable, Sequence, Union


def do_wait(coro: Awaitable) -> Any:
    """
    Run asynchronous operation to completion from synchronous code and return its result.

    :param coro: coroutine to await
    :return: coroutine result
    """

    event_loop = None
    try:
        event_loop = asyncio.get_event_loop()
    except RuntimeError:
        pass
    if event_loop is None or event_loop.is_closed():
        event_loop = asyncio.new_event_loop()
        asyncio.set_event_loop(event_loop)
    return event_loop.run_until_complete(coro)


def inis2dict(ini_paths: Union[str, Sequence[str]]) -> dict:
    """
    Take one or more ini files and return a dict with configuration from all,
    interpolating bash-style variables ${VAR} or ${VAR:-DEFAULT}.

    Later files override earlier ones, section by section and key by key.

    :param ini_paths: path or paths to .ini files
    :return: dict mapping section names to dicts of their (string) settings
    """

    var_dflt = r'\${(.*?):-(.*?)}'
    def _interpolate(content):
        rv = expandvars(content)
        while True:
            match = re.search(var_dflt, rv)
            if match is None:
                break
            bash_var = '${{{}}}'.format(match.group(1))
            value = expandvars(bash_var)
            rv = re.sub(var_dflt, match.group(2) if value == bash_var else value, rv, count=1)

        return rv

    parser = ConfigParser()

    for ini in [ini_paths] if isinstance(ini_paths, str) else ini_paths:
        if not isfile(ini):
            raise FileNotFoundError('No such file: {}'.format(ini))
        with open(ini, 'r') as ini_fh:
            parser.read_string(_interpolate(ini_fh.read()))

    return {s: dict(parser[s].items()) for s in parser.sections()}


class Stopwatch:
    """
    Stopwatch for timing external calls, in milliseconds.
    """

    def __init__(self):
        """
        Instantiate and start.
        """

        self._start = perf_counter()

    def elapsed_ms(self) -> int:
        """
        Return whole milliseconds since construction or last reset.

        :return: elapsed time in milliseconds
        """

        return int((perf_counter() - self._start) * 1000)

    def reset(self) -> None:
        """
        Restart.
        """

        self._start = perf_counter()


class Ink(IntEnum):
    """
    Class encapsulating ink colours for logging.
    """

    BLACK = 30
    RED = 31
    GREEN = 32
    YELLOW = 33
    BLUE = 34
    MAGENTA = 35
    CYAN = 36
    WHITE = 37

    def __call__(self, message: str) -> str:
        """
        Return input message in colour.

        :return: input message in colour
        """

        return '\033[{}m{}\033[0m'.format(self.value, message)
