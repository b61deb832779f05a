# vhcwallet - stake-capable wallet daemon
# Copyright (C) 2019-2020 The ElectrumSV Developers
# Copyright (C) 2024 The vhcwallet developers
#
# Permission is hereby granted, free of charge, to any person
# obtaining a copy of this software and associated documentation files
# (the "Software"), to deal in the Software without restriction,
# including without limitation the rights to use, copy, modify, merge,
# publish, distribute, sublicense, and/or sell copies of the Software,
# and to permit persons to whom the Software is furnished to do so,
# subject to the following conditions:
#
# The above copyright notice and this permission notice shall be
# included in all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND,
# EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF
# MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND
# NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT HOLDERS
# BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN
# ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN
# CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

'''vhcwallet logging facilities.'''

import logging
from typing import Union

# The named loggers used by the daemon. These are the subsystem names accepted in the
# `debuglevel` configuration value, for example "info,ticketbuyer=debug".
SUBSYSTEMS = ("chain-rpc", "config", "daemon", "loader", "multisig", "rpc-server", "signing",
    "stake", "ticketbuyer")


class Logs(object):
    '''Manages various aspects of logging.'''

    def __init__(self) -> None:
        # by default this show warnings and above.  root is a public attribute.
        self.root = logging.getLogger()
        self.stream_handler = logging.StreamHandler()
        self.add_handler(self.stream_handler)

    def add_handler(self, handler: logging.Handler) -> None:
        formatter = logging.Formatter('%(asctime)s:' + logging.BASIC_FORMAT)
        handler.setFormatter(formatter)
        self.root.addHandler(handler)

    def add_file_output(self, path: str) -> None:
        self.add_handler(logging.FileHandler(path))

    def get_logger(self, name: str) -> logging.Logger:
        return logging.getLogger(name)

    def set_level(self, level: Union[str, int]) -> None:
        '''Level can be a string, such as "info", or a constant from logging module.'''
        if isinstance(level, str):
            level = level.upper()
        self.root.setLevel(level)

    def set_levels(self, text: str) -> None:
        '''
        Apply a `debuglevel` value. This is either a single level that applies to the root
        logger, or a comma separated list of `subsystem=level` pairs with an optional bare
        level that applies to the root logger.

        Raises `ValueError` for unknown subsystems or levels.
        '''
        for entry in text.split(","):
            entry = entry.strip()
            if not entry:
                continue
            subsystem, separator, level_name = entry.partition("=")
            if not separator:
                self.set_level(self._parse_level(subsystem))
                continue
            subsystem = subsystem.strip()
            if subsystem not in SUBSYSTEMS:
                raise ValueError(f"unknown logging subsystem '{subsystem}'")
            self.get_logger(subsystem).setLevel(self._parse_level(level_name))

    def _parse_level(self, level_name: str) -> int:
        level = logging.getLevelName(level_name.strip().upper())
        if not isinstance(level, int):
            raise ValueError(f"unknown logging level '{level_name}'")
        return level


logs = Logs()
