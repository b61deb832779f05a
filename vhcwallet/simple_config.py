from __future__ import annotations
from copy import deepcopy
import json
import os
import stat
import sys
import threading
from typing import Any, Callable, cast, Type, TypeVar

from mypy_extensions import DefaultArg

from .logs import logs


logger = logs.get_logger("config")


FINAL_CONFIG_VERSION = 1

DEFAULT_RPC_HOST = "localhost"
DEFAULT_RPC_PORT = 9110
DEFAULT_TESTNET_RPC_PORT = 19110
DEFAULT_REQUEST_TIMEOUT = 60.0
DEFAULT_TICKETBUYER_INTERVAL = 60.0

T = TypeVar('T')


def default_user_dir(prefer_local: bool=False) -> str:
    if sys.platform == "win32":
        base_path = os.environ.get("LOCALAPPDATA" if prefer_local else "APPDATA",
            os.path.expanduser("~"))
        return os.path.join(base_path, "Vhcwallet")
    if sys.platform == "darwin":
        return os.path.join(os.path.expanduser("~"), "Library", "Application Support",
            "Vhcwallet")
    return os.path.join(os.path.expanduser("~"), ".vhcwallet")


def read_user_config(path: str|None) -> dict[str, Any]:
    """Parse and store the user config settings in vhcwallet.conf into user_config[]."""
    if not path:
        return {}
    config_path = os.path.join(path, "config")
    if not os.path.exists(config_path):
        return {}
    try:
        with open(config_path, "r", encoding='utf-8') as f:
            data = f.read()
        result = json.loads(data)
    except (OSError, ValueError):
        logger.exception("Cannot read config file %s", config_path)
        return {}
    if not isinstance(result, dict):
        return {}
    return result


class SimpleConfig:
    """
    The SimpleConfig class is responsible for handling operations involving
    configuration files.

    There are two different sources of possible configuration values:
        1. Command line options.
        2. User configuration (in the user's config directory)
    They are taken in order (1. overrides config options set in 2.)
    """

    def __init__(self, options: dict[str, Any]|None=None,
            read_user_config_function: Callable[[str], dict[str, Any]]|None=None,
            read_user_dir_function: Callable[[DefaultArg(bool, 'prefer_local')], str]|None=None) \
                -> None:

        if options is None:
            options = {}

        # This lock needs to be acquired for updating and reading the config in
        # a thread-safe way.
        self.lock = threading.RLock()

        # The following two functions are there for dependency injection when
        # testing.
        if read_user_config_function is None:
            read_user_config_function = read_user_config
        if read_user_dir_function is None:
            self.user_dir = default_user_dir
        else:
            self.user_dir = read_user_dir_function

        # The command line options
        self.cmdline_options = deepcopy(options)
        # don't allow to be set on CLI:
        self.cmdline_options.pop('config_version', None)

        # Set self.path and read the user config
        self.user_config: dict[str, Any] = {}  # for self.get in data_path()
        self.path = self.data_path()
        self.user_config = read_user_config_function(self.path)
        if not self.user_config:
            # avoid new config getting upgraded
            self.user_config = {'config_version': FINAL_CONFIG_VERSION}

    def data_path(self) -> str:
        # Read vhcwallet_path from command line
        # Otherwise use the user's default data directory.
        path = cast(str, self.get('vhcwallet_path'))
        if path is None:
            path = self.user_dir()

        os.makedirs(path, exist_ok=True)
        if self.get('testnet'):
            path = os.path.join(path, 'testnet')
            os.makedirs(path, exist_ok=True)

        logger.debug("vhcwallet directory '%s'", path)
        return os.path.abspath(path)

    def file_path(self, file_name: str) -> str|None:
        if self.path:
            return os.path.join(self.path, file_name)
        return None

    def set_key(self, key: str, value: Any, save: bool=True) -> None:
        if not self.is_modifiable(key):
            logger.warning("Not changing config key '%s' set on the command line", key)
            return
        self._set_key_in_user_config(key, value, save)

    def _set_key_in_user_config(self, key: str, value: Any, save: bool=True) -> None:
        with self.lock:
            if value is not None:
                self.user_config[key] = value
            else:
                self.user_config.pop(key, None)
            if save:
                self.save_user_config()

    def get(self, key: str, default: Any=None) -> Any|None:
        with self.lock:
            out = self.cmdline_options.get(key)
            if out is None:
                out = self.user_config.get(key, default)
        return out

    def get_optional_type(self, return_type: Type[T], key: str, default: T|None=None) -> T|None:
        with self.lock:
            value = self.cmdline_options.get(key)
            if value is None:
                value = self.user_config.get(key, default)
        assert value == default or isinstance(value, return_type)
        return cast(T, value)

    def get_explicit_type(self, return_type: Type[T], key: str, default: T) -> T:
        with self.lock:
            value: T|None = self.cmdline_options.get(key)
            if value is None:
                value = cast(T, self.user_config.get(key, default))
        assert isinstance(value, return_type)
        return value

    def is_modifiable(self, key: str) -> bool:
        return key not in self.cmdline_options

    def save_user_config(self) -> None:
        if not self.path:
            return
        path = os.path.join(self.path, "config")
        s = json.dumps(self.user_config, indent=4, sort_keys=True)
        with open(path, "w", encoding='utf-8') as f:
            f.write(s)
        os.chmod(path, stat.S_IREAD | stat.S_IWRITE)

    # Typed accessors for the keys the daemon reads.

    def is_testnet(self) -> bool:
        return bool(self.get('testnet', False))

    def get_rpc_host(self) -> str:
        return self.get_explicit_type(str, 'rpc_host', DEFAULT_RPC_HOST)

    def get_rpc_port(self) -> int:
        default_port = DEFAULT_TESTNET_RPC_PORT if self.is_testnet() else DEFAULT_RPC_PORT
        return self.get_explicit_type(int, 'rpc_port', default_port)

    def get_rpc_credentials(self) -> tuple[str|None, str]:
        username = self.get_optional_type(str, 'rpc_username')
        password = self.get_explicit_type(str, 'rpc_password', '')
        return username, password

    def get_debug_level(self) -> str|None:
        return self.get_optional_type(str, 'debuglevel')

    def get_log_file_path(self) -> str|None:
        if not self.get('log_to_file', False):
            return None
        return self.file_path("vhcwallet.log")

    def get_request_timeout(self) -> float:
        return float(self.get('request_timeout', DEFAULT_REQUEST_TIMEOUT))

    def get_consensus_rpc(self) -> tuple[str|None, str|None, str|None]:
        return (self.get_optional_type(str, 'vhcd_rpc_url'),
            self.get_optional_type(str, 'vhcd_rpc_username'),
            self.get_optional_type(str, 'vhcd_rpc_password'))

    def get_ticketbuyer_defaults(self) -> dict[str, Any]:
        """
        The `ticketbuyer.*` keys with the prefix removed. These are the base configuration that
        the values given to `startautobuyer` are applied over.
        """
        prefix = "ticketbuyer."
        with self.lock:
            values = { key[len(prefix):]: value for key, value in self.user_config.items()
                if key.startswith(prefix) }
            values.update((key[len(prefix):], value)
                for key, value in self.cmdline_options.items()
                if key.startswith(prefix) and value is not None)
        return values
