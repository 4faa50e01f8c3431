from __future__ import annotations

import collections
import dataclasses
import os
from functools import cached_property
from pathlib import Path
from typing import Any, Callable, ClassVar, Iterator, Mapping, MutableMapping, cast

import platformdirs
import rich.theme
import tomlkit

from pkgsolve import termui
from pkgsolve.exceptions import NoConfigError

DEFAULT_PYPI_INDEX = "https://pypi.org/simple"
DEFAULT_CONFIG_FILE = platformdirs.user_config_path("pkgsolve") / "config.toml"

ui = termui.UI()


def load_config(file_path: Path) -> dict[str, Any]:
    """Load a nested TOML document into key-value pairs

    E.g. ["strategy"]["prefetch"] will be loaded as "strategy.prefetch" key.
    """

    def get_item(sub_data: Mapping[str, Any]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for k, v in sub_data.items():
            if isinstance(v, Mapping):
                result.update({f"{k}.{sub_k}": sub_v for sub_k, sub_v in get_item(v).items()})
            else:
                result.update({k: v})
        return result

    if not file_path.is_file():
        return {}
    return get_item(dict(tomlkit.parse(file_path.read_text("utf-8"))))


def ensure_boolean(val: Any) -> bool:
    """Coerce a string value to a boolean value"""
    if not isinstance(val, str):
        return val

    return bool(val) and val.lower() not in ("false", "no", "0")


def optional_boolean(val: Any) -> bool | None:
    """Like :func:`ensure_boolean`, but "auto" and empty values mean ``None``"""
    if val is None or isinstance(val, str) and val.lower() in ("", "auto", "none"):
        return None
    return ensure_boolean(val)


def optional_int(val: Any) -> int | None:
    if val is None or val == "":
        return None
    return int(val)


@dataclasses.dataclass
class ConfigItem:
    """An item of configuration, with following attributes:

    Args:
        description (str): the config description
        default (Any): the default value
        env_var (str|None): the env var name to take value from
        coerce (Callable): a function to coerce the value
    """

    _NOT_SET = object()

    description: str
    default: Any = _NOT_SET
    env_var: str | None = None
    coerce: Callable = str

    def should_show(self) -> bool:
        return self.default is not self._NOT_SET


class Config(MutableMapping[str, Any]):
    """A dict-like object for configuration key and values

    Values are looked up in the environment variables first, then in the
    config file, then in the defaults.
    """

    _config_map: ClassVar[dict[str, ConfigItem]] = {
        "cache_dir": ConfigItem(
            "The root directory of cached files",
            platformdirs.user_cache_dir("pkgsolve"),
            env_var="PKGSOLVE_CACHE_DIR",
        ),
        "log_dir": ConfigItem(
            "The root directory of log files",
            platformdirs.user_log_dir("pkgsolve"),
            env_var="PKGSOLVE_LOG_DIR",
        ),
        "request_timeout": ConfigItem(
            "The timeout for network requests in seconds", 15, env_var="PKGSOLVE_REQUEST_TIMEOUT", coerce=int
        ),
        "pypi.url": ConfigItem(
            "The URL of PyPI mirror, defaults to https://pypi.org/simple",
            DEFAULT_PYPI_INDEX,
            env_var="PKGSOLVE_PYPI_URL",
        ),
        "pypi.verify_ssl": ConfigItem(
            "Verify SSL certificate when query PyPI",
            True,
            env_var="PKGSOLVE_PYPI_VERIFY_SSL",
            coerce=ensure_boolean,
        ),
        "strategy.resolve_max_rounds": ConfigItem(
            "Specify the max rounds of resolution process",
            10000,
            env_var="PKGSOLVE_RESOLVE_MAX_ROUNDS",
            coerce=int,
        ),
        "strategy.allow_prereleases": ConfigItem(
            "Allow pre-releases: true, false, or auto to only pick them when no final release matches",
            None,
            env_var="PKGSOLVE_ALLOW_PRERELEASES",
            coerce=optional_boolean,
        ),
        "strategy.prefetch": ConfigItem(
            "Fetch metadata of the packages likely to be decided next in the background",
            True,
            env_var="PKGSOLVE_PREFETCH",
            coerce=ensure_boolean,
        ),
        "strategy.max_workers": ConfigItem(
            "The number of threads fetching metadata, empty for the executor's default",
            None,
            env_var="PKGSOLVE_MAX_WORKERS",
            coerce=optional_int,
        ),
    }
    _config_map.update(
        (f"theme.{k}", ConfigItem(f"Theme color for {k}", default=v)) for k, v in termui.DEFAULT_THEME.items()
    )

    @classmethod
    def get_defaults(cls) -> dict[str, Any]:
        return {k: v.default for k, v in cls._config_map.items() if v.should_show()}

    @cached_property
    def env_map(self) -> Mapping[str, Any]:
        return EnvMap(self._config_map)

    def __init__(self, config_file: Path | None = None) -> None:
        self.config_file = (config_file or DEFAULT_CONFIG_FILE).resolve()
        self._file_data = load_config(self.config_file)
        self._data = collections.ChainMap(
            cast(MutableMapping[str, Any], self.env_map), self._file_data, self.get_defaults()
        )

    def load_theme(self) -> rich.theme.Theme:
        return rich.theme.Theme({k[6:]: v for k, v in self.items() if k.startswith("theme.")})

    @property
    def self_data(self) -> dict[str, Any]:
        return dict(self._file_data)

    def _save_config(self) -> None:
        """Save the changed to config file."""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        toml_data: dict[str, Any] = {}
        for key, value in self._file_data.items():
            *parts, last = key.split(".")
            temp = toml_data
            for part in parts:
                if part not in temp:
                    temp[part] = {}
                temp = temp[part]
            temp[last] = value

        with self.config_file.open("w", encoding="utf-8") as fp:
            tomlkit.dump(toml_data, fp)

    def __getitem__(self, key: str) -> Any:
        if key not in self._config_map:
            raise NoConfigError(key)
        config = self._config_map[key]
        if key not in self._data:
            raise NoConfigError(key) from None
        return config.coerce(self._data[key])

    def __setitem__(self, key: str, value: Any) -> None:
        if key not in self._config_map:
            raise NoConfigError(key)
        config = self._config_map[key]
        value = config.coerce(value)
        if key in self.env_map:
            ui.warn(f"the config is shadowed by env var '{config.env_var}', the value set won't take effect.")
        if value is None:
            # TOML has no null, an unset value falls back to the default.
            self._file_data.pop(key, None)
        else:
            self._file_data[key] = value
        self._save_config()

    def __delitem__(self, key: str) -> None:
        if key not in self._config_map:
            raise NoConfigError(key)
        config = self._config_map[key]
        self._file_data.pop(key, None)

        env_var = config.env_var
        if env_var is not None and env_var in os.environ:
            ui.warn(f"The config is shadowed by env var '{env_var}', set value won't take effect.")
        self._save_config()

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(set(self._data))


class EnvMap(Mapping[str, Any]):
    def __init__(self, config_items: Mapping[str, ConfigItem]) -> None:
        self._config_map = config_items

    def __repr__(self) -> str:
        return repr(dict(self))

    def __getitem__(self, k: str) -> Any:
        try:
            item = self._config_map[k]
            if item.env_var:
                return item.coerce(os.environ[item.env_var])
        except KeyError:
            pass
        raise KeyError(k)

    def __iter__(self) -> Iterator[str]:
        for key, item in self._config_map.items():
            if item.env_var and item.env_var in os.environ:
                yield key

    def __len__(self) -> int:
        return sum(1 for _ in self)
