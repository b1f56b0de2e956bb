"""
Backend Registry
Resolves named service configurations into translation memory backends.

Usage:
    registry = BackendRegistry.from_settings(settings)
    backend = registry.get_default_for_querying()
    for name, backend in registry.get_writable_set().items():
        backend.update(unit)
"""

import inspect
import logging
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Type

from .base import TTMServer
from .exceptions import ConfigurationError
from .models import TTM_TYPES, BackendConfig
from .protocol import ReadableTTMServer, WritableTTMServer, has_capability

logger = logging.getLogger(__name__)

# Implementation tag -> backend class
_BACKEND_CLASSES: Dict[str, Type[TTMServer]] = {}

# Implementation used when a service gives a type but no class
TYPE_DEFAULTS = {
    "ttmserver": "database",
    "remote-ttmserver": "remote",
}


def register_backend(tag: str, cls: Type[TTMServer]) -> None:
    """Make ``cls`` available to configurations as ``"class": tag``."""
    if not has_capability(cls):
        raise ConfigurationError(f"Backend class {cls.__name__} implements no TTM capability")
    _BACKEND_CLASSES[tag] = cls
    logger.debug("Registered backend class %s as '%s'", cls.__name__, tag)


def get_backend_class(tag: Optional[str]) -> Optional[Type[TTMServer]]:
    if tag is None:
        return None
    return _BACKEND_CLASSES.get(tag)


_builtins_loaded = False


def _register_builtin_backends() -> None:
    global _builtins_loaded
    if _builtins_loaded:
        return
    _builtins_loaded = True

    from .backends import DatabaseTTMServer, ElasticTTMServer, FakeWritableTTMServer, RemoteTTMServer

    register_backend("elasticsearch", ElasticTTMServer)
    register_backend("database", DatabaseTTMServer)
    register_backend("remote", RemoteTTMServer)
    register_backend("fake", FakeWritableTTMServer)


class BackendRegistry:
    """
    Named translation memory services.

    ``create`` always builds a new instance; ``get`` caches one per name for
    the read and replication paths.
    """

    _instance: Optional["BackendRegistry"] = None

    def __init__(
        self,
        configs: Mapping[str, Any],
        default: Optional[str] = None,
        wiki_id: str = "default",
        default_cutoff: float = 0.65,
        backend_options: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize registry.

        Args:
            configs: Service name -> raw configuration mapping
            default: Name of the primary service
            wiki_id: Origin id passed to every backend
            default_cutoff: Fuzzy cutoff for services that set none
            backend_options: Constructor keyword arguments offered to every
                backend (each class takes the ones it accepts)
        """
        _register_builtin_backends()

        self.configs = dict(configs)
        self.default = default
        self.wiki_id = wiki_id
        self.default_cutoff = default_cutoff
        self.backend_options = dict(backend_options or {})
        self._cache: Dict[str, TTMServer] = {}

    @classmethod
    def from_settings(cls, settings) -> "BackendRegistry":
        """Build from the application Settings."""
        return cls(
            configs=settings.ttm_services,
            default=settings.ttm_default_service,
            wiki_id=settings.wiki_id,
            default_cutoff=settings.ttm_default_cutoff,
            backend_options={
                "timeout": settings.ttm_query_timeout,
                "admin_timeout": settings.ttm_bootstrap_timeout,
                "bulk_retry_attempts": settings.ttm_bulk_retry_attempts,
                "bulk_retry_delay": settings.ttm_bulk_retry_delay,
                "first_page_size": settings.ttm_first_page_size,
                "escalation_factor": settings.ttm_escalation_factor,
                "distinct_scores": settings.ttm_distinct_scores,
                "lookup_size": settings.ttm_lookup_size,
                "database_dir": settings.database_dir,
            },
        )

    @classmethod
    def get_instance(cls) -> "BackendRegistry":
        """Get singleton instance"""
        if cls._instance is None:
            from config.settings import settings

            cls._instance = cls.from_settings(settings)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None

    # ==================== LOOKUP ====================

    def _raw(self, name: str) -> Any:
        return self.configs[name]

    def _flag(self, name: str, key: str) -> Any:
        raw = self.configs.get(name)
        return raw.get(key) if isinstance(raw, Mapping) else None

    def list_names(self) -> List[str]:
        """Names of all translation memory services, in configuration order."""
        names = []
        for name, raw in self.configs.items():
            if not isinstance(raw, Mapping):
                continue
            if raw.get("type", "") in TTM_TYPES:
                names.append(name)
                continue
            cls = get_backend_class(raw.get("class"))
            if cls is not None and has_capability(cls):
                names.append(name)
        return names

    def has(self, name: str) -> bool:
        return name in self.list_names()

    def get_config(self, name: str) -> BackendConfig:
        if name not in self.configs:
            raise ConfigurationError(f"No configuration for name '{name}'", service=name)
        return BackendConfig.from_mapping(name, self._raw(name), self.default_cutoff)

    def resolve_class(self, config: BackendConfig) -> Type[TTMServer]:
        """Pick the implementation: explicit class first, then the type default."""
        if config.class_name is not None:
            cls = get_backend_class(config.class_name)
            if cls is None:
                raise ConfigurationError(
                    f"Unknown class for name '{config.name}': {config.class_name}", service=config.name
                )
            return cls

        if config.type:
            tag = TYPE_DEFAULTS.get(config.type)
            if tag is None:
                raise ConfigurationError(
                    f"Unknown type for name '{config.name}': {config.type}", service=config.name
                )
            return _BACKEND_CLASSES[tag]

        raise ConfigurationError(
            f"Invalid configuration for name '{config.name}': type not specified", service=config.name
        )

    def create(self, name: str, **overrides) -> TTMServer:
        """
        Build a new backend instance.

        Raises:
            ConfigurationError: unknown name, malformed entry or no implementation
        """
        if name not in self.configs:
            raise ConfigurationError(f"No configuration for name '{name}'", service=name)
        if not isinstance(self._raw(name), Mapping):
            raise ConfigurationError(f"Invalid configuration for name '{name}'", service=name)
        if not self.has(name):
            raise ConfigurationError(f"'{name}' is not a translation memory service", service=name)

        config = self.get_config(name)
        return self._instantiate(self.resolve_class(config), config, overrides)

    def create_public_client(self, name: str) -> TTMServer:
        """HTTP client for a public service, queried the way remote callers query it."""
        from .backends.remote import RemoteTTMServer

        config = replace(self.get_config(name), type="remote-ttmserver", class_name="remote")
        return self._instantiate(RemoteTTMServer, config, {})

    def _instantiate(self, cls: Type[TTMServer], config: BackendConfig, overrides: Dict[str, Any]) -> TTMServer:
        options = {**self.backend_options, **overrides}
        accepted = inspect.signature(cls.__init__).parameters
        kwargs = {k: v for k, v in options.items() if k in accepted}
        return cls(config, wiki_id=self.wiki_id, **kwargs)

    def get(self, name: str) -> TTMServer:
        """Cached instance of ``name``."""
        if name not in self._cache:
            self._cache[name] = self.create(name)
        return self._cache[name]

    def clear_cache(self) -> None:
        self._cache.clear()

    # ==================== DEFAULT ====================

    def _fallback(self) -> TTMServer:
        from .backends.fake import FakeWritableTTMServer

        return FakeWritableTTMServer(wiki_id=self.wiki_id)

    def get_default(self) -> TTMServer:
        """The primary writable service, or a no-op stand-in."""
        if self.default is None:
            return self._fallback()
        try:
            service = self.get(self.default)
        except ConfigurationError as e:
            logger.warning("Default TTM service '%s' unavailable: %s", self.default, e)
            return self._fallback()
        if isinstance(service, WritableTTMServer):
            return service
        return self._fallback()

    def get_default_for_querying(self) -> TTMServer:
        """The primary readable service, or a stand-in that finds nothing."""
        if self.default is None:
            return self._fallback()
        try:
            service = self.get(self.default)
        except ConfigurationError as e:
            logger.warning("Default TTM service '%s' unavailable: %s", self.default, e)
            return self._fallback()
        if isinstance(service, ReadableTTMServer):
            return service
        return self._fallback()

    # ==================== WRITABLE ====================

    def _check_write_flags(self) -> None:
        """writable/mirrors rules that do not need instances."""
        names = self.list_names()
        writable = [n for n in names if self._flag(n, "writable") is True]
        with_mirrors = [n for n in names if self._flag(n, "mirrors") is not None]

        if writable and with_mirrors:
            raise ConfigurationError(
                "TTM server configurations cannot use both writable and mirrors parameter "
                f"(writable: {', '.join(writable)}; mirrors: {', '.join(with_mirrors)})"
            )

        if self.default is not None and self._flag(self.default, "writable") is not None:
            raise ConfigurationError(
                f"Default TTM server {self.default} cannot carry a writable flag", service=self.default
            )

    def write_only_names(self) -> List[str]:
        return [name for name in self.list_names() if self._flag(name, "writable") is True]

    def get_write_only(self) -> Dict[str, TTMServer]:
        """Services marked ``writable: true``; never queried for suggestions."""
        return {name: self.get(name) for name in self.write_only_names()}

    def get_writable_set(self, fresh: bool = False, **overrides) -> Dict[str, TTMServer]:
        """
        Every backend that must receive writes.

        Args:
            fresh: Build new instances instead of the cached ones
            **overrides: Constructor overrides, implies ``fresh``

        Raises:
            ConfigurationError: invalid writable/mirrors combination
        """
        self._check_write_flags()
        build = (lambda n: self.create(n, **overrides)) if (fresh or overrides) else self.get

        names = self.list_names()
        read_only = {n for n in names if self._flag(n, "writable") is False}

        servers: Dict[str, TTMServer] = {}
        for name in names:
            if self._flag(name, "writable") is True:
                server = build(name)
                if not isinstance(server, WritableTTMServer):
                    raise ConfigurationError(
                        f"Server '{name}' marked writable is not a writable backend", service=name
                    )
                servers[name] = server
        if servers:
            return servers

        if self.default is None:
            return {}

        mirror_ids: List[str] = []
        default_server = build(self.default)
        if isinstance(default_server, WritableTTMServer):
            if self.default not in read_only:
                servers[self.default] = default_server
            mirror_ids = default_server.get_mirrors()

        for mirror in mirror_ids:
            if mirror not in read_only and mirror not in servers:
                servers[mirror] = build(mirror)

        return servers

    def get_mirror_names(self) -> List[str]:
        """Names the default service declares as mirrors."""
        if self.default is None or self.default not in self.configs:
            return []
        mirrors = self._flag(self.default, "mirrors")
        return list(mirrors) if isinstance(mirrors, (list, tuple)) else []

    # ==================== VALIDATION ====================

    def validate(self) -> None:
        """
        Check every service entry up front.

        Raises:
            ConfigurationError: the first problem found
        """
        for name, raw in self.configs.items():
            if not isinstance(raw, Mapping):
                raise ConfigurationError(f"Invalid configuration for name '{name}'", service=name)

        names = self.list_names()
        for name in names:
            config = self.get_config(name)
            self.resolve_class(config)
            for mirror in config.mirrors or ():
                if mirror not in names:
                    raise ConfigurationError(f"'{name}': unknown mirror '{mirror}'", service=name)

        if self.default is not None and self.default not in names:
            raise ConfigurationError(
                f"Default TTM service '{self.default}' is not configured", service=self.default
            )

        self._check_write_flags()
        logger.info("Validated %d TTM service(s)", len(names))

    def describe(self) -> List[Dict[str, Any]]:
        """Service listing for the API/CLI; broken entries report their error."""
        rows = []
        for name in self.list_names():
            try:
                info = self.get(name).get_info()
            except ConfigurationError as e:
                info = {"name": name, "error": str(e)}
            info["default"] = name == self.default
            info["writable"] = self._flag(name, "writable")
            rows.append(info)
        return rows
