"""
Immutable agent configuration.

The raw YAML mapping is validated once at startup and turned into frozen
dataclasses that are passed explicitly to every component. Nothing reads
configuration from global state after this point.
"""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from galedi.config.resolver import has_unresolved_placeholder
from galedi.exceptions import ConfigurationError

# Partner identities known to the agent; MFR-A is reserved and normally disabled.
KNOWN_PARTNERS = ("MFR-H", "MFR-E", "MFR-A")
SUPPORTED_SCHEMES = ("ftp", "sftp")
STORE_TYPES = ("duckdb", "postgres")
DEFAULT_REQUEST_FILE = "LVS_REQ.txt"
DEFAULT_BATCH_SIZE = 50
DEFAULT_INGEST_EVERY_S = 20.0
DEFAULT_EXPORT_EVERY_S = 30.0


@dataclass(frozen=True)
class EndpointConfig:
    """Remote file-drop endpoint: ``ftp://host[:port][/dir]`` or ``sftp://...``."""

    url: str
    username: str
    password: str | None = field(default=None, repr=False)
    private_key_path: str | None = None
    timeout_s: float = 15.0

    @property
    def scheme(self) -> str:
        return urlparse(self.url).scheme.lower()

    @property
    def host(self) -> str:
        return urlparse(self.url).hostname or ""

    @property
    def port(self) -> int:
        parsed = urlparse(self.url)
        if parsed.port:
            return parsed.port
        return 22 if self.scheme == "sftp" else 21

    @property
    def remote_dir(self) -> str:
        """Remote directory holding the partner files ("" means the login directory)."""
        path = urlparse(self.url).path
        return path.rstrip("/") if path not in ("", "/") else ""

    def remote_path(self, file_name: str) -> str:
        return f"{self.remote_dir}/{file_name}" if self.remote_dir else file_name

    def display(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}{self.remote_dir or '/'}"


@dataclass(frozen=True)
class PartnerConfig:
    """One manufacturer site with its endpoints and file names."""

    partner_id: str
    endpoint: EndpointConfig
    source: EndpointConfig
    feedback_file: str
    source_file: str
    request_file: str = DEFAULT_REQUEST_FILE
    enabled: bool = True


@dataclass(frozen=True)
class StoreConfig:
    type: str = "duckdb"
    path: str = ":memory:"
    host: str = "localhost"
    port: int = 5432
    user: str = ""
    password: str = field(default="", repr=False)
    database: str = ""
    batch_size: int = DEFAULT_BATCH_SIZE


@dataclass(frozen=True)
class IntervalConfig:
    every_s: float
    initial_delay_s: float


@dataclass(frozen=True)
class ScheduleConfig:
    ingest: IntervalConfig
    export: IntervalConfig


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    file: str | None = "logs/galedi.log"
    file_enabled: bool = True
    file_mode: str = "a"
    console_enabled: bool = True
    console_type: str = "rich"


@dataclass(frozen=True)
class ServiceConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    http_enabled: bool = True


@dataclass(frozen=True)
class AgentConfig:
    """Validated, immutable configuration for one agent process."""

    store: StoreConfig
    partners: tuple[PartnerConfig, ...]
    schedule: ScheduleConfig
    work_dir: Path
    logging: LoggingConfig = LoggingConfig()
    service: ServiceConfig = ServiceConfig()
    env: str = "dev"
    project_dir: Path | None = None

    def enabled_partners(self) -> tuple[PartnerConfig, ...]:
        return tuple(p for p in self.partners if p.enabled)

    def partner(self, partner_id: str) -> PartnerConfig:
        for partner in self.partners:
            if partner.partner_id == partner_id:
                return partner
        raise KeyError(f"Unknown partner: {partner_id}")

    def masked(self) -> dict[str, Any]:
        """Plain-dict view with secrets replaced, for display."""

        def _endpoint(ep: EndpointConfig) -> dict[str, Any]:
            return {
                "url": ep.url,
                "username": ep.username,
                "password": "***" if ep.password else None,
                "private_key_path": ep.private_key_path,
                "timeout_s": ep.timeout_s,
            }

        return {
            "env": self.env,
            "work_dir": str(self.work_dir),
            "store": {
                "type": self.store.type,
                "path": self.store.path if self.store.type == "duckdb" else None,
                "host": self.store.host if self.store.type == "postgres" else None,
                "database": self.store.database or None,
                "user": self.store.user or None,
                "password": "***" if self.store.password else None,
                "batch_size": self.store.batch_size,
            },
            "partners": [
                {
                    "id": p.partner_id,
                    "enabled": p.enabled,
                    "endpoint": _endpoint(p.endpoint),
                    "source": _endpoint(p.source),
                    "request_file": p.request_file,
                    "feedback_file": p.feedback_file,
                    "source_file": p.source_file,
                }
                for p in self.partners
            ],
            "schedule": {
                "ingest": {"every_s": self.schedule.ingest.every_s, "initial_delay_s": self.schedule.ingest.initial_delay_s},
                "export": {"every_s": self.schedule.export.every_s, "initial_delay_s": self.schedule.export.initial_delay_s},
            },
            "service": {"host": self.service.host, "port": self.service.port, "http_enabled": self.service.http_enabled},
        }


def partner_slug(partner_id: str) -> str:
    """``MFR-H`` -> ``mfrh``; used for default file names."""
    return partner_id.replace("-", "").replace("_", "").lower()


def build_agent_config(data: dict[str, Any], *, project_dir: Path | None = None, env: str = "dev") -> AgentConfig:
    """
    Validate a raw configuration mapping and build the immutable config.

    Every problem found is collected so a single startup failure reports all of them.

    Raises:
        ConfigurationError: If any required setting is missing or invalid
    """
    problems: list[str] = []

    store = _build_store(data.get("store") or {}, problems, project_dir)
    partners = _build_partners(data.get("partners"), problems)
    schedule = _build_schedule(data.get("schedule") or {}, problems)
    logging_cfg = _build_logging(data.get("logging") or {}, problems)
    service = _build_service(data.get("service") or {}, problems)

    work_dir_raw = data.get("work_dir")
    work_dir = Path(work_dir_raw) if work_dir_raw else Path(tempfile.gettempdir()) / "galedi"
    if project_dir is not None and not work_dir.is_absolute():
        work_dir = Path(project_dir) / work_dir

    if problems:
        raise ConfigurationError(
            "Invalid configuration:\n" + "\n".join(f"  - {p}" for p in problems),
            problems=problems,
        )

    return AgentConfig(
        store=store,
        partners=tuple(partners),
        schedule=schedule,
        work_dir=work_dir,
        logging=logging_cfg,
        service=service,
        env=str(data.get("env") or env),
        project_dir=Path(project_dir) if project_dir is not None else None,
    )


def _require_str(section: dict[str, Any], key: str, where: str, problems: list[str]) -> str:
    value = section.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        problems.append(f"{where}.{key} is required")
        return ""
    if has_unresolved_placeholder(value):
        problems.append(f"{where}.{key} references an unset environment variable: {value}")
        return ""
    return str(value)


def _positive_float(value: Any, where: str, problems: list[str], default: float) -> float:
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        problems.append(f"{where} must be a number, got {value!r}")
        return default
    if number <= 0:
        problems.append(f"{where} must be > 0, got {value!r}")
        return default
    return number


def _build_store(section: dict[str, Any], problems: list[str], project_dir: Path | None) -> StoreConfig:
    store_type = str(section.get("type", "duckdb")).lower()
    if store_type not in STORE_TYPES:
        problems.append(f"store.type must be one of {', '.join(STORE_TYPES)}, got {store_type!r}")
        return StoreConfig()

    batch_size = section.get("batch_size", DEFAULT_BATCH_SIZE)
    try:
        batch_size = int(batch_size)
        if batch_size <= 0:
            raise ValueError
    except (TypeError, ValueError):
        problems.append(f"store.batch_size must be a positive integer, got {section.get('batch_size')!r}")
        batch_size = DEFAULT_BATCH_SIZE

    if store_type == "duckdb":
        path = str(section.get("path", "data/galedi.duckdb"))
        if path != ":memory:" and project_dir is not None and not Path(path).is_absolute():
            path = str(Path(project_dir) / path)
        return StoreConfig(type="duckdb", path=path, batch_size=batch_size)

    host = _require_str(section, "host", "store", problems)
    database = _require_str(section, "database", "store", problems)
    user = _require_str(section, "user", "store", problems)
    try:
        port = int(section.get("port", 5432))
    except (TypeError, ValueError):
        problems.append(f"store.port must be an integer, got {section.get('port')!r}")
        port = 5432
    return StoreConfig(
        type="postgres",
        host=host,
        port=port,
        user=user,
        password=str(section.get("password") or ""),
        database=database,
        batch_size=batch_size,
    )


def _build_endpoint(section: Any, where: str, problems: list[str]) -> EndpointConfig | None:
    if not isinstance(section, dict):
        problems.append(f"{where} is required")
        return None

    url = _require_str(section, "url", where, problems)
    username = _require_str(section, "username", where, problems)
    password = section.get("password")
    private_key_path = section.get("private_key_path")
    if password is None and not private_key_path:
        problems.append(f"{where}.password is required")
    elif has_unresolved_placeholder(password):
        problems.append(f"{where}.password references an unset environment variable: {password}")

    if url:
        parsed = urlparse(url)
        if parsed.scheme.lower() not in SUPPORTED_SCHEMES:
            problems.append(f"{where}.url must use one of {', '.join(SUPPORTED_SCHEMES)}, got {url!r}")
        elif not parsed.hostname:
            problems.append(f"{where}.url has no host: {url!r}")

    timeout_s = _positive_float(section.get("timeout_s"), f"{where}.timeout_s", problems, 15.0)
    return EndpointConfig(
        url=url,
        username=username,
        password=None if password is None else str(password),
        private_key_path=str(private_key_path) if private_key_path else None,
        timeout_s=timeout_s,
    )


def _build_partners(section: Any, problems: list[str]) -> list[PartnerConfig]:
    if not isinstance(section, list) or not section:
        problems.append("partners must be a non-empty list")
        return []

    partners: list[PartnerConfig] = []
    seen: set[str] = set()
    for index, entry in enumerate(section):
        where = f"partners[{index}]"
        if not isinstance(entry, dict):
            problems.append(f"{where} must be a mapping")
            continue

        partner_id = str(entry.get("id", "")).strip()
        if partner_id not in KNOWN_PARTNERS:
            problems.append(f"{where}.id must be one of {', '.join(KNOWN_PARTNERS)}, got {partner_id!r}")
            continue
        if partner_id in seen:
            problems.append(f"{where}.id {partner_id} is configured more than once")
            continue
        seen.add(partner_id)

        enabled = bool(entry.get("enabled", True))
        slug = partner_slug(partner_id)
        feedback_file = str(entry.get("feedback_file") or f"{slug}_lvs.txt")
        source_file = str(entry.get("source_file") or f"{slug}_int.txt")
        request_file = str(entry.get("request_file") or DEFAULT_REQUEST_FILE)

        if not enabled:
            # Reserved partners may be listed without endpoints
            placeholder = EndpointConfig(url="", username="")
            endpoint = _build_endpoint(entry["endpoint"], f"{where}.endpoint", []) if "endpoint" in entry else None
            partners.append(
                PartnerConfig(
                    partner_id=partner_id,
                    endpoint=endpoint or placeholder,
                    source=endpoint or placeholder,
                    feedback_file=feedback_file,
                    source_file=source_file,
                    request_file=request_file,
                    enabled=False,
                )
            )
            continue

        endpoint = _build_endpoint(entry.get("endpoint"), f"{where}.endpoint", problems)
        source = endpoint
        if entry.get("source") is not None:
            source = _build_endpoint(entry.get("source"), f"{where}.source", problems)
        if endpoint is None or source is None:
            continue

        if feedback_file == source_file:
            problems.append(f"{where}: feedback_file and source_file must differ ({feedback_file})")

        partners.append(
            PartnerConfig(
                partner_id=partner_id,
                endpoint=endpoint,
                source=source,
                feedback_file=feedback_file,
                source_file=source_file,
                request_file=request_file,
                enabled=True,
            )
        )

    if partners and not any(p.enabled for p in partners):
        problems.append("at least one partner must be enabled")
    return partners


def _build_interval(section: Any, where: str, default_every: float, problems: list[str]) -> IntervalConfig:
    section = section if isinstance(section, dict) else {}
    every_s = _positive_float(section.get("every_s"), f"{where}.every_s", problems, default_every)
    initial = section.get("initial_delay_s")
    if initial is None:
        initial_delay_s = every_s
    else:
        try:
            initial_delay_s = float(initial)
        except (TypeError, ValueError):
            problems.append(f"{where}.initial_delay_s must be a number, got {initial!r}")
            initial_delay_s = every_s
        if initial_delay_s < 0:
            problems.append(f"{where}.initial_delay_s must be >= 0, got {initial!r}")
            initial_delay_s = every_s
    return IntervalConfig(every_s=every_s, initial_delay_s=initial_delay_s)


def _build_schedule(section: dict[str, Any], problems: list[str]) -> ScheduleConfig:
    return ScheduleConfig(
        ingest=_build_interval(section.get("ingest"), "schedule.ingest", DEFAULT_INGEST_EVERY_S, problems),
        export=_build_interval(section.get("export"), "schedule.export", DEFAULT_EXPORT_EVERY_S, problems),
    )


def _build_logging(section: dict[str, Any], problems: list[str]) -> LoggingConfig:
    console_type = str(section.get("console_type", "rich")).lower()
    if console_type not in ("rich", "plain"):
        problems.append(f"logging.console_type must be 'rich' or 'plain', got {console_type!r}")
        console_type = "rich"
    return LoggingConfig(
        level=str(section.get("level", "INFO")).upper(),
        file=section.get("file", "logs/galedi.log"),
        file_enabled=bool(section.get("file_enabled", True)),
        file_mode=str(section.get("file_mode", "a")),
        console_enabled=bool(section.get("console_enabled", True)),
        console_type=console_type,
    )


def _build_service(section: dict[str, Any], problems: list[str]) -> ServiceConfig:
    try:
        port = int(section.get("port", 8080))
    except (TypeError, ValueError):
        problems.append(f"service.port must be an integer, got {section.get('port')!r}")
        port = 8080
    return ServiceConfig(
        host=str(section.get("host", "127.0.0.1")),
        port=port,
        http_enabled=bool(section.get("http_enabled", True)),
    )
