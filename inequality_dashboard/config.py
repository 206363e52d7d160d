"""Settings loading for the dashboard."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_SETTINGS_PATH = PROJECT_ROOT / 'config.yaml'
SETTINGS_ENV_VAR = 'INEQUALITY_DASHBOARD_CONFIG'

LOG_FORMAT = '%(asctime)s %(levelname)-8s %(name)s: %(message)s'

_console_handler: Optional[logging.Handler] = None


@dataclass
class DataConfig:
    income_csv: Path = Path('data/income-share-top-1-before-tax-wid.csv')
    gdp_csv: Path = Path('data/gdp-per-capita-worldbank.csv')
    geo_path: Optional[Path] = None
    share_column: str = 'Share (top 1%, before tax)'
    gdp_column: str = 'GDP per capita'


@dataclass
class ServerConfig:
    host: str = '0.0.0.0'
    port: int = 8000
    debug: bool = False


@dataclass
class ViewConfig:
    point_budget: int = 4000
    debounce_seconds: float = 0.05
    chart_height: int = 420


@dataclass
class Settings:
    root: Path
    data: DataConfig = field(default_factory=DataConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    view: ViewConfig = field(default_factory=ViewConfig)
    log_level: str = 'INFO'

    def resolve(self, path: Optional[Path]) -> Optional[Path]:
        if path is None:
            return None
        path = Path(path).expanduser()
        if path.is_absolute():
            return path
        return (self.root / path).resolve()

    def income_csv(self) -> Path:
        return self.resolve(self.data.income_csv)

    def gdp_csv(self) -> Path:
        return self.resolve(self.data.gdp_csv)

    def geo_path(self) -> Optional[Path]:
        return self.resolve(self.data.geo_path)


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")
    with path.open('r', encoding='utf-8') as fh:
        return yaml.safe_load(fh) or {}


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load settings from YAML.

    An explicit path (argument or environment variable) must exist. When
    neither is given and the project ``config.yaml`` is absent, the built-in
    defaults are used with the project root as base directory.
    """
    explicit = path or os.environ.get(SETTINGS_ENV_VAR)
    if explicit:
        cfg_path = Path(explicit).expanduser()
        raw = _load_yaml(cfg_path)
    elif DEFAULT_SETTINGS_PATH.exists():
        cfg_path = DEFAULT_SETTINGS_PATH
        raw = _load_yaml(cfg_path)
    else:
        return Settings(root=PROJECT_ROOT)

    data_raw = raw.get('data', {}) or {}
    defaults = DataConfig()
    geo = data_raw.get('geo_path')
    data_cfg = DataConfig(
        income_csv=Path(data_raw.get('income_csv', defaults.income_csv)),
        gdp_csv=Path(data_raw.get('gdp_csv', defaults.gdp_csv)),
        geo_path=Path(geo) if geo else None,
        share_column=str(data_raw.get('share_column', defaults.share_column)),
        gdp_column=str(data_raw.get('gdp_column', defaults.gdp_column)),
    )

    server_raw = raw.get('server', {}) or {}
    server_cfg = ServerConfig(
        host=str(server_raw.get('host', ServerConfig.host)),
        port=int(server_raw.get('port', ServerConfig.port)),
        debug=bool(server_raw.get('debug', ServerConfig.debug)),
    )

    view_raw = raw.get('view', {}) or {}
    view_cfg = ViewConfig(
        point_budget=int(view_raw.get('point_budget', ViewConfig.point_budget)),
        debounce_seconds=float(view_raw.get('debounce_seconds', ViewConfig.debounce_seconds)),
        chart_height=int(view_raw.get('chart_height', ViewConfig.chart_height)),
    )
    if view_cfg.point_budget < 1:
        raise ValueError(f"view.point_budget must be positive, got {view_cfg.point_budget}")

    root = raw.get('root')
    root_path = Path(root).expanduser() if root else cfg_path.resolve().parent

    return Settings(
        root=root_path,
        data=data_cfg,
        server=server_cfg,
        view=view_cfg,
        log_level=str(raw.get('log_level', 'INFO')).upper(),
    )


def configure_logging(level: str = 'INFO') -> None:
    """Install a single console handler on the root logger."""
    global _console_handler
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    if _console_handler is None:
        _console_handler = logging.StreamHandler()
        _console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    if _console_handler not in root.handlers:
        root.addHandler(_console_handler)
