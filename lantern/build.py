"""Site loading and wiring for Lantern.

This module loads the site and theme configuration, assembles the pipeline
modules (renderer, processor, generator, decorator, translator) around a Site
and hands them to a Router.

Key functions:
- load_config: Loads and resolves siteConfig.yml.
- load_site: Creates the Site with site and theme configuration.
- create_router: Wires the built-in pipeline for a Site.
- build_site: Builds the site to disk.
- serve_site: Serves the site with incremental rebuilds.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

from .content import Site
from .errors import ConfigError
from .generators import Generator, register_builtin_generators
from .logging import get_logger
from .processors import Processor, register_builtin_processors
from .renderers import Renderer, register_builtin_renderers
from .templates import Decorator, create_environment
from .translator import Translator

logger = get_logger("build")

CONFIG_FILENAME = "siteConfig.yml"
THEME_CONFIG_FILENAME = "themeConfig.yml"

DEFAULT_CONFIG: dict[str, Any] = {
    "title": "",
    "srcDir": "srcs",
    "docDir": "docs",
    "themeDir": "themes/default",
    "baseURL": "",
    "rootDir": "/",
    "indexDir": "",
    "archiveDir": "archives",
    "categoryDir": "categories",
    "tagDir": "tags",
    "perPage": 10,
    "skipRender": [],
    "language": "default",
    "highlight": {},
}


def _read_yaml(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


def load_config(work_dir: Path, config_path: Path | None = None) -> dict[str, Any]:
    """Load site configuration from siteConfig.yml.

    Directories are resolved against the work directory and `themeSrcDir`
    is derived from `themeDir`.

    Args:
        work_dir: Root directory of the project.
        config_path: Optional explicit configuration file.

    Returns:
        Dictionary containing configuration values, with defaults applied.

    Raises:
        ConfigError: If the file is missing, unparsable or not a mapping.
    """
    path = Path(config_path) if config_path else work_dir / CONFIG_FILENAME
    try:
        loaded = _read_yaml(path)
    except FileNotFoundError:
        raise ConfigError(f"Cannot find site config at {path}") from None
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read site config {path}: {exc}") from exc
    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Site config {path} must be a mapping")

    config = copy.deepcopy(DEFAULT_CONFIG)
    config.update({k: v for k, v in loaded.items() if v is not None})
    for key in ("srcDir", "docDir", "themeDir"):
        config[key] = (work_dir / str(config[key])).resolve()
    config["themeSrcDir"] = config["themeDir"] / "srcs"
    config["rootDir"] = str(config.get("rootDir") or "/")
    if not isinstance(config["skipRender"], list):
        config["skipRender"] = [config["skipRender"]]
    config["skipRender"] = [str(p) for p in config["skipRender"]]
    return config


def load_theme_config(work_dir: Path) -> dict[str, Any]:
    """Load themeConfig.yml, which is optional.

    Raises:
        ConfigError: If the file exists but is invalid.
    """
    path = work_dir / THEME_CONFIG_FILENAME
    if not path.exists():
        logger.warning("Continuing with an empty theme config...")
        return {}
    try:
        loaded = _read_yaml(path)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read theme config {path}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Theme config {path} must be a mapping")
    return loaded


def load_site(work_dir: Path, config_path: Path | None = None) -> Site:
    """Create a Site with its configuration loaded."""
    work_dir = Path(work_dir).resolve()
    site = Site(work_dir)
    site.site_config = load_config(work_dir, config_path)
    site.theme_config = load_theme_config(work_dir)
    return site


def create_router(site: Site):
    """Wire the built-in pipeline modules around a Site.

    Args:
        site: Site with configuration loaded.

    Returns:
        Router ready to build or serve.
    """
    from .router import Router

    config = site.site_config
    env = create_environment(config)
    renderer = Renderer(config.get("skipRender"))
    processor = Processor()
    generator = Generator()
    translator = Translator()
    translator.load_dir(Path(config["themeDir"]) / "languages")
    decorator = Decorator(env, Path(config["themeDir"]) / "layouts")

    register_builtin_renderers(renderer, site, env)
    register_builtin_processors(processor)
    register_builtin_generators(generator)
    return Router(site, renderer, processor, generator, decorator, translator)


def build_site(work_dir: Path, config_path: Path | None = None) -> Site:
    """Build the entire static site into docDir.

    Args:
        work_dir: Root directory of the project.
        config_path: Optional explicit configuration file.

    Returns:
        The built Site.
    """
    site = load_site(work_dir, config_path)
    router = create_router(site)
    router.build()
    return router.site


def serve_site(
    work_dir: Path,
    config_path: Path | None = None,
    ip: str = "localhost",
    port: int = 2333,
    ws_port: int | None = None,
    live_reload: bool = False,
) -> None:  # pragma: no cover - integration path
    """Serve the site from memory, rebuilding on source changes."""
    from .server import DevServer

    site = load_site(work_dir, config_path)
    router = create_router(site)
    router.prepare_serve()
    DevServer(router, ip=ip, port=port, ws_port=ws_port, live_reload=live_reload).start()
