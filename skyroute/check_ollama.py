"""Reachability probe and startup preflight for the Ollama query parser."""

import os
import sys
from typing import Any, Dict, Iterable, Optional

import requests

from skyroute import config
from utils.logging_utils import get_tagged_logger, mask_url_credentials

logger = get_tagged_logger(__name__, tag="check_ollama")

# SKYROUTE_AUTO_PULL_OLLAMA_MODELS=true|false
_AUTO_PULL_DEFAULT = os.getenv("SKYROUTE_AUTO_PULL_OLLAMA_MODELS", "false").lower() in ("1", "true", "yes")


def _base_url(base_url: Optional[str] = None) -> str:
    return str(base_url or config.settings.ollama_base_url).rstrip("/")


def _installed_model_names(tags_json: dict) -> set[str]:
    """Model names from /api/tags, with and without their `:tag` suffix."""
    names: set[str] = set()
    for m in tags_json.get("models", []):
        name = m.get("name")
        if not name:
            continue
        names.add(name)
        names.add(name.split(":")[0])
    return names


def get_ollama_status(
    required_models: Optional[Iterable[str]] = None,
    base_url: Optional[str] = None,
    timeout: float = 3.0,
) -> Dict[str, Any]:
    """
    Non-fatal probe of Ollama for the health route.

    Returns ``ok``, ``reachable``, ``base_url``, ``installed_models``,
    ``required_models``, ``missing_models``, ``models_ok`` and ``error``.
    Never exits the process.
    """
    url = _base_url(base_url)
    required_models = list(required_models or [])
    status: Dict[str, Any] = {
        "ok": False,
        "reachable": False,
        "base_url": mask_url_credentials(url),
        "installed_models": [],
        "required_models": required_models,
        "missing_models": [],
        "models_ok": False,
        "error": None,
    }

    try:
        resp = requests.get(f"{url}/api/tags", timeout=timeout)
        resp.raise_for_status()
        tags = resp.json()
    except (requests.exceptions.RequestException, ValueError) as e:
        status["error"] = str(e)
        return status

    status["reachable"] = True
    installed = _installed_model_names(tags)
    status["installed_models"] = sorted(installed)

    missing = [m for m in required_models if m not in installed]
    status["missing_models"] = missing
    status["models_ok"] = not missing
    status["ok"] = status["models_ok"]
    return status


def _pull_model(name: str, base_url: str) -> None:
    """Block on /api/pull for one model; exits the process on failure."""
    logger.info("Model not found; asking Ollama to pull it", extra={"model": name})
    try:
        with requests.post(f"{base_url}/api/pull", json={"name": name}, stream=True, timeout=None) as resp:
            resp.raise_for_status()
            for line in resp.iter_lines():
                if line and b'"status"' in line:
                    logger.info("[ollama] %s", line.decode("utf-8", errors="replace"))
    except requests.exceptions.RequestException as e:
        logger.error(
            "Failed to pull Ollama model; try `ollama pull %s` manually",
            name,
            extra={"error": str(e)},
        )
        sys.exit(1)

    if not get_ollama_status([name], base_url)["models_ok"]:
        logger.error("Model '%s' still not visible after pull", name)
        sys.exit(1)
    logger.info("Model '%s' is now available", name)


def check_ollama(
    required_models: Optional[Iterable[str]] = None,
    auto_pull: Optional[bool] = None,
    base_url: Optional[str] = None,
) -> None:
    """
    Startup preflight: exit(1) when Ollama is unreachable or a required model
    is missing and cannot be pulled.
    """
    if auto_pull is None:
        auto_pull = _AUTO_PULL_DEFAULT
    url = _base_url(base_url)
    required_models = list(required_models or [])
    status = get_ollama_status(required_models, url)

    if not status["reachable"]:
        logger.error(
            "Ollama is not reachable; start it with `ollama serve` or disable the parser with SKYROUTE_PARSER_BACKEND=none",
            extra={"base_url": status["base_url"], "error": status["error"]},
        )
        sys.exit(1)

    missing = status["missing_models"]
    if not missing:
        logger.info("Ollama reachable", extra={"base_url": status["base_url"], "models": required_models})
        return

    if auto_pull:
        for name in missing:
            _pull_model(name, url)
        return

    for m in missing:
        logger.error("Required Ollama model is not installed; run `ollama pull %s`", m)
    sys.exit(1)
