# config.py
import logging
import os
from pathlib import Path
from typing import Optional

import yaml

from .constants import BASE_URL, CREDENTIALS_ENV, CREDENTIALS_PATH, POSTAL_CODE, REGION_MARKERS
from .models import Credentials, TargetConfig

logger = logging.getLogger(__name__)


def credentials_path(path: Optional[str] = None) -> Path:
    return Path(path or os.environ.get(CREDENTIALS_ENV) or CREDENTIALS_PATH)


def load_credentials(path: Optional[str] = None) -> Credentials:
    """Read ``identifier``/``secret`` from a YAML key-value file.

    A missing file, unreadable YAML or missing keys give incomplete credentials;
    operations that need to sign in fail on that instead of the process crashing.
    """
    source = credentials_path(path)
    try:
        with open(source, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning(f"Credentials file not found: {source}")
        return Credentials()
    except yaml.YAMLError as e:
        logger.warning(f"Could not parse credentials file {source}: {e}")
        return Credentials()

    if not isinstance(raw, dict):
        logger.warning(f"Credentials file {source} is not a mapping")
        return Credentials()

    creds = Credentials(str(raw.get("identifier") or ""), str(raw.get("secret") or ""))
    if creds.complete:
        logger.info(f"Credentials loaded from {source}")
    else:
        logger.warning(f"Credentials in {source} are missing 'identifier' or 'secret'")
    return creds


def target_config(base_url: str = BASE_URL, postal_code: str = POSTAL_CODE, region_markers=REGION_MARKERS) -> TargetConfig:
    return TargetConfig(base_url=base_url.rstrip("/"), postal_code=postal_code, region_markers=tuple(region_markers))
