import json
import logging

from Futebol.config import ConfigError
from Futebol.url_utils import canonicalize_url, is_blocked_url


logger = logging.getLogger(__name__)


def load_seed_file(path):
    """
    Read a grouped seed file:

        {"groups": [{"category": "clubes", "urls": ["https://...", ...]}, ...]}

    Returns:
        list of (url, category) pairs in file order
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"cannot read seed file {path}: {e}")

    if not isinstance(data, dict) or not isinstance(data.get("groups", []), list):
        raise ConfigError(f"seed file {path} must be an object with a \"groups\" list")

    seeds = []
    for group in data.get("groups", []):
        if not isinstance(group, dict) or not isinstance(group.get("urls", []), list):
            raise ConfigError(f"malformed seed group in {path}: {group!r}")
        category = group.get("category") or group.get("name")
        for url in group.get("urls", []):
            if isinstance(url, str):
                seeds.append((url, category))
    return seeds


def load_seeds(config):
    """
    Collect seeds from CrawlerConfig.seeds and the optional seed file, dropping
    malformed, deny-listed and duplicate URLs.

    Raises:
        ConfigError: when no usable seed remains
    """
    raw = [(url, None) for url in config.seeds]
    if config.seeds_file:
        raw.extend(load_seed_file(config.seeds_file))

    seeds = []
    seen = set()
    for url, category in raw:
        try:
            canonical = canonicalize_url(url)
        except ValueError:
            logger.warning(f"[SEED_SKIP] malformed seed: {url}")
            continue
        if is_blocked_url(canonical):
            logger.warning(f"[SEED_SKIP] deny-listed seed: {url}")
            continue
        if canonical in seen:
            continue
        seen.add(canonical)
        seeds.append((url.strip(), category))

    if not seeds:
        raise ConfigError("no seeds configured (set SEEDS, SEEDS_FILE or pass --seed)")
    return seeds
