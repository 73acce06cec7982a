import logging
from collections.abc import Iterable

import httpx

logger = logging.getLogger("books_api.vault")

SECRET_KEYS = ("database_url", "jwt_secret_key")


def fetch_vault_secret(
    *, addr: str, token: str, mount: str, path: str, keys: Iterable[str] = SECRET_KEYS
) -> dict[str, str]:
    url = f"{addr.rstrip('/')}/v1/{mount}/data/{path.lstrip('/')}"
    with httpx.Client(timeout=5.0) as client:
        resp = client.get(url, headers={"X-Vault-Token": token})
        resp.raise_for_status()
        payload = resp.json()

    # KV v2 nests the secret under data.data
    data = payload.get("data", {}).get("data", {}) or {}
    secret = {key: data[key] for key in keys if data.get(key)}
    logger.info("vault.secret.loaded", extra={"vault_path": path, "keys": sorted(secret)})
    return secret
