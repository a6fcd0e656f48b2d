# config.py
"""
Runtime configuration.

Connection settings come from environment variables, or from a JSON secret in
AWS Secrets Manager when AD_SECRET_NAME is set. The secret uses the same keys
as the Lambda deployment: AD_DOMAIN, USERNAME, PASSWORD, HOST and BASE_DN.

SECURITY NOTES:
- Do NOT put credentials in this file. Use Secrets Manager or the environment.
"""

import os
import json
import logging
from dataclasses import dataclass
from typing import Optional

import boto3

from errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_GROUP = "Disabled Users"
DEFAULT_AUDIT_ATTRIBUTE = "extensionAttribute1"
DEFAULT_SYNC_TRANSPORT = "ntlm"


def env_flag(name: str, default: bool = False, environ=None) -> bool:
    value = (os.environ if environ is None else environ).get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    ad_domain: str
    username: str
    password: str
    host: str
    base_dn: Optional[str] = None
    use_ssl: bool = True
    audit_attribute: str = DEFAULT_AUDIT_ATTRIBUTE
    target_group: str = DEFAULT_GROUP
    sync_host: Optional[str] = None
    sync_username: Optional[str] = None
    sync_password: Optional[str] = None
    sync_transport: str = DEFAULT_SYNC_TRANSPORT
    skip_sync: bool = False


# --- Helper: Secrets Manager ---
def get_secret(secret_name: str) -> dict:
    """
    Retrieve JSON secret from AWS Secrets Manager.
    Raises exception if secret can't be retrieved.
    """
    client = boto3.client("secretsmanager")
    try:
        resp = client.get_secret_value(SecretId=secret_name)
        secret_str = resp.get("SecretString")
        if not secret_str:
            raise ConfigurationError("No SecretString found for secret: " + str(secret_name))
        return json.loads(secret_str)
    except Exception as e:
        logger.exception("Failed to fetch secret %s: %s", secret_name, e)
        raise


def load_settings(environ=None) -> Settings:
    """
    Build Settings from the environment (and Secrets Manager if configured).
    Raises ConfigurationError when AD_DOMAIN, USERNAME, PASSWORD or HOST is missing.
    """
    env = os.environ if environ is None else environ

    secret_name = env.get("AD_SECRET_NAME")
    if secret_name:
        secret = get_secret(secret_name)
        ad_domain = secret.get("AD_DOMAIN")
        username = secret.get("USERNAME")
        password = secret.get("PASSWORD")
        host = secret.get("HOST")
        base_dn = secret.get("BASE_DN")  # optional
    else:
        ad_domain = env.get("AD_DOMAIN")
        username = env.get("AD_USERNAME")
        password = env.get("AD_PASSWORD")
        host = env.get("AD_HOST")
        base_dn = env.get("AD_BASE_DN")

    missing = [name for name, value in (("AD_DOMAIN", ad_domain), ("USERNAME", username),
                                        ("PASSWORD", password), ("HOST", host)) if not value]
    if missing:
        raise ConfigurationError("Missing AD settings: " + ", ".join(missing))

    return Settings(
        ad_domain=ad_domain,
        username=username,
        password=password,
        host=host,
        base_dn=base_dn or None,
        use_ssl=env_flag("AD_USE_SSL", True, env),
        audit_attribute=env.get("AUDIT_ATTRIBUTE") or DEFAULT_AUDIT_ATTRIBUTE,
        target_group=env.get("TARGET_GROUP") or DEFAULT_GROUP,
        sync_host=env.get("SYNC_HOST") or host,
        sync_username=env.get("SYNC_USERNAME") or username,
        sync_password=env.get("SYNC_PASSWORD") or password,
        sync_transport=env.get("SYNC_TRANSPORT") or DEFAULT_SYNC_TRANSPORT,
        skip_sync=env_flag("SKIP_SYNC", False, env),
    )
