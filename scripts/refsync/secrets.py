"""SEC token resolution.

The QRadar token can be given literally or as a reference to a cloud secret
manager, so that it never has to sit in a shell history or a .env file.
"""

from __future__ import annotations

import json
import logging
import os

from scripts.refsync.errors import ConfigError

logger = logging.getLogger("refsync.secrets")

_AWS_PREFIX = "aws-secret://"
_GCP_PREFIX = "gcp-secret://"


def resolve_secret(value: str) -> str:
    """Resolve a token reference to its plaintext value.

    Supported formats:
      - "aws-secret://secret-name"         -> AWS Secrets Manager
      - "aws-secret://secret-name#key"     -> AWS Secrets Manager (JSON key)
      - "gcp-secret://project/secret/ver"  -> GCP Secret Manager
      - anything else                      -> returned as-is
    """
    if value.startswith(_AWS_PREFIX):
        logger.info("Resolving SEC token from AWS Secrets Manager")
        return _from_aws(value[len(_AWS_PREFIX):])
    if value.startswith(_GCP_PREFIX):
        logger.info("Resolving SEC token from GCP Secret Manager")
        return _from_gcp(value[len(_GCP_PREFIX):])
    return value


def _from_aws(ref: str) -> str:
    import boto3
    from botocore.exceptions import BotoCoreError, ClientError

    secret_id, _, json_key = ref.partition("#")
    try:
        client = boto3.client(
            "secretsmanager", region_name=os.environ.get("AWS_REGION", "us-east-1")
        )
        secret = client.get_secret_value(SecretId=secret_id)["SecretString"]
    except (BotoCoreError, ClientError) as exc:
        raise ConfigError(f"cannot read AWS secret {secret_id!r}: {exc}") from exc
    if not json_key:
        return secret
    try:
        return str(json.loads(secret)[json_key])
    except (ValueError, KeyError) as exc:
        raise ConfigError(f"secret {secret_id!r} has no JSON key {json_key!r}") from exc


def _from_gcp(ref: str) -> str:
    if ref.startswith("projects/"):
        name = ref
    else:
        project = os.environ.get("GCP_PROJECT_ID", "")
        if not project:
            raise ConfigError(
                f"cannot resolve gcp-secret://{ref} without GCP_PROJECT_ID"
            )
        name = f"projects/{project}/secrets/{ref}/versions/latest"

    from google.api_core.exceptions import GoogleAPIError
    from google.auth.exceptions import GoogleAuthError
    from google.cloud import secretmanager

    try:
        client = secretmanager.SecretManagerServiceClient()
        response = client.access_secret_version(request={"name": name})
    except (GoogleAPIError, GoogleAuthError) as exc:
        raise ConfigError(f"cannot read GCP secret {name!r}: {exc}") from exc
    return response.payload.data.decode("UTF-8")
