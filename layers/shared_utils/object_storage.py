"""Cloudflare R2 access through its S3-compatible API."""
import logging
import os
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.config import Config

import constants
from exceptions import ConfigurationError

logger = logging.getLogger(__name__)

R2_ENV_VARS = (
    "CLOUDFLARE_ACCOUNT_ID",
    "CLOUDFLARE_R2_BUCKET",
    "CLOUDFLARE_R2_ACCESS_KEY_ID",
    "CLOUDFLARE_R2_SECRET_ACCESS_KEY",
)


@dataclass(frozen=True)
class R2Settings:
    account_id: str
    bucket: str
    access_key_id: str
    secret_access_key: str

    @property
    def endpoint_url(self) -> str:
        return f"https://{self.account_id}.r2.cloudflarestorage.com"

    @classmethod
    def from_env(cls) -> "R2Settings":
        missing = constants.missing_env_vars(*R2_ENV_VARS)
        if missing:
            logger.error(f"Missing Cloudflare credentials: {missing}")
            raise ConfigurationError(f"Missing Cloudflare credentials: {', '.join(missing)}", missing=missing)
        return cls(
            account_id=os.environ["CLOUDFLARE_ACCOUNT_ID"],
            bucket=os.environ["CLOUDFLARE_R2_BUCKET"],
            access_key_id=os.environ["CLOUDFLARE_R2_ACCESS_KEY_ID"],
            secret_access_key=os.environ["CLOUDFLARE_R2_SECRET_ACCESS_KEY"],
        )

    def client_kwargs(self) -> dict:
        """Keyword arguments shared by the boto3 and aioboto3 S3 clients."""
        return {
            "endpoint_url": self.endpoint_url,
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
            "region_name": "auto",
            "config": Config(signature_version="s3v4"),
        }


def build_client(settings: R2Settings) -> Any:
    return boto3.client("s3", **settings.client_kwargs())


def object_key(project_id: str, file_name: str) -> str:
    return f"media/{project_id}/{file_name}"


def project_prefix(project_id: str) -> str:
    return f"media/{project_id}/"


def public_url(settings: R2Settings, key: str) -> str:
    return f"https://{settings.bucket}.{settings.account_id}.r2.cloudflarestorage.com/{key}"


def presigned_get_url(client: Any, settings: R2Settings, key: str,
                      expires_in: int = constants.SIGNED_URL_EXPIRES_IN) -> str:
    return client.generate_presigned_url(
        "get_object",
        Params={"Bucket": settings.bucket, "Key": key},
        ExpiresIn=expires_in,
    )
