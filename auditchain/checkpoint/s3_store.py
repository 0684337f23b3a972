"""
S3 checkpoint storage.

One object per checkpoint under {prefix}/, written with If-None-Match so an
existing anchor is never overwritten. Pair with a bucket that has Object
Lock (compliance mode) for retention the database owner cannot shorten.
"""

import logging
from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..core.errors import IntegrityError
from .model import ChainCheckpoint

logger = logging.getLogger(__name__)


class S3CheckpointStore:
    def __init__(
        self,
        bucket: str,
        prefix: str = "anchors",
        endpoint_url: Optional[str] = None,
        region: str = "us-east-1",
    ) -> None:
        """
        Initialize S3 checkpoint store.

        Credentials come from the standard AWS environment/profile chain.

        Raises:
            IntegrityError: If the bucket is not accessible
        """
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.s3_client = boto3.client("s3", endpoint_url=endpoint_url, region_name=region)
        try:
            self.s3_client.head_bucket(Bucket=bucket)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            raise IntegrityError(f"Bucket '{bucket}' not accessible (code: {code})") from e
        except BotoCoreError as e:
            raise IntegrityError(f"Failed to reach S3: {e}") from e

    def _key(self, checkpoint: ChainCheckpoint) -> str:
        return f"{self.prefix}/{checkpoint.filename}"

    def save(self, checkpoint: ChainCheckpoint) -> str:
        """
        Upload checkpoint.

        Returns:
            s3:// URI of the object

        Raises:
            IntegrityError: If the key already exists or the upload fails
        """
        key = self._key(checkpoint)
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=checkpoint.to_json().encode("utf-8"),
                ContentType="application/json",
                IfNoneMatch="*",
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("PreconditionFailed", "412"):
                raise IntegrityError(f"checkpoint already exists: s3://{self.bucket}/{key}") from e
            raise IntegrityError(f"Failed to upload checkpoint: {e}") from e
        except BotoCoreError as e:
            raise IntegrityError(f"Failed to upload checkpoint: {e}") from e
        logger.info("Uploaded chain checkpoint to s3://%s/%s", self.bucket, key)
        return f"s3://{self.bucket}/{key}"

    def load(self, key: str) -> ChainCheckpoint:
        if key.startswith("s3://"):
            key = key.split("/", 3)[3]
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            body = response["Body"].read().decode("utf-8")
        except (BotoCoreError, ClientError) as e:
            raise IntegrityError(f"Failed to read checkpoint {key}: {e}") from e
        return ChainCheckpoint.from_json(body)

    def list_checkpoints(self) -> List[str]:
        """Object keys, oldest entry first (paginated; S3 returns 1000 keys per call)."""
        keys = []
        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix + "/cp_"):
                for obj in page.get("Contents", []):
                    if obj["Key"].endswith(".json"):
                        keys.append(obj["Key"])
        except (BotoCoreError, ClientError) as e:
            raise IntegrityError(f"Failed to list checkpoints: {e}") from e
        return sorted(keys)

    def find_latest(self) -> Optional[str]:
        keys = self.list_checkpoints()
        return keys[-1] if keys else None
