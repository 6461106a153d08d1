"""
Uploads renditions to the Cloudflare R2 bucket served by the CDN.

R2 speaks the S3 API, so the upload goes through a regular boto3 S3 client
pointed at the account endpoint.
"""

from pathlib import Path
from typing import Any, Optional, Union

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import get_logger, R2Config
from .config import content_type_for
from .error_tracker import UploadError

logger = get_logger(__name__)


class R2Publisher:
    """Uploads local files to an R2 bucket."""

    def __init__(self, config: R2Config, client: Optional[Any] = None):
        self.config = config
        self.client = client or boto3.client('s3', **config.to_boto3_kwargs())

    def upload(self, local_path: Union[str, Path], remote_key: str) -> None:
        """
        Upload a local file under the given key.

        Raises:
            UploadError: If the file cannot be read or the upload is rejected
        """
        content_type = content_type_for(local_path)
        logger.info(f"Uploading {local_path} to bucket {self.config.bucket} with key {remote_key} ({content_type})")

        try:
            with open(local_path, 'rb') as body:
                self.client.put_object(
                    Bucket=self.config.bucket,
                    Key=remote_key,
                    Body=body,
                    ContentType=content_type,
                )
        except OSError as e:
            raise UploadError(f"Failed to open file {local_path}: {e}", source_id=remote_key)
        except (BotoCoreError, ClientError) as e:
            raise UploadError(
                f"Failed to upload {local_path} to R2: {e}",
                source_id=remote_key,
                recovery_suggestion="Check the R2 credentials and bucket; the candidate is kept for the next run"
            )

        logger.info(f"Uploaded {local_path} as {remote_key}")
