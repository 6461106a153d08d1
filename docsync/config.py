from pathlib import Path
import dotenv
import logging
import os
from typing import Optional, Dict, Any
from dataclasses import dataclass
from urllib.parse import urlparse


ROOT = Path(__file__).parent.parent

dotenv.load_dotenv(ROOT / '.env')

def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name"""
    return logging.getLogger(name)


# Defaults
DEFAULT_OUTPUT_DIR = '.data'
DEFAULT_FORMATS = ['pdf', 'docx', 'txt', 'odt', 'md']
DEFAULT_EXPORT_URL_TEMPLATE = 'https://docs.google.com/document/d/{document_id}/export?format={format}'
DEFAULT_KEY_TEMPLATE = 'resume-{lang}.{format}'
DEFAULT_FETCH_TIMEOUT = 60
ARCHIVE_TIMESTAMP_FORMAT = '%y%m%d-%H%M'

# Environment variable names
ENV_DOCUMENTS = 'DOCSYNC_DOCUMENTS'
ENV_FORMATS = 'DOCSYNC_FORMATS'
ENV_OUTPUT_DIR = 'DOCSYNC_OUTPUT_DIR'
ENV_KEY_TEMPLATE = 'DOCSYNC_KEY_TEMPLATE'


@dataclass(frozen=True)
class R2Config:
    """Connection settings for the Cloudflare R2 bucket the renditions are published to"""
    account_id: str
    access_key_id: str
    secret_access_key: str
    public_api: str
    bucket: str
    region: str = 'auto'

    @property
    def endpoint_url(self) -> str:
        return f'https://{self.account_id}.r2.cloudflarestorage.com'

    @classmethod
    def from_environment(cls, environ: Optional[Dict[str, str]] = None) -> 'R2Config':
        """
        Create R2 configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            R2Config instance

        Raises:
            ValueError: If required environment variables are missing or malformed
        """
        environ = os.environ if environ is None else environ

        account_id = environ.get('CLOUDFLARE_ACCOUNT_ID')
        access_key_id = environ.get('CLOUDFLARE_R2_ACCESS_KEY_ID')
        secret_access_key = environ.get('CLOUDFLARE_R2_SECRET_ACCESS_KEY')
        public_api = environ.get('CLOUDFLARE_R2_PUBLIC_API')

        missing_vars = []
        if not public_api:
            missing_vars.append('CLOUDFLARE_R2_PUBLIC_API')
        if not account_id:
            missing_vars.append('CLOUDFLARE_ACCOUNT_ID')
        if not access_key_id:
            missing_vars.append('CLOUDFLARE_R2_ACCESS_KEY_ID')
        if not secret_access_key:
            missing_vars.append('CLOUDFLARE_R2_SECRET_ACCESS_KEY')

        if missing_vars:
            raise ValueError(f"Missing required Cloudflare R2 environment variables: {', '.join(missing_vars)}")

        parsed = urlparse(public_api)  # type: ignore - validated above
        bucket = parsed.path.strip('/')
        if not parsed.scheme or not parsed.netloc or not bucket:
            raise ValueError(
                f"CLOUDFLARE_R2_PUBLIC_API must look like https://<host>/<bucket>, got: {public_api}"
            )

        return cls(
            account_id=account_id,  # type: ignore - validated above
            access_key_id=access_key_id,  # type: ignore - validated above
            secret_access_key=secret_access_key,  # type: ignore - validated above
            public_api=public_api,  # type: ignore - validated above
            bucket=bucket,
        )

    def to_boto3_kwargs(self) -> Dict[str, Any]:
        """
        Convert configuration to boto3 S3 client kwargs.

        Returns:
            Dictionary of kwargs for boto3.client('s3', ...)
        """
        return {
            'endpoint_url': self.endpoint_url,
            'aws_access_key_id': self.access_key_id,
            'aws_secret_access_key': self.secret_access_key,
            'region_name': self.region,
        }
