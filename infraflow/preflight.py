"""
Preflight checks run before touching any infrastructure.
"""

import logging
import shutil
from typing import Callable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from .config import Settings
from .errors import PreflightError

logger = logging.getLogger(__name__)


def check_dependencies(settings: Settings, which: Callable[[str], Optional[str]] = shutil.which) -> None:
    """
    Ensure terraform, aws and kubectl are installed.

    Raises:
        PreflightError: Naming every missing tool
    """
    logger.info("Checking dependencies...")
    tools = [settings.terraform_bin, settings.aws_bin, settings.kubectl_bin]
    missing = [tool for tool in tools if which(tool) is None]
    if missing:
        raise PreflightError(
            f"{', '.join(missing)} not installed. Please install before continuing."
        )
    logger.info("All dependencies are installed.")


def check_aws_credentials(region: Optional[str] = None, client_factory: Callable = boto3.client) -> str:
    """
    Verify that AWS credentials are configured.

    Returns:
        Caller identity ARN

    Raises:
        PreflightError: If credentials are missing or rejected
    """
    logger.info("Checking AWS configuration...")
    try:
        sts = client_factory("sts", region_name=region)
        identity = sts.get_caller_identity()
    except NoCredentialsError as e:
        raise PreflightError("AWS credentials not configured. Please run 'aws configure' first.") from e
    except (ClientError, BotoCoreError) as e:
        raise PreflightError(f"AWS credentials rejected: {e}") from e

    logger.info("AWS credentials are configured.")
    return identity.get("Arn", "")
