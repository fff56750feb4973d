import json
import os
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from claim_workflow import SessionError
from toll_models import Credentials


DEFAULT_SECRET_NAME = "turo-ezpass/turo/credentials"


class CredentialError(SessionError):
    pass


class CredentialProvider:
    """Host account credentials: AWS Secrets Manager first, environment as fallback.

    The fallback keeps the pipeline running when Secrets Manager is
    unreachable or the secret is mid-rotation.
    """

    def __init__(self, secret_name: Optional[str] = None, region: Optional[str] = None, client=None):
        self.secret_name = secret_name or os.getenv("HOST_CREDENTIALS_SECRET_NAME", DEFAULT_SECRET_NAME)
        self.region = region or os.getenv("AWS_REGION", "us-east-1")
        self._client = client

    def _secrets_client(self):
        if self._client is None:
            self._client = boto3.client("secretsmanager", region_name=self.region)
        return self._client

    def from_secrets_manager(self) -> Credentials:
        print(f"🔑 Retrieving host credentials from AWS Secrets Manager: {self.secret_name}")
        result = self._secrets_client().get_secret_value(SecretId=self.secret_name)
        data = json.loads(result["SecretString"])
        email, password = data.get("email"), data.get("password")
        if not email or not password:
            raise ValueError("Invalid credentials format - missing email or password")
        return Credentials(identifier=email, secret=password, source="secretsmanager")

    def from_environment(self) -> Optional[Credentials]:
        email = os.getenv("HOST_EMAIL")
        password = os.getenv("HOST_PASSWORD")
        if email and password:
            return Credentials(identifier=email, secret=password, source="environment")
        return None

    def get_credentials(self) -> Credentials:
        try:
            credentials = self.from_secrets_manager()
            print(f"✅ Credentials loaded (email length: {len(credentials.identifier)})")
            return credentials
        except (BotoCoreError, ClientError, KeyError, ValueError) as e:
            print(f"❌ Failed to retrieve host credentials: {e}")

        fallback = self.from_environment()
        if fallback:
            print("⚠️ Using fallback environment variable credentials")
            return fallback
        raise CredentialError(
            "No host credentials available: Secrets Manager failed and HOST_EMAIL/HOST_PASSWORD are not set"
        )
