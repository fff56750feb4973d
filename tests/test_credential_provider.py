import json
import os
import sys
import unittest
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from claim_workflow import SessionError
from credential_provider import DEFAULT_SECRET_NAME, CredentialError, CredentialProvider


def secret_client(payload):
    client = MagicMock()
    client.get_secret_value.return_value = {"SecretString": json.dumps(payload)}
    return client


def failing_client():
    client = MagicMock()
    client.get_secret_value.side_effect = ClientError(
        {"Error": {"Code": "ResourceNotFoundException", "Message": "not found"}}, "GetSecretValue"
    )
    return client


class TestCredentialProvider(unittest.TestCase):

    def test_secrets_manager_is_primary(self):
        client = secret_client({"email": "host@example.com", "password": "s3cret"})
        with patch.dict(os.environ, {"HOST_EMAIL": "env@example.com", "HOST_PASSWORD": "envpw"}):
            creds = CredentialProvider(client=client).get_credentials()
        self.assertEqual(creds.identifier, "host@example.com")
        self.assertEqual(creds.secret, "s3cret")
        self.assertEqual(creds.source, "secretsmanager")
        client.get_secret_value.assert_called_once_with(SecretId=DEFAULT_SECRET_NAME)

    def test_falls_back_to_environment(self):
        with patch.dict(os.environ, {"HOST_EMAIL": "env@example.com", "HOST_PASSWORD": "envpw"}):
            creds = CredentialProvider(client=failing_client()).get_credentials()
        self.assertEqual(creds.identifier, "env@example.com")
        self.assertEqual(creds.source, "environment")

    def test_incomplete_secret_falls_back(self):
        client = secret_client({"email": "host@example.com"})
        with patch.dict(os.environ, {"HOST_EMAIL": "env@example.com", "HOST_PASSWORD": "envpw"}):
            creds = CredentialProvider(client=client).get_credentials()
        self.assertEqual(creds.source, "environment")

    def test_no_source_is_session_error(self):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(CredentialError) as ctx:
                CredentialProvider(client=failing_client()).get_credentials()
        self.assertIsInstance(ctx.exception, SessionError)

    def test_secret_name_and_region_from_environment(self):
        with patch.dict(os.environ, {"HOST_CREDENTIALS_SECRET_NAME": "custom/secret", "AWS_REGION": "us-west-2"}):
            provider = CredentialProvider()
        self.assertEqual(provider.secret_name, "custom/secret")
        self.assertEqual(provider.region, "us-west-2")

    @patch("credential_provider.boto3.client")
    def test_client_created_lazily(self, mock_client):
        mock_client.return_value = secret_client({"email": "a@b.c", "password": "pw"})
        provider = CredentialProvider(region="us-east-1")
        mock_client.assert_not_called()
        provider.get_credentials()
        mock_client.assert_called_once_with("secretsmanager", region_name="us-east-1")


if __name__ == "__main__":
    unittest.main()
