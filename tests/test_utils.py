"""
Tests for core utilities and cluster authentication
"""

import pytest
from unittest.mock import Mock, patch

from kubernetes.client.rest import ApiException

from authz_sync.libs import core
from authz_sync.libs.core import KubeAuth
from authz_sync.libs.core.exceptions import (
    AlreadyExistsError, AuthenticationError, ConfigurationError, ConflictError,
    NotFoundError, StoreError
)
from authz_sync.libs.core.utils import (
    format_scope, handle_api_error, mask_sensitive_info, validate_cluster_url
)


class TestMaskSensitiveInfo:
    """Test masking of tokens and URLs in log output"""

    def test_token_keeps_prefix(self):
        # Arrange
        token = "sha256~abcdef123456"

        # Act
        masked = mask_sensitive_info(f"using token {token}", token=token)

        # Assert
        assert masked == "using token sha256~***MASKED***"

    def test_bearer_header(self):
        masked = mask_sensitive_info("Authorization: Bearer abc_def-123")
        assert masked == "Authorization: Bearer ***MASKED***"

    def test_url_hostname(self):
        # Arrange
        url = "https://api.cluster.example.com:6443"

        # Act
        masked = mask_sensitive_info(f"connecting to {url}", url=url)

        # Assert
        assert masked == "connecting to https://api.****.com:***"

    def test_empty_text(self):
        assert mask_sensitive_info("") == ""


class TestValidation:
    """Test input validation helpers"""

    @pytest.mark.parametrize("url", [
        "https://api.example.com:6443", "http://localhost:8080", "https://10.0.0.1"
    ])
    def test_valid_urls(self, url):
        assert validate_cluster_url(url) is True

    @pytest.mark.parametrize("url", ["", "ftp://example.com", "example.com"])
    def test_invalid_urls(self, url):
        with pytest.raises(ConfigurationError):
            validate_cluster_url(url)

    def test_format_scope(self):
        assert format_scope("ns1") == " in namespace ns1"
        assert format_scope(None) == ""


class TestHandleApiError:
    """Test translation of API failures into store errors"""

    @pytest.mark.parametrize("status,operation,expected", [
        (404, "get", NotFoundError),
        (409, "create", AlreadyExistsError),
        (409, "update", ConflictError),
        (500, "list", StoreError),
    ])
    def test_status_codes(self, status, operation, expected):
        # Arrange
        error = ApiException(status=status, reason="reason")

        # Act & Assert
        with pytest.raises(expected) as exc_info:
            handle_api_error(error, operation, "rolebindings", "view-alice", "ns1")

        assert type(exc_info.value) is expected
        assert exc_info.value.kind == "rolebindings"
        assert exc_info.value.namespace == "ns1"
        assert exc_info.value.__cause__ is error

    def test_unauthorized(self):
        with pytest.raises(StoreError, match="expired or is invalid"):
            handle_api_error(ApiException(status=401, reason="Unauthorized"), "list", "namespaces")


class TestKubeAuth:
    """Test client configuration without a cluster"""

    def test_url_requires_token(self):
        # Arrange
        auth = KubeAuth()

        # Act & Assert
        with pytest.raises(ConfigurationError, match="must be provided together"):
            auth.configure_auth(cluster_url="https://api.example.com:6443")

    def test_invalid_url_rejected(self):
        with pytest.raises(ConfigurationError):
            KubeAuth().configure_auth("not-a-url", "token")

    def test_explicit_url_and_token(self):
        """URL and token build clients without touching kubeconfig"""
        # Arrange
        auth = KubeAuth(skip_tls=True)

        # Act
        configured = auth.configure_auth("https://api.example.com:6443", "sha256~secret")

        # Assert
        assert configured is True
        assert auth.is_authenticated()
        rbac_api, core_api, custom_api = auth.get_kubernetes_clients()
        assert rbac_api is not None and core_api is not None and custom_api is not None
        assert auth.api_client.configuration.verify_ssl is False

    @patch("authz_sync.libs.core.auth.config")
    def test_no_context_available(self, mock_config):
        # Arrange
        mock_config.load_kube_config.side_effect = Exception("no kubeconfig")
        mock_config.load_incluster_config.side_effect = Exception("not in cluster")

        # Act
        configured = KubeAuth().configure_auth()

        # Assert
        assert configured is False

    def test_connection_check_requires_clients(self):
        with pytest.raises(AuthenticationError):
            KubeAuth().test_connection()

    def test_connection_failure(self):
        # Arrange
        auth = KubeAuth()
        auth.api_client = Mock()
        auth.rbac_api = Mock()
        auth.rbac_api.get_api_resources.side_effect = ApiException(status=403, reason="Forbidden")

        # Act & Assert
        with pytest.raises(AuthenticationError, match="Failed to connect"):
            auth.test_connection()


class TestPackageExports:
    """Test the public surface of the core package"""

    def test_every_exported_name_resolves(self):
        missing = [name for name in core.__all__ if not hasattr(core, name)]
        assert missing == []
