"""
Authentication Module

Handles cluster authentication and context discovery for the Kubernetes API clients.
"""

import functools
import logging
from typing import Optional, Tuple

try:
    from kubernetes import client, config
    from kubernetes.client.rest import ApiException
except ImportError:
    raise ImportError("kubernetes library is required. Install with: pip install kubernetes")

from .exceptions import AuthenticationError, ConfigurationError
from .utils import validate_cluster_url, mask_sensitive_info

logger = logging.getLogger(__name__)


class KubeAuth:
    """Handles cluster authentication and context discovery"""

    def __init__(self, skip_tls: bool = False):
        """
        Initialize authentication handler

        Args:
            skip_tls: Whether to skip TLS verification for requests
        """
        self.skip_tls = skip_tls
        self.cluster_url = None
        self.api_client = None
        self.rbac_api = None
        self.core_api = None
        self.custom_api = None

    @staticmethod
    def _handle_auth_errors(func):
        """Wrap client initialization so any failure surfaces as AuthenticationError"""
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except AuthenticationError:
                raise
            except Exception as e:
                raise AuthenticationError(f"Kubernetes authentication failed: {e}") from e
        return wrapper

    def configure_auth(self, cluster_url: str = None, cluster_token: str = None) -> bool:
        """
        Configure authentication with provided URL and token, or discover from context

        Args:
            cluster_url: Cluster API URL (optional)
            cluster_token: Bearer token (optional)

        Returns:
            bool: True if authentication was configured successfully

        Raises:
            AuthenticationError: If authentication configuration fails
            ConfigurationError: If provided parameters are invalid
        """
        if cluster_url and cluster_token:
            validate_cluster_url(cluster_url)
            logger.info("Using provided cluster URL and token for authentication")
            configuration = client.Configuration()
            configuration.host = cluster_url
            configuration.api_key = {"authorization": cluster_token}
            configuration.api_key_prefix = {"authorization": "Bearer"}
            return self._initialize_api_clients(configuration)

        if cluster_url or cluster_token:
            raise ConfigurationError("Both --cluster-url and --cluster-token must be provided together")

        return self._discover_from_context()

    def _apply_tls_settings(self, configuration: client.Configuration) -> None:
        """Apply TLS settings to a Kubernetes configuration"""
        if self.skip_tls:
            configuration.verify_ssl = False
            configuration.ssl_ca_cert = None

            import urllib3
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @_handle_auth_errors
    def _initialize_api_clients(self, configuration: Optional[client.Configuration] = None) -> bool:
        """
        Initialize the RBAC, core and custom-object API clients

        Args:
            configuration: Optional Kubernetes configuration object

        Returns:
            bool: True if initialization successful
        """
        if configuration is None:
            configuration = client.Configuration.get_default_copy()
        self._apply_tls_settings(configuration)

        self.api_client = client.ApiClient(configuration)
        self.rbac_api = client.RbacAuthorizationV1Api(self.api_client)
        self.core_api = client.CoreV1Api(self.api_client)
        self.custom_api = client.CustomObjectsApi(self.api_client)

        self.cluster_url = configuration.host
        if self.cluster_url:
            masked_url = mask_sensitive_info(self.cluster_url, self.cluster_url)
            logger.info(f"Successfully configured Kubernetes client for {masked_url}")
        return True

    @_handle_auth_errors
    def _discover_from_context(self) -> bool:
        """
        Discover authentication from kubeconfig or in-cluster config

        Returns:
            bool: True if discovery successful
        """
        try:
            config.load_kube_config()
            logger.info("Successfully loaded kubeconfig")
        except Exception as kubeconfig_error:
            logger.warning(f"Failed to load kubeconfig: {kubeconfig_error}")
            try:
                config.load_incluster_config()
                logger.info("Successfully loaded in-cluster config")
            except Exception as incluster_error:
                logger.warning(f"Failed to load in-cluster config: {incluster_error}")
                return False

        return self._initialize_api_clients()

    def is_authenticated(self) -> bool:
        """Check if authentication is properly configured"""
        return self.api_client is not None

    def test_connection(self) -> bool:
        """
        Test the connection to the cluster

        Raises:
            AuthenticationError: If connection test fails
        """
        if not self.is_authenticated():
            raise AuthenticationError("Not authenticated - no Kubernetes client available")

        try:
            self.rbac_api.get_api_resources()
            logger.info("Successfully tested connection to the cluster")
            return True
        except ApiException as e:
            raise AuthenticationError(f"Failed to connect to the cluster: {e}")

    def get_kubernetes_clients(self) -> Tuple[Optional[client.RbacAuthorizationV1Api],
                                              Optional[client.CoreV1Api],
                                              Optional[client.CustomObjectsApi]]:
        """
        Get initialized Kubernetes API clients

        Returns:
            Tuple of (rbac_api, core_api, custom_api)
        """
        return self.rbac_api, self.core_api, self.custom_api
