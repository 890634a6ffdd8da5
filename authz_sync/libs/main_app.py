"""
Main Application

Composition root: wires authentication, configuration, the object store, the
indexes, the lifecycle coordinators and the informers, and exposes them as
command-line commands.
"""

import argparse
import logging
import signal
import sys
import threading
from typing import Any, Dict, Iterable, List, Optional

try:
    import yaml
except ImportError:
    raise ImportError("PyYAML is required. Install with: pip install PyYAML")

from .authz import AuthzManager, register, register_indexes
from .controller import Controller, LifecycleRegistry
from .core import ConfigManager, KubeAuth, setup_logging
from .core.constants import ErrorMessages, KubernetesConstants
from .core.exceptions import AuthenticationError, AuthzSyncError, ConfigurationError
from .core.protocols import AuthProvider, ConfigProvider, ObjectStore
from .store import KubeStore, MemoryStore

logger = logging.getLogger(__name__)

Kinds = KubernetesConstants.ResourceName

# Object `kind` field -> store kind, for documents loaded by simulate
STORE_KIND_BY_OBJECT_KIND = {
    'RoleTemplate': Kinds.ROLE_TEMPLATES,
    'Project': Kinds.PROJECTS,
    'ProjectRoleTemplateBinding': Kinds.PROJECT_ROLE_TEMPLATE_BINDINGS,
    'ClusterRoleTemplateBinding': Kinds.CLUSTER_ROLE_TEMPLATE_BINDINGS,
    'Namespace': Kinds.NAMESPACES,
    'ClusterRole': Kinds.CLUSTER_ROLES,
    'RoleBinding': Kinds.ROLE_BINDINGS,
    'ClusterRoleBinding': Kinds.CLUSTER_ROLE_BINDINGS,
}


class AuthzSyncApp:
    """Main application orchestrator for the authz-sync engine"""

    def __init__(
        self,
        auth_provider: Optional[AuthProvider] = None,
        config_provider: Optional[ConfigProvider] = None,
        cluster_name: Optional[str] = None,
        skip_tls: bool = False
    ):
        """
        Initialize the application with dependency injection

        Args:
            auth_provider: Authentication provider (defaults to KubeAuth)
            config_provider: Configuration provider (defaults to ConfigManager)
            cluster_name: Cluster whose declarations are reconciled (overrides config)
            skip_tls: Whether to skip TLS verification
        """
        self.skip_tls = skip_tls
        self.auth = auth_provider or KubeAuth(skip_tls=skip_tls)
        self.config_manager = config_provider or ConfigManager()
        self.cluster_name = cluster_name or self.config_manager.get_value(
            'cluster.name', KubernetesConstants.DEFAULT_CLUSTER_NAME)

    def configure_authentication(self, cluster_url: str = None, cluster_token: str = None) -> bool:
        """
        Configure cluster access

        Returns:
            bool: True if the Kubernetes clients are ready
        """
        try:
            return self.auth.configure_auth(cluster_url, cluster_token)
        except (AuthenticationError, ConfigurationError) as e:
            logger.error(f"Failed to configure authentication: {e}")
            return False

    def build_kube_store(self) -> KubeStore:
        rbac_api, core_api, custom_api = self.auth.get_kubernetes_clients()
        if rbac_api is None:
            raise AuthenticationError(ErrorMessages.AuthError.NOT_CONFIGURED)
        return KubeStore(
            rbac_api, core_api, custom_api,
            request_timeout=self.config_manager.get_value('store.request_timeout')
        )

    def build_manager(self, store: ObjectStore) -> AuthzManager:
        """Declare the indexes on the store and build the manager for this cluster"""
        register_indexes(store)
        return AuthzManager(store, cluster_name=self.cluster_name)

    def build_registry(self, manager: AuthzManager) -> LifecycleRegistry:
        registry = LifecycleRegistry(
            max_retries=self.config_manager.get_value('hooks.max_retries'),
            backoff_seconds=self.config_manager.get_value('hooks.backoff_seconds')
        )
        register(manager, registry)
        return registry

    def run(self, stop_event: Optional[threading.Event] = None) -> int:
        """
        Watch the cluster and reconcile until stopped

        Returns:
            int: Exit code (0 for a clean stop, 1 for error)
        """
        store = self.build_kube_store()
        manager = self.build_manager(store)
        registry = self.build_registry(manager)
        controller = Controller(store, registry,
                                watch_timeout=self.config_manager.get_value('store.watch_timeout'))

        stop_event = stop_event or threading.Event()

        def request_stop(signum, _frame):
            logger.info(f"Received signal {signum}, stopping informers")
            stop_event.set()

        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGINT, request_stop)
            signal.signal(signal.SIGTERM, request_stop)

        logger.info(f"Starting authz-sync for cluster {self.cluster_name}")
        controller.start()
        stop_event.wait()
        controller.stop()
        controller.wait(timeout=self.config_manager.get_value('store.request_timeout'))
        logger.info("authz-sync stopped")
        return 0

    def resync(self) -> int:
        """
        Reconcile everything in the cluster once

        Returns:
            int: Exit code (0 if every reconciliation succeeded, 1 otherwise)
        """
        store = self.build_kube_store()
        manager = self.build_manager(store)
        for kind in Kinds:
            store.prime(kind)
        errors = manager.resync()
        return 1 if errors else 0

    def simulate(self, documents: Iterable[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
        """
        Reconcile a set of objects offline

        Args:
            documents: Kubernetes-shaped objects (role templates, projects,
                declarations, namespaces and optionally existing RBAC objects)

        Returns:
            Dict of resulting clusterroles, rolebindings and clusterrolebindings

        Raises:
            ConfigurationError: If a document has an unsupported kind
        """
        store = MemoryStore()
        manager = self.build_manager(store)
        for obj in expand_documents(documents):
            kind = STORE_KIND_BY_OBJECT_KIND.get(obj.get('kind'))
            if kind is None:
                raise ConfigurationError(f"Unsupported object kind in input: {obj.get('kind')!r}")
            store.create(kind, obj)
        store.clear_actions()

        errors = manager.resync()
        for error in errors:
            logger.warning(f"Simulation error: {error}")

        return {
            str(kind.value): sorted(
                store.list(kind),
                key=lambda o: (o['metadata'].get('namespace') or '', o['metadata']['name'])
            )
            for kind in (Kinds.CLUSTER_ROLES, Kinds.ROLE_BINDINGS, Kinds.CLUSTER_ROLE_BINDINGS)
        }


def expand_documents(documents: Iterable[Any]) -> List[Dict[str, Any]]:
    """Flatten `kind: List` documents and drop empty ones"""
    objects = []
    for document in documents:
        if not document:
            continue
        if not isinstance(document, dict):
            raise ConfigurationError(f"Input document must be a mapping, got {type(document).__name__}")
        if document.get('kind') == 'List':
            objects.extend(expand_documents(document.get('items') or []))
        else:
            objects.append(document)
    return objects


def load_documents(path: str) -> List[Dict[str, Any]]:
    """
    Load a multi-document YAML file

    Raises:
        ConfigurationError: If the file cannot be read or parsed
    """
    try:
        with open(path, 'r') as f:
            return list(yaml.safe_load_all(f))
    except OSError as e:
        raise ConfigurationError(f"Failed to read input file {path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in input file {path}: {e}")


def strip_server_fields(obj: Dict[str, Any]) -> Dict[str, Any]:
    """Drop uid and resourceVersion so simulation output is stable across runs"""
    metadata = {k: v for k, v in obj['metadata'].items() if k not in ('uid', 'resourceVersion')}
    return {**obj, 'metadata': metadata}


def create_argument_parser():
    """
    Create and configure argument parser with subcommands.

    Uses parent parsers for the argument groups shared between commands.
    """

    # Common parser: arguments shared by ALL commands
    common_parser = argparse.ArgumentParser(add_help=False)
    common_parser.add_argument(
        '--debug', action='store_true', help='Enable debug logging'
    )
    common_parser.add_argument('--config', help='Configuration file path')
    common_parser.add_argument(
        '--cluster-name', help='Cluster whose declarations are reconciled'
    )

    # Auth parser: arguments shared by commands that talk to the cluster
    auth_parser = argparse.ArgumentParser(add_help=False)
    auth_parser.add_argument(
        '--skip-tls', action='store_true',
        help='Skip TLS verification for insecure requests'
    )
    auth_parser.add_argument('--cluster-url', help='Kubernetes API server URL')
    auth_parser.add_argument('--cluster-token', help='Kubernetes bearer token')

    parser = argparse.ArgumentParser(
        prog='authz-sync',
        description=(
            'authz-sync - Reconcile role templates and role template bindings '
            'into ClusterRoles, RoleBindings and ClusterRoleBindings'
        )
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser(
        'run',
        parents=[common_parser, auth_parser],
        help='Watch the cluster and reconcile continuously',
        description='Start one informer per watched kind and reconcile until interrupted'
    )
    subparsers.add_parser(
        'resync',
        parents=[common_parser, auth_parser],
        help='Reconcile everything once',
        description='Reconcile every role template, project, binding and namespace once'
    )
    simulate_parser = subparsers.add_parser(
        'simulate',
        parents=[common_parser],
        help='Reconcile objects from a YAML file offline',
        description='Load objects into an in-memory store, reconcile them and print the result'
    )
    simulate_parser.add_argument('--input', required=True, help='Multi-document YAML file')
    generate_parser = subparsers.add_parser(
        'generate-config',
        parents=[common_parser],
        help='Generate configuration template',
        description='Generate a configuration template file with the default values'
    )
    generate_parser.add_argument('--output', help='Output directory for the template')

    return parser


def handle_run_command(args, app):
    sys.exit(app.run())


def handle_resync_command(args, app):
    sys.exit(app.resync())


def handle_simulate_command(args, app):
    """Handle simulate command: print the derived RBAC objects as YAML."""
    result = app.simulate(load_documents(args.input))
    documents = [strip_server_fields(obj) for objects in result.values() for obj in objects]
    yaml.safe_dump_all(documents, sys.stdout, default_flow_style=False, sort_keys=False)


def handle_generate_config_command(args, app):
    """Handle generate-config command: template to a file with --output, else stdout."""
    if args.output:
        config_file = app.config_manager.generate_config_template(args.output)
        print(f"✓ Configuration template generated: {config_file}")
    else:
        print(app.config_manager.get_config_template_content(), end='')


COMMAND_HANDLERS = {
    'run': handle_run_command,
    'resync': handle_resync_command,
    'simulate': handle_simulate_command,
    'generate-config': handle_generate_config_command,
}


def requires_authentication(command):
    """Determine if a command requires authentication"""
    return command in {'run', 'resync'}


def load_configuration(args) -> ConfigManager:
    """Load the configuration file if one was given; defaults apply otherwise"""
    config_manager = ConfigManager()
    if getattr(args, 'config', None):
        config_manager.load_config(args.config)
    return config_manager


def configure_ssl_warnings(skip_tls: bool = False):
    """Configure SSL warnings to show user-friendly message once"""
    if skip_tls:
        logger.warning(ErrorMessages.SSLError.VERIFICATION_DISABLED_WARNING)


def main():
    """Main entry point with unified execution flow"""
    parser = create_argument_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        config_manager = load_configuration(args)

        # Command-line flags win over the global section of the config file
        debug = args.debug or config_manager.get_value('global.debug', False)
        skip_tls = getattr(args, 'skip_tls', False) or config_manager.get_value('global.skip_tls', False)
        setup_logging(debug)
        configure_ssl_warnings(skip_tls)

        app = AuthzSyncApp(
            config_provider=config_manager,
            cluster_name=args.cluster_name,
            skip_tls=skip_tls
        )

        if requires_authentication(args.command):
            if not app.configure_authentication(args.cluster_url, args.cluster_token):
                print(f"Error: Failed to configure authentication for {args.command}",
                      file=sys.stderr)
                sys.exit(1)

        COMMAND_HANDLERS[args.command](args, app)

    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        sys.exit(1)
    except AuthzSyncError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
