"""Dependency injection container.

Builds the object graph once at app start. Collaborators the host owns (the
navigation runtime, a billing SDK) are passed in; everything else is chosen
from settings, with mock backends when external services are disabled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging

from confluency.adapters.mock import MockIdentityProvider, MockUserDataBackend
from confluency.adapters.supabase import SupabaseIdentityProvider, SupabaseUserDataGateway
from confluency.core.config import Settings, get_settings
from confluency.models.diagnostics import DeviceSnapshot
from confluency.ports.auth_ports import IdentityProvider
from confluency.ports.billing_ports import EntitlementProvider
from confluency.ports.data_ports import UserDataInitializer, UserDataVerifier
from confluency.ports.network_ports import ConnectivityMonitor, NavigationRuntime
from confluency.ports.storage import KeyValueStore
from confluency.services.app_coordinator import AuthCoordinator
from confluency.services.auth_service import AuthenticationService
from confluency.services.connectivity import HttpConnectivityMonitor, ManualConnectivityMonitor
from confluency.services.diagnostics import DiagnosticsSink, collect_device_snapshot
from confluency.services.navigation_reconciler import AuthNavigationReconciler
from confluency.services.session_observer import AuthSessionObserver
from confluency.services.status_store import PersistentStatusStore
from confluency.services.subscription_service import SubscriptionService
from confluency.services.tutor_client import TutorClient
from confluency.services.user_initialization import UserInitializationStateMachine
from confluency.storage import create_key_value_store

logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """Every long-lived object of the client core."""

    settings: Settings
    kv_store: KeyValueStore
    connectivity: ConnectivityMonitor
    diagnostics: DiagnosticsSink
    identity_provider: IdentityProvider
    status_store: PersistentStatusStore
    state_machine: UserInitializationStateMachine
    observer: AuthSessionObserver
    reconciler: AuthNavigationReconciler
    coordinator: AuthCoordinator
    auth_service: AuthenticationService
    tutor_client: TutorClient
    subscriptions: SubscriptionService | None = None
    closers: list = field(default_factory=list)

    async def aclose(self) -> None:
        """Stop the coordinator and release network clients."""
        await self.coordinator.stop()
        for close in self.closers:
            await close()


def create_connectivity_monitor(settings: Settings) -> ConnectivityMonitor:
    if settings.connectivity_probe_url and not settings.skip_external_services:
        return HttpConnectivityMonitor(
            settings.connectivity_probe_url,
            timeout=settings.connectivity_probe_timeout_seconds,
        )
    return ManualConnectivityMonitor()


def create_container(
    settings: Settings | None = None,
    *,
    kv_store: KeyValueStore | None = None,
    identity_provider: IdentityProvider | None = None,
    user_data: tuple[UserDataVerifier, UserDataInitializer] | None = None,
    connectivity: ConnectivityMonitor | None = None,
    navigation_runtime: NavigationRuntime | None = None,
    entitlement_provider: EntitlementProvider | None = None,
    device_info: DeviceSnapshot | None = None,
) -> AppContainer:
    """Wire the client core.

    Args:
        settings: Configuration, defaults to ``get_settings()``
        kv_store: Overrides the store chosen by ``STORAGE_BACKEND``
        identity_provider: Overrides the Supabase or mock provider
        user_data: (verifier, initializer) pair overriding the defaults
        connectivity: Overrides the connectivity monitor
        navigation_runtime: Host navigation container, may be attached later
        entitlement_provider: Billing SDK; without one there is no
            subscription service
        device_info: Device description attached to diagnostics

    Returns:
        The wired container
    """
    settings = settings or get_settings()
    closers: list = []

    kv_store = kv_store or create_key_value_store(settings)
    connectivity = connectivity or create_connectivity_monitor(settings)
    diagnostics = DiagnosticsSink(
        connectivity=connectivity,
        device_info=device_info or collect_device_snapshot(settings.app_version),
        fetch_timeout=settings.diagnostics_fetch_timeout_seconds,
    )

    use_mocks = settings.should_use_mock_services()
    if identity_provider is None:
        if use_mocks:
            logger.info("Using mock identity provider")
            identity_provider = MockIdentityProvider()
        else:
            supabase_provider = SupabaseIdentityProvider(
                settings.supabase_url,
                settings.supabase_anon_key,
                kv_store,
                email_redirect_url=settings.email_redirect_url,
                timeout=settings.collaborator_timeout_seconds,
            )
            closers.append(supabase_provider.aclose)
            identity_provider = supabase_provider

    if user_data is None:
        if use_mocks:
            backend = MockUserDataBackend()
            user_data = (backend, backend)
        else:
            token_source = (
                identity_provider.get_access_token
                if isinstance(identity_provider, SupabaseIdentityProvider)
                else None
            )
            gateway = SupabaseUserDataGateway(
                settings.supabase_url,
                settings.supabase_anon_key,
                settings.tutor_api_url,
                token_source=token_source,
                timeout=settings.collaborator_timeout_seconds,
            )
            user_data = (gateway, gateway)
    verifier, initializer = user_data

    status_store = PersistentStatusStore(kv_store, key=settings.init_status_key)
    state_machine = UserInitializationStateMachine(
        verifier,
        initializer,
        status_store,
        diagnostics,
        connectivity,
        call_timeout=settings.collaborator_timeout_seconds,
    )
    observer = AuthSessionObserver(identity_provider, diagnostics)
    reconciler = AuthNavigationReconciler(
        diagnostics,
        runtime=navigation_runtime,
        debounce_seconds=settings.navigation_debounce_seconds,
        retry_policy=settings.get_navigation_retry_policy(),
        main_route=settings.main_route,
        auth_route=settings.auth_route,
    )

    subscriptions = (
        SubscriptionService(entitlement_provider, kv_store)
        if entitlement_provider is not None
        else None
    )
    coordinator = AuthCoordinator(
        observer, state_machine, reconciler, diagnostics, subscriptions=subscriptions
    )

    tutor_client = TutorClient(
        settings.tutor_api_url, timeout=settings.tutor_request_timeout_seconds
    )
    closers.append(tutor_client.aclose)

    logger.info(
        "Container created (environment=%s, storage=%s, mocks=%s)",
        settings.environment,
        settings.storage_backend,
        use_mocks,
    )
    return AppContainer(
        settings=settings,
        kv_store=kv_store,
        connectivity=connectivity,
        diagnostics=diagnostics,
        identity_provider=identity_provider,
        status_store=status_store,
        state_machine=state_machine,
        observer=observer,
        reconciler=reconciler,
        coordinator=coordinator,
        auth_service=AuthenticationService(identity_provider, kv_store),
        tutor_client=tutor_client,
        subscriptions=subscriptions,
        closers=closers,
    )
