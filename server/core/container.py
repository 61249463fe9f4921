"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from services.execution import StatusBroadcaster, WorkflowExecutor
from services.llm import (
    ProviderClient,
    ProviderPool,
    ResilienceContext,
    RetryPolicy,
    discover_credentials,
)
from services.node_executor import NodeExecutor


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Process-wide exhausted keys and response cache
    resilience_context = providers.Singleton(
        ResilienceContext.from_settings,
        settings=settings
    )

    provider_client = providers.Singleton(
        ProviderClient,
        settings=settings
    )

    retry_policy = providers.Singleton(
        RetryPolicy.from_settings,
        settings=settings
    )

    credentials = providers.Singleton(
        discover_credentials,
        settings=settings
    )

    provider_pool = providers.Singleton(
        ProviderPool,
        credentials=credentials,
        client=provider_client,
        context=resilience_context,
        retry_policy=retry_policy,
        simulation_mode=settings.provided.llm_simulation_mode
    )

    # Execution
    node_executor = providers.Singleton(
        NodeExecutor,
        provider_pool=provider_pool,
        settings=settings
    )

    status_broadcaster = providers.Singleton(
        StatusBroadcaster,
        queue_size=settings.provided.status_queue_size
    )

    workflow_executor = providers.Singleton(
        WorkflowExecutor,
        node_executor=node_executor,
        broadcaster=status_broadcaster
    )


# Global container instance
container = Container()
