"""Site migration between backends.

A migration runs three stages in order:

1. export: the source backend's hooks serialize the site into a SiteDataBundle
2. create: the site is created on the target backend from the exported config
3. import: the target backend's hooks restore the bundle into the new site

A failing stage aborts the migration with MigrationError naming the stage.
Nothing is rolled back: a site created in stage 2 stays on the target, and
the source site is never deleted.
"""

from __future__ import annotations

from collections.abc import Mapping

from pressbox.core.exceptions import (
    InvalidInputError,
    MigrationError,
    MigrationNotSupportedError,
)
from pressbox.core.logging import get_logger, sanitize_error, site_context
from pressbox.core.protocols import SiteDataHooksProtocol
from pressbox.services.environment import Backend, SiteDescriptor
from pressbox.services.lifecycle_dispatcher import LifecycleDispatcher

logger = get_logger(__name__)


class MigrationCoordinator:
    """Moves a site from one backend to the other through per-backend hooks."""

    def __init__(
        self,
        dispatcher: LifecycleDispatcher,
        hooks: Mapping[Backend, SiteDataHooksProtocol],
    ) -> None:
        self._dispatcher = dispatcher
        self._hooks = dict(hooks)

    def _hooks_for(
        self, backend: Backend, name: str, source: Backend, target: Backend
    ) -> SiteDataHooksProtocol:
        hooks = self._hooks.get(backend)
        if hooks is None:
            raise MigrationNotSupportedError(
                f"No export/import support registered for the {backend} environment",
                site_name=name,
                source=source.value,
                target=target.value,
            )
        return hooks

    async def migrate(self, name: str, source: Backend, target: Backend) -> bool:
        """Migrate ``name`` from ``source`` to ``target``.

        Raises:
            InvalidInputError: If source and target are the same backend
            MigrationNotSupportedError: If either backend has no hooks
            MigrationError: If a stage fails, chained to the cause
        """
        if source == target:
            raise InvalidInputError(
                "Source and target environments must differ",
                field="target",
                value=target.value,
            )

        source_hooks = self._hooks_for(source, name, source, target)
        target_hooks = self._hooks_for(target, name, source, target)

        def failed(stage: str, error: Exception) -> MigrationError:
            logger.error(
                f"Migration of {name} from {source} to {target} failed during {stage}: "
                f"{sanitize_error(error)}",
                extra={"stage": stage, "source": source.value, "target": target.value},
            )
            return MigrationError(
                f"Migration of '{name}' from {source} to {target} failed during {stage}: {error}",
                site_name=name,
                source=source.value,
                target=target.value,
                stage=stage,
            )

        with site_context(name):
            logger.info(f"Migrating site {name} from {source} to {target}")

            try:
                bundle = await source_hooks.export_site_data(name)
            except Exception as e:
                raise failed("export", e) from e

            try:
                descriptor = SiteDescriptor.model_validate(
                    {**bundle.config, "name": name, "backend": target}
                )
                created = await self._dispatcher.create(descriptor, allow_fallback=False)
            except Exception as e:
                raise failed("create", e) from e
            if not created:
                raise failed("create", RuntimeError(f"{target} backend declined to create the site"))

            try:
                await target_hooks.import_site_data(name, bundle)
            except Exception as e:
                raise failed("import", e) from e

            logger.info(
                f"Migrated site {name} from {source} to {target}",
                extra={"bytes": bundle.size_bytes},
            )
            return True
