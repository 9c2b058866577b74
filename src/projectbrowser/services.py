from projectbrowser.activation.activator import DrushActivator
from projectbrowser.catalog.handler import EnabledSourceHandler
from projectbrowser.catalog.sources.registry import SOURCE_REGISTRY
from projectbrowser.config.settings import config
from projectbrowser.db.repositories.key_value import KeyValueFactory
from projectbrowser.db.session import get_db_manager
from projectbrowser.installer.install_state import INSTALL_STATE_COLLECTION, InstallState
from projectbrowser.installer.stage import STAGE_COLLECTION, Installer
from projectbrowser.installer.status import run_status_checks
from projectbrowser.installer.workflow import InstallerWorkflow


def get_key_value() -> KeyValueFactory:
    return KeyValueFactory(get_db_manager())


def get_activator() -> DrushActivator:
    return DrushActivator(config.site_root, config.drush_binary)


def get_source_handler(activator=None) -> EnabledSourceHandler:
    return EnabledSourceHandler(
        get_key_value(),
        config.enabled_sources,
        SOURCE_REGISTRY,
        activator=activator or get_activator(),
    )


def get_installer() -> Installer:
    return Installer(
        get_key_value().get(STAGE_COLLECTION),
        site_root=config.site_root,
        stage_root=config.stage_root,
        composer_binary=config.composer_binary,
        drush_binary=config.drush_binary,
        post_apply_command=config.post_apply_command,
        apply_timeout_seconds=config.apply_timeout_seconds,
    )


def get_install_state() -> InstallState:
    return InstallState(
        get_key_value().get(INSTALL_STATE_COLLECTION),
        ttl_seconds=config.install_state_ttl_seconds,
    )


def get_workflow() -> InstallerWorkflow:
    activator = get_activator()
    installer = get_installer()
    return InstallerWorkflow(
        installer=installer,
        install_state=get_install_state(),
        source_handler=get_source_handler(activator),
        activator=activator,
        status_checks=lambda: run_status_checks(installer, config.min_free_disk_mb),
        lock_grace_minutes=config.lock_grace_minutes,
        default_destination=config.default_destination,
    )
