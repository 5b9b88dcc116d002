"""
mod_manager.py
ModManager: the single entry point for changes to installed mods.

Every mutating operation (initialize, install_archive, set_mod_enabled,
remove_mod, rescan_plugins) runs under one re-entrant lock, so registry
writes and overlay actions are applied in the order they were requested
even when a front end calls from worker threads.

Entry points never raise for expected failures; they return an
OperationResult whose message is suitable for showing to the user.
"""

from __future__ import annotations

import logging
import shutil
import threading
from dataclasses import dataclass, field
from pathlib import Path

from Utils.deploy import (
    OverlayError,
    copy_base_plugins,
    disable_mod,
    enable_mod,
    reconcile,
)
from Utils.install_mod import InstallError, InstallIncomplete, install_mod_from_archive
from Utils.mod_registry import ModRecord, ModRegistry, RegistryError
from Utils.plugin_parser import PluginInfo, check_missing_masters, scan_plugins
from Utils.tool_assets import cleanup_tool_assets, deploy_tool_assets
from Utils.workspace import ConfigError, WorkspaceConfig

log = logging.getLogger(__name__)


@dataclass
class OperationResult:
    ok: bool
    message: str = ""
    record: ModRecord | None = None
    warnings: list[str] = field(default_factory=list)


class ModManager:

    def __init__(self, config: WorkspaceConfig, log_fn=None):
        self.config = config
        self._log = log_fn or (lambda _: None)
        self._lock = threading.RLock()
        self._records: list[ModRecord] = []
        self._registry: ModRegistry | None = None
        self.plugins: list[PluginInfo] = []
        self.initialized = False

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    @property
    def mods(self) -> list[ModRecord]:
        with self._lock:
            return list(self._records)

    def find(self, mod_id: str) -> ModRecord | None:
        with self._lock:
            for record in self._records:
                if record.id == mod_id:
                    return record
        return None

    def missing_masters(self) -> dict[str, list[str]]:
        with self._lock:
            return check_missing_masters(self.plugins)

    # -----------------------------------------------------------------------
    # Startup
    # -----------------------------------------------------------------------

    def _save(self, warnings: list[str]) -> None:
        try:
            self._registry.save(self._records)
        except RegistryError as exc:
            log.warning("%s", exc)
            warnings.append(str(exc))

    def initialize(self) -> OperationResult:
        """
        Validate the config, create workspace folders, load the registry,
        seed the virtual Data folder with the game's own plugins and publish
        every enabled mod.
        """
        with self._lock:
            try:
                self.config.validate()
            except ConfigError as exc:
                return OperationResult(False, str(exc))

            cfg = self.config
            try:
                cfg.ensure_directories()
            except OSError as exc:
                return OperationResult(False, f"Could not create workspace folders: {exc}")

            self._registry = ModRegistry(cfg.registry_path, cfg.tools_root)
            self._records = self._registry.load()
            warnings = list(self._registry.warnings)

            if cfg.game_data_dir is not None:
                try:
                    copy_base_plugins(cfg.game_data_dir, cfg.virtual_data_root, self._log)
                except FileNotFoundError as exc:
                    return OperationResult(False, str(exc), warnings=warnings)

            for failure in reconcile(self._records, cfg.virtual_data_root,
                                     cfg.deploy_mode, self._log):
                warnings.append(str(failure))

            for record in self._records:
                if record.is_tool and record.enabled:
                    try:
                        deploy_tool_assets(record, cfg.tools_root, self._log)
                    except OSError as exc:
                        warnings.append(f"Tool deployment for '{record.name}' failed: {exc}")

            if not self._registry.warnings:
                self._save(warnings)
            self.initialized = True
            self._rescan_locked()
            self._log(f"Workspace ready: {len(self._records)} mod(s) registered.")
            return OperationResult(True, "Workspace initialized.", warnings=warnings)

    def _require_initialized(self) -> OperationResult | None:
        if not self.initialized:
            return OperationResult(False, "Mod manager is not initialized.")
        return None

    # -----------------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------------

    def install_archive(self, archive_path: Path | str) -> OperationResult:
        with self._lock:
            refused = self._require_initialized()
            if refused:
                return refused
            try:
                record, warnings = install_mod_from_archive(
                    archive_path, self.config, self._records, self._registry, self._log)
            except InstallIncomplete as exc:
                log.warning("%s", exc)
                return OperationResult(False, str(exc))
            except InstallError as exc:
                return OperationResult(False, str(exc))
            except OSError as exc:
                return OperationResult(False, f"Install failed: {exc}")
            self._rescan_locked()
            return OperationResult(True, f"Installed '{record.name}' as '{record.id}'.",
                                   record, warnings)

    def set_mod_enabled(self, mod_id: str, enabled: bool) -> OperationResult:
        """
        Enable or disable a mod.  A failed enable leaves the mod disabled; a
        failed disable leaves it enabled.  Either way the files already
        handled are listed in the message.
        """
        with self._lock:
            refused = self._require_initialized()
            if refused:
                return refused
            record = self.find(mod_id)
            if record is None:
                return OperationResult(False, f"Unknown mod id: {mod_id}")
            if record.enabled == enabled:
                return OperationResult(True, "No change.", record)

            cfg = self.config
            warnings: list[str] = []
            try:
                if enabled:
                    enable_mod(record, cfg.virtual_data_root, cfg.deploy_mode, self._log)
                else:
                    disable_mod(record, cfg.virtual_data_root, self._log)
            except OverlayError as exc:
                done = ", ".join(exc.completed) or "none"
                if enabled:
                    record.enabled = False
                    self._save(warnings)
                    message = f"{exc}. Mod left disabled; already published: {done}."
                else:
                    message = f"{exc}. Mod still enabled; already withdrawn: {done}."
                self._rescan_locked()
                return OperationResult(False, message, record, warnings)

            record.enabled = enabled
            if record.is_tool:
                try:
                    if enabled:
                        deploy_tool_assets(record, cfg.tools_root, self._log)
                    else:
                        cleanup_tool_assets(record, cfg.tools_root)
                except OSError as exc:
                    warnings.append(f"Tool assets for '{record.name}': {exc}")
            self._save(warnings)
            self._rescan_locked()
            state = "enabled" if enabled else "disabled"
            return OperationResult(True, f"Mod '{mod_id}' {state}.", record, warnings)

    def remove_mod(self, mod_id: str) -> OperationResult:
        """Withdraw the mod's plugins if it is enabled, delete its tool assets
        and extraction folder, and drop it from the registry."""
        with self._lock:
            refused = self._require_initialized()
            if refused:
                return refused
            record = self.find(mod_id)
            if record is None:
                return OperationResult(False, f"Unknown mod id: {mod_id}")

            cfg = self.config
            try:
                if record.enabled:
                    disable_mod(record, cfg.virtual_data_root, self._log)
                cleanup_tool_assets(record, cfg.tools_root)
            except OverlayError as exc:
                return OperationResult(False, f"{exc}. Mod not removed.", record)
            except OSError as exc:
                return OperationResult(False, f"Failed to delete tool assets: {exc}", record)

            mod_dir = Path(record.mod_path) if record.mod_path else None
            if mod_dir is not None and mod_dir.is_dir():
                if mod_dir.resolve().parent != cfg.mods_root.resolve():
                    log.warning("Not deleting %s: outside %s", mod_dir, cfg.mods_root)
                else:
                    try:
                        shutil.rmtree(mod_dir)
                    except OSError as exc:
                        return OperationResult(
                            False, f"Failed to delete mod folder {mod_dir}: {exc}", record)

            self._records.remove(record)
            warnings: list[str] = []
            self._save(warnings)
            self._rescan_locked()
            return OperationResult(True, f"Removed '{mod_id}'.", record, warnings)

    def rescan_plugins(self) -> list[PluginInfo]:
        """Re-read plugin headers from the virtual Data folder."""
        with self._lock:
            return self._rescan_locked()

    def _rescan_locked(self) -> list[PluginInfo]:
        self.plugins = scan_plugins(self.config.virtual_data_root, self._log)
        return self.plugins
