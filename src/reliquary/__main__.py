"""
Run from project root:
  python -m reliquary init --workspace ~/Reliquary --game "/games/Skyrim Special Edition"
  python -m reliquary install path/to/SkyUI_5_2_SE.7z
  python -m reliquary list
  python -m reliquary disable SkyUI_5_2_SE
  python -m reliquary enable SkyUI_5_2_SE
  python -m reliquary remove SkyUI_5_2_SE
  python -m reliquary scan                 # plugins in the virtual Data folder
  python -m reliquary sort                 # LOOT sort, writes loadorder.txt
  python -m reliquary warnings             # LOOT errors / warnings report
  python -m reliquary detect-game [DIR]
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Allow running as python -m reliquary from the src directory
if __name__ == "__main__":
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from LOOT.game_type import detect_game_type, game_type_from_name
from LOOT.loot_sorter import LootManager
from Utils.deploy import LinkMode
from Utils.mod_manager import ModManager, OperationResult
from Utils.plugins import merge_loadorder, read_loadorder
from Utils.workspace import (
    ConfigError,
    WorkspaceConfig,
    load_workspace_config,
    save_workspace_config,
)

log = logging.getLogger("reliquary")

_DEPLOY_MODES = {"copy": LinkMode.COPY, "hardlink": LinkMode.HARDLINK,
                 "symlink": LinkMode.SYMLINK}


def _print_result(result: OperationResult) -> int:
    stream = sys.stdout if result.ok else sys.stderr
    if result.message:
        print(result.message, file=stream)
    for warning in result.warnings:
        print(f"  WARN: {warning}", file=sys.stderr)
    return 0 if result.ok else 1


def _manager(config: WorkspaceConfig) -> tuple[ModManager | None, int]:
    manager = ModManager(config, log_fn=log.info)
    result = manager.initialize()
    if not result.ok:
        _print_result(result)
        return None, 1
    for warning in result.warnings:
        print(f"  WARN: {warning}", file=sys.stderr)
    return manager, 0


def _game_type(args, config: WorkspaceConfig):
    if args.game_type:
        return game_type_from_name(args.game_type)
    if config.game_path is None:
        raise ConfigError("No game path configured; pass --game-type or run init --game.")
    return detect_game_type(config.game_path)


def _open_loot(loot: LootManager, manager: ModManager, args) -> bool:
    config = manager.config
    game_type = _game_type(args, config)
    install = config.game_path or config.virtual_data_root.parent
    if not loot.open(game_type, config.virtual_data_root, install):
        print("Sorting unavailable: the LOOT library could not be loaded "
              "or refused this game.", file=sys.stderr)
        return False
    if not args.offline:
        loot.update_masterlist(log_fn=log.info)
    loot.reload_metadata([p.filename for p in manager.plugins], log_fn=log.info)
    return True


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_init(args, config: WorkspaceConfig) -> int:
    if args.workspace:
        config.workspace = args.workspace.expanduser()
    if args.game:
        config.game_path = args.game.expanduser()
    if args.virtual_data:
        config.virtual_data = args.virtual_data.expanduser()
    if args.deploy_mode:
        config.deploy_mode = _DEPLOY_MODES[args.deploy_mode]
    if args.seven_zip:
        config.seven_zip = args.seven_zip
    config.validate()
    save_workspace_config(config, args.config)
    manager, rc = _manager(config)
    if manager is None:
        return rc
    print(f"Workspace: {config.workspace}")
    print(f"Virtual Data: {config.virtual_data_root}")
    return 0


def cmd_install(args, config: WorkspaceConfig) -> int:
    manager, rc = _manager(config)
    if manager is None:
        return rc
    return _print_result(manager.install_archive(args.archive))


def cmd_enable(args, config: WorkspaceConfig) -> int:
    manager, rc = _manager(config)
    if manager is None:
        return rc
    return _print_result(manager.set_mod_enabled(args.mod_id, True))


def cmd_disable(args, config: WorkspaceConfig) -> int:
    manager, rc = _manager(config)
    if manager is None:
        return rc
    return _print_result(manager.set_mod_enabled(args.mod_id, False))


def cmd_remove(args, config: WorkspaceConfig) -> int:
    manager, rc = _manager(config)
    if manager is None:
        return rc
    return _print_result(manager.remove_mod(args.mod_id))


def cmd_list(args, config: WorkspaceConfig) -> int:
    manager, rc = _manager(config)
    if manager is None:
        return rc
    mods = manager.mods
    if not mods:
        print("No mods installed.")
        return 0
    for record in mods:
        mark = "x" if record.enabled else " "
        kind = " [tool]" if record.is_tool else ""
        print(f"[{mark}] {record.id}{kind}")
        for plugin in record.plugin_files:
            print(f"      {plugin}")
        if record.launcher_path:
            print(f"      launcher: {record.launcher_path}")
    return 0


def cmd_scan(args, config: WorkspaceConfig) -> int:
    manager, rc = _manager(config)
    if manager is None:
        return rc
    plugins = manager.plugins
    print(f"{config.virtual_data_root}: {len(plugins)} plugin(s)")
    for info in plugins:
        masters = ", ".join(info.masters) if info.masters else "-"
        print(f"  {info.kind.value}  {info.filename}  (masters: {masters})")
    missing = manager.missing_masters()
    for plugin, names in missing.items():
        print(f"  MISSING: {plugin} requires {', '.join(names)}", file=sys.stderr)
    return 1 if missing else 0


def cmd_sort(args, config: WorkspaceConfig) -> int:
    manager, rc = _manager(config)
    if manager is None:
        return rc
    with LootManager() as loot:
        if not _open_loot(loot, manager, args):
            return 1
        present = [p.filename for p in manager.plugins]
        current = merge_loadorder(read_loadorder(config.loadorder_path), present)
        result = loot.sort(current, config.loadorder_path, log_fn=log.info)
    for warning in result.warnings:
        print(f"  WARN: {warning}", file=sys.stderr)
    if not result.success:
        return 1
    for i, name in enumerate(result.sorted_names):
        print(f"{i:4d}  {name}")
    print(f"{result.moved_count} plugin(s) changed position.")
    return 0


def cmd_warnings(args, config: WorkspaceConfig) -> int:
    manager, rc = _manager(config)
    if manager is None:
        return rc
    with LootManager() as loot:
        if not _open_loot(loot, manager, args):
            return 1
        entries = loot.warnings(manager.plugins)
    if not entries:
        print("No LOOT warnings.")
        return 0
    width = max(len(e.plugin) for e in entries)
    for entry in entries:
        print(f"{entry.plugin:<{width}}  {entry.category.value:<13}  {entry.message}")
    return 0


def cmd_detect_game(args, config: WorkspaceConfig) -> int:
    target = args.path or config.game_path
    if target is None:
        print("Error: pass a game directory or configure one with init --game",
              file=sys.stderr)
        return 1
    print(detect_game_type(target).name)
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="reliquary",
        description="Install, enable and sort Bethesda-game mods in a virtual Data folder.",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    ap.add_argument("--config", type=Path, default=None,
                    help="Workspace config file (default: ~/.config/ReliquaryModManager/paths.json)")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="Configure and initialise the workspace")
    p.add_argument("--workspace", type=Path, help="Workspace root folder")
    p.add_argument("--game", type=Path, help="Game install folder (containing Data/)")
    p.add_argument("--virtual-data", type=Path, help="Virtual Data folder")
    p.add_argument("--deploy-mode", choices=sorted(_DEPLOY_MODES), help="How plugins are placed")
    p.add_argument("--seven-zip", help="7z executable to extract archives with")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("install", help="Install a mod archive")
    p.add_argument("archive", type=Path)
    p.set_defaults(func=cmd_install)

    for name, func, help_text in (
        ("enable", cmd_enable, "Enable an installed mod"),
        ("disable", cmd_disable, "Disable an installed mod"),
        ("remove", cmd_remove, "Uninstall a mod and delete its files"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("mod_id")
        p.set_defaults(func=func)

    p = sub.add_parser("list", help="List installed mods")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("scan", help="Scan plugins in the virtual Data folder")
    p.set_defaults(func=cmd_scan)

    for name, func, help_text in (
        ("sort", cmd_sort, "Sort the load order with LOOT"),
        ("warnings", cmd_warnings, "Show LOOT errors and warnings"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--game-type", help="LOOT game type (default: detected)")
        p.add_argument("--offline", action="store_true",
                       help="Do not download missing masterlists")
        p.set_defaults(func=func)

    p = sub.add_parser("detect-game", help="Print the game type of an install folder")
    p.add_argument("path", type=Path, nargs="?")
    p.set_defaults(func=cmd_detect_game)
    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    config = load_workspace_config(args.config)
    try:
        return args.func(args, config)
    except (ConfigError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
