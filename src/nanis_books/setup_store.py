"""Utility for initializing an empty Nanis Books dataset.

The module doubles as a script (``nanis-books-setup``) and as a library used
by tests. It reads the same ``config.ini`` as the CLI and writes a fresh,
versioned dataset document at the configured ``DataFile``.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from . import data_manager, log
from .data_manager import Dataset, Settings

CONFIG_FILE = data_manager.CONFIG_FILE_NAME


def create_dataset_file(
    destination: Path,
    *,
    settings: Optional[Settings] = None,
    overwrite: bool = False,
) -> Path:
    """Write an empty dataset document to ``destination``.

    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing dataset: {destination}")

    data_manager.save_dataset(Dataset(settings=settings or Settings()), destination)
    log.info("Created empty dataset at '%s'", destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the dataset named by ``config.ini`` with its default rates."""

    config_path = Path(config_path).expanduser().resolve()
    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    return create_dataset_file(
        settings.data_file,
        settings=Settings(
            weight_cost_per_lb=settings.default_weight_cost_per_lb,
            tax_rate_percent=settings.default_tax_rate_percent,
        ),
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Initialize the Nanis Books dataset file")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target dataset if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Nanis Books Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except OSError as exc:
        print(f"\n[ERROR] Unable to write dataset: {exc}")
        return 1

    print(f"\n[SUCCESS] Created dataset at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
