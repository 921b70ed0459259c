#!/usr/bin/env python3
"""
Package the module contracts API into build/modules_api.zip.

The zip holds the ``modules_api`` entry package plus the installed project
(``infra_modules`` and its runtime dependencies), ready for a Lambda
deployment with handler ``modules_api.lambda_function.lambda_handler``.
"""
import argparse
import shutil
import subprocess
import sys
import zipfile
from pathlib import Path

ENTRY_PACKAGE = "modules_api"
PROJECT_ROOT = Path(__file__).resolve().parent.parent


def install_project(target: Path) -> None:
    """pip install the project and its dependencies into ``target``."""
    subprocess.run(
        [sys.executable, "-m", "pip", "install", "--quiet", str(PROJECT_ROOT), "--target", str(target)],
        check=True,
    )


def write_zip(staging_dir: Path, zip_path: Path) -> int:
    """Zip the staging directory, skipping bytecode. Returns the file count."""
    count = 0
    with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as archive:
        for path in sorted(staging_dir.rglob("*")):
            if path.is_dir() or path.suffix == ".pyc" or "__pycache__" in path.parts:
                continue
            archive.write(path, path.relative_to(staging_dir))
            count += 1
    return count


def main() -> int:
    parser = argparse.ArgumentParser(description="Build the module contracts Lambda zip")
    parser.add_argument("--out-dir", default=str(PROJECT_ROOT / "build"), help="Output directory (default: build/)")
    args = parser.parse_args()

    build_dir = Path(args.out_dir)
    staging_dir = build_dir / f"staging_{ENTRY_PACKAGE}"
    zip_path = build_dir / f"{ENTRY_PACKAGE}.zip"

    if staging_dir.exists():
        shutil.rmtree(staging_dir)
    staging_dir.mkdir(parents=True)

    print(f"Building {zip_path.name}...")
    try:
        shutil.copytree(PROJECT_ROOT / "src" / ENTRY_PACKAGE, staging_dir / ENTRY_PACKAGE)
        install_project(staging_dir)
        file_count = write_zip(staging_dir, zip_path)
    except subprocess.CalledProcessError as e:
        print(f"❌ pip install failed with exit code {e.returncode}", file=sys.stderr)
        return 1
    finally:
        shutil.rmtree(staging_dir, ignore_errors=True)

    print(f"✅ {zip_path} created ({file_count} files, {zip_path.stat().st_size} bytes)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
