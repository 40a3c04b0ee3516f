#!/usr/bin/env python
"""
Local setup for Scout Race Registrations.

This script handles:
1. Installing Python dependencies
2. Creating the data directory
3. Printing the next steps (admin password, race seeding)

Usage:
    python scripts/setup_env.py
"""

import subprocess
import sys
from pathlib import Path


def run_command(cmd, description):
    """Run a command and handle errors."""
    print(f"\n{'='*50}")
    print(f"[*] {description}")
    print(f"{'='*50}")

    try:
        subprocess.run(cmd, shell=True, check=True)
        print(f"[+] Success: {description}")
        return True
    except subprocess.CalledProcessError as e:
        print(f"[-] Failed: {description}")
        print(f"    Error: {e}")
        return False


def check_venv():
    """Ensure script is running from a .venv virtual environment."""
    venv_path = sys.prefix

    if not (venv_path.endswith('.venv') or '/.venv' in venv_path or '\\.venv' in venv_path):
        print("[-] Error: Please run this script from a .venv virtual environment.")
        print("")
        print("    To create and activate a virtual environment:")
        print("      python -m venv .venv")
        print("")
        print("    On Windows:")
        print("      .venv\\Scripts\\activate")
        print("")
        print("    On macOS/Linux:")
        print("      source .venv/bin/activate")
        print("")
        print("    Then run this script again:")
        print("      python scripts/setup_env.py")
        return False
    return True


def main():
    print("=" * 60)
    print("  Scout Race Registrations - Setup")
    print("=" * 60)

    if not check_venv():
        return 1

    project_dir = Path(__file__).resolve().parent.parent

    # Step 1: Install the package with its test tools
    if not run_command(
        f"{sys.executable} -m pip install -e \"{project_dir}[test]\"",
        "Installing Python dependencies"
    ):
        print("\n[-] Failed to install Python dependencies")
        return 1

    # Step 2: Create data directory
    data_dir = project_dir / "data"
    data_dir.mkdir(exist_ok=True)
    print(f"\n[+] Created data directory: {data_dir}")

    print("\n" + "=" * 60)
    print("  Setup Complete!")
    print("=" * 60)
    print("\nSet the admin password hash:")
    print("  python -m scoutrace.seed --hash-password")
    print("  export ADMIN_PASSWORD_HASH='...'")
    print("\nLoad the races:")
    print("  python -m scoutrace.seed races.json")
    print("\nTo run the application:")
    print("  uvicorn scoutrace.main:app --reload")

    return 0


if __name__ == "__main__":
    sys.exit(main())
