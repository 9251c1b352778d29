#!/usr/bin/env python3
"""
setup.py for multiarch-builder

For installations, use:
    pip install .
    pip install -e .[dev]

Copyright (c) Advanced Micro Devices, Inc. All rights reserved.
"""

import sys
from pathlib import Path

try:
    from setuptools import setup, find_namespace_packages
except ImportError:
    print("setuptools is required for setup.py")
    print("Install it using: pip install setuptools")
    sys.exit(1)


def read_readme(readme_file="README.md"):
    """Read README.md file for long description."""
    readme_path = Path(__file__).parent / readme_file
    if readme_path.exists():
        with open(readme_path, "r", encoding="utf-8") as f:
            return f.read()
    return ""


def get_config():
    """Package configuration."""
    return {
        "name": "multiarch-builder",
        "description": "Build a multi-architecture container image on native hosts and publish its manifest.",
        "authors": [{"name": "Advanced Micro Devices", "email": "mad.support@amd.com"}],
        "dependencies": [
            "typer>=0.9.0",
            "rich>=13.0.0",
            "paramiko>=2.7.0",
            "pyyaml>=6.0",
            "typing-extensions",
        ],
        "optional_dependencies": {
            "dev": [
                "pytest", "pytest-cov", "pytest-timeout", "pytest-mock",
            ]
        },
        "requires_python": ">=3.8",
        "classifiers": [
            "Programming Language :: Python :: 3",
            "License :: OSI Approved :: MIT License",
            "Operating System :: POSIX :: Linux",
        ],
        "scripts": {
            "multiarch-builder": "multiarch_builder.cli:cli_main",
        },
    }


def get_version():
    """Get version from git tags or fallback to a default."""
    try:
        import subprocess
        import re

        result = subprocess.run(
            ["git", "describe", "--tags", "--dirty", "--always", "--long"],
            capture_output=True, text=True, timeout=10, cwd=Path(__file__).parent
        )
        if result.returncode == 0:
            version_str = result.stdout.strip()
            if version_str.startswith('v'):
                version_str = version_str[1:]

            # Handle patterns like "1.0.0-5-g1234567" or "1.0.0-5-g1234567-dirty"
            match = re.match(r'^([^-]+)-(\d+)-g([a-f0-9]+)(-dirty)?$', version_str)
            if match:
                base_version, distance, commit, dirty = match.groups()
                if distance == "0":
                    return f"{base_version}+dirty" if dirty else base_version
                version_str = f"{base_version}.post{distance}+g{commit}"
                if dirty:
                    version_str += ".dirty"
                return version_str

            # Handle case where we just have a commit hash (no tags)
            if re.match(r'^[a-f0-9]+(-dirty)?$', version_str):
                clean_hash = version_str.replace('-dirty', '')
                if '-dirty' in version_str:
                    return f"0.1.0.dev0+g{clean_hash}.dirty"
                return f"0.1.0.dev0+g{clean_hash}"

    except (OSError, ValueError):
        pass

    # Final fallback
    return "0.1.0.dev0"


def main():
    """Main setup function."""
    config = get_config()

    author = config["authors"][0]
    entry_points = {
        "console_scripts": [
            f"{name}={module_path}" for name, module_path in config["scripts"].items()
        ]
    }

    # core/ and tools/ are namespace sub-packages
    packages = find_namespace_packages(where="src", include=["multiarch_builder*"])
    version = get_version()

    setup_kwargs = {
        "name": config["name"],
        "version": version,
        "author": author["name"],
        "author_email": author["email"],
        "description": config["description"],
        "long_description": read_readme(),
        "long_description_content_type": "text/markdown",
        "package_dir": {"": "src"},
        "packages": packages,
        "install_requires": config["dependencies"],
        "extras_require": config["optional_dependencies"],
        "python_requires": config["requires_python"],
        "entry_points": entry_points,
        "classifiers": config["classifiers"],
        "zip_safe": False,
        "platforms": ["any"],
    }

    if len(sys.argv) > 1 and any(arg in sys.argv for arg in ["--version", "--help"]):
        print(f"multiarch-builder version: {version}")
        print(f"Found {len(packages)} packages")

    setup(**setup_kwargs)


if __name__ == "__main__":
    main()
