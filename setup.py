"""
StemQueue — setup script.

Usage:
    # Development install:
    pip install -e .

    # macOS .app bundle (py2app, alias mode — fast, links to source):
    python3 setup.py py2app -A

    # macOS .app bundle (standalone — fully self-contained):
    python3 setup.py py2app

The built app will be in the dist/ directory.
"""

import os
import sys
from setuptools import setup, find_namespace_packages

APP = ["main.py"]
APP_NAME = "StemQueue"

DATA_FILES = []

# Check if .icns icon exists (user builds it on macOS)
ICON_FILE = "AppIcon.icns" if os.path.exists("AppIcon.icns") else None

PY2APP_OPTIONS = {
    "argv_emulation": False,
    "plist": {
        "CFBundleName": APP_NAME,
        "CFBundleDisplayName": "Stem Queue",
        "CFBundleIdentifier": "com.local.stemqueue",
        "CFBundleVersion": "1.0.0",
        "CFBundleShortVersionString": "1.0.0",
        "CFBundlePackageType": "APPL",
        "LSMinimumSystemVersion": "10.15",
        "NSHumanReadableCopyright": "Local use only",
        "LSUIElement": False,
        "NSHighResolutionCapable": True,
        "LSEnvironment": {
            "PYTHONDONTWRITEBYTECODE": "1",
        },
    },
    "packages": [
        "stemqueue",
        "stemqueue.core",
        "requests",
        "yt_dlp",
        "psutil",
    ],
    "excludes": [
        "PyQt5", "PyQt6", "PySide2", "PySide6", "tkinter",
        "matplotlib", "numpy", "scipy", "pandas",
        "PIL", "cv2", "torch", "tensorflow",
        "pytest", "unittest",
    ],
    "site_packages": True,
}

# Add icon if available
if ICON_FILE:
    PY2APP_OPTIONS["iconfile"] = ICON_FILE

# py2app is only needed (and only importable) when building the bundle
py2app_kwargs = {}
if "py2app" in sys.argv:
    py2app_kwargs = {
        "app": APP,
        "data_files": DATA_FILES,
        "options": {"py2app": PY2APP_OPTIONS},
        "setup_requires": ["py2app"],
    }

setup(
    name="stemqueue",
    version="1.0.0",
    description="Queue YouTube videos and local audio files for stem separation",
    packages=find_namespace_packages(include=["stemqueue", "stemqueue.*"]),
    py_modules=["main"],
    install_requires=[
        "requests>=2.28.0",
        "yt-dlp>=2024.3.10",
        "psutil>=5.9.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "stemqueue=main:main",
        ],
    },
    **py2app_kwargs,
)
