#!/usr/bin/env python3
"""
Setup script for the Mumble session client
"""

from setuptools import setup, find_packages

setup(
    name="mumble-session",
    version="0.0.1",
    description="Asynchronous Mumble control-channel session client",
    packages=find_packages(include=["mumble_client", "mumble_client.*", "mumble_shared", "mumble_shared.*"]),
    install_requires=[
        "protobuf==5.29.3",
        "cryptography==43.0.1",
        "click==8.1.7",
        "typer==0.12.3",
        "rich==13.9.2",
        "PyYAML==6.0.1",
    ],
    extras_require={
        "test": [
            "pytest==8.4.2",
            "pytest-asyncio==1.2.0",
        ],
    },
    python_requires=">=3.9",
    entry_points={
        'console_scripts': [
            'mumble-session=mumble_client.cli:main',
        ],
    },
)
