#!/usr/bin/env python3

from setuptools import setup, find_packages
import os

# Read version from __init__.py
def get_version():
    version_file = os.path.join(os.path.dirname(__file__), 'tinysubnets', '__init__.py')
    with open(version_file) as f:
        for line in f:
            if line.startswith('__version__'):
                return line.split('=')[1].strip().strip('"\'')
    return '0.1.0'

setup(
    name="tinysubnets",
    version=get_version(),
    description="/30 DHCP lease allocation engine with a local IPC broker",
    long_description="Allocates isolated four-address subnets to DHCP clients and abstract devices",
    author="tinysubnets developers",
    packages=find_packages(exclude=['tests', 'tests.*']),
    install_requires=[
        "flask>=2.2.0",
        "requests>=2.25.0",
        "requests-unixsocket>=0.4.1",
        "scapy>=2.4.0",
        "pyyaml>=5.4.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "tinysubnets=tinysubnets.cli.main:main",
            "tinysubnets-broker=tinysubnets.services.broker:main",
            "tinysubnets-dhcp=tinysubnets.services.dhcp_server:main",
        ],
    },
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: System Administrators",
        "Programming Language :: Python :: 3",
        "Topic :: System :: Networking",
        "Topic :: System :: Systems Administration",
    ],
)
