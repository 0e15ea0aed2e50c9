#!/usr/bin/env python3

import os
from pathlib import Path

from setuptools import find_packages, setup

HERE = Path(os.path.abspath(__file__)).resolve().parent
README = (HERE / "readme.md").read_text()

setup(
    name="minik3s",
    version="0.1.0",
    description="A command line tool that runs multi-node k3s clusters in Docker.",
    long_description=README,
    long_description_content_type="text/markdown",
    license="Apache-2.0",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
    ],
    keywords="k3s, kubernetes, docker, minik3s",
    python_requires=">=3.10",
    packages=find_packages(include=["minik3s", "minik3s.*"]),
    include_package_data=True,
    install_requires=[
        "click>=8.1",
        "docker>=7.0",
        "PyYAML",
    ],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["minik3s=minik3s.cli:cli"]},
)
