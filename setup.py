#!/usr/bin/env python3
from setuptools import setup

setup(
    name="remotehubfs",
    author="Peter Kerpedjiev",
    author_email="pkerpedjiev@gmail.com",
    packages=["remotehubfs"],
    entry_points={"console_scripts": ["remotehubfs = remotehubfs.__main__:main"]},
    description="Read only FUSE filesystem over GitHub repositories",
    license="MIT",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    python_requires=">=3.9",
    install_requires=["diskcache", "fusepy", "requests", "tenacity"],
    extras_require={"test": ["pytest", "pytest-asyncio"]},
    version="0.5.0",
)
