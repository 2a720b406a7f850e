"""
Setup configuration for Nog Auth
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="nog_auth",
    version="1.0.0",
    author="Nog",
    description="Authentication service with sessions, two-factor, passkeys, social sign-in and RBAC administration",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=("tests", "tests.*", "scripts")),
    py_modules=["main"],
    include_package_data=True,
    package_data={
        "src.services": ["templates/*.html"],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Framework :: FastAPI",
        "Intended Audience :: Developers",
        "Topic :: Internet :: WWW/HTTP :: Session",
        "Topic :: Security",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7.4", "httpx>=0.26"],
    },
    entry_points={
        "console_scripts": [
            "nog-auth=nog_auth.cli:cli",
        ],
    },
)
