"""Setup configuration for the Watchquota Discord bot."""

from setuptools import setup, find_packages

setup(
    name="watchquota",
    version="0.0.1",
    description="A Discord bot enforcing daily message quotas on watchlisted members",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "aiosqlite",
        "py-cord",
        "PyYAML",
        "python-dotenv",
        "prompt_toolkit",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "watchquota=watchquota.main:main",
        ],
    },
)
